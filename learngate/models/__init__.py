"""SQLAlchemy models for learngate."""

from .base import Base
from .user import User
from .plan import Plan
from .subscription import Subscription
from .payment import Payment

__all__ = [
    "Base",
    "User",
    "Plan",
    "Subscription",
    "Payment",
]
