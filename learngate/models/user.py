"""User model — identity plus the subscription projection flags."""

from datetime import datetime

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from learngate.utils import now_utc
from .base import Base, UTCDateTime


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Projection of the user's subscription rows; rewritten by user_service only
    has_used_trial: Mapped[bool] = mapped_column(Boolean, default=False)
    has_active_subscription: Mapped[bool] = mapped_column(Boolean, default=False)
    is_trial_active: Mapped[bool] = mapped_column(Boolean, default=False)
    trial_start_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    trial_end_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc, onupdate=now_utc)

    # Relationships
    subscriptions: Mapped[list["Subscription"]] = relationship(back_populates="user")
    payments: Mapped[list["Payment"]] = relationship(back_populates="user")
