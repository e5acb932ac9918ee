"""Catalog of billing tiers."""

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from learngate.utils import now_utc
from .base import Base, UTCDateTime


class Plan(Base):
    __tablename__ = "plans"
    __table_args__ = (
        CheckConstraint("plan_type IN ('monthly', 'quarterly', 'yearly')", name="ck_plans_plan_type"),
        CheckConstraint("price > 0", name="ck_plans_price_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    plan_type: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    price: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc, onupdate=now_utc)
