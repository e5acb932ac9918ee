"""Subscription model — one row per trial-to-paid lifecycle instance."""

from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from learngate.utils import now_utc
from .base import Base, UTCDateTime

_OPEN_STATUS_CLAUSE = text("status IN ('trial', 'active')")


class Subscription(Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        # At most one trial/active row per user
        Index(
            "uq_subscriptions_user_open",
            "user_id",
            unique=True,
            postgresql_where=_OPEN_STATUS_CLAUSE,
            sqlite_where=_OPEN_STATUS_CLAUSE,
        ),
        Index("ix_subscriptions_status_end_date", "status", "end_date"),
        Index("ix_subscriptions_status_trial_end_date", "status", "trial_end_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    plan_id: Mapped[int] = mapped_column(ForeignKey("plans.id"), nullable=False)
    plan_type: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="trial")
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    start_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=now_utc)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    is_trial_period: Mapped[bool] = mapped_column(Boolean, default=True)
    trial_start_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    trial_end_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    razorpay_order_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    razorpay_payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    razorpay_signature: Mapped[str | None] = mapped_column(String(128), nullable=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=False)
    # Optimistic lock; concurrent writers to the same row fail with StaleDataError
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    # Stamped by each writer with its own clock; no onupdate
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)

    user: Mapped["User"] = relationship(back_populates="subscriptions")
    plan: Mapped["Plan"] = relationship()
    payments: Mapped[list["Payment"]] = relationship(back_populates="subscription")

    __mapper_args__ = {"version_id_col": version}
