"""Payment ledger: one row per gateway order attempt."""

from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from learngate.utils import now_utc
from .base import Base, UTCDateTime

_OPEN_ORDER_CLAUSE = text("status IN ('created', 'authorized')")


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        # At most one open order per subscription
        Index(
            "uq_payments_subscription_open",
            "subscription_id",
            unique=True,
            postgresql_where=_OPEN_ORDER_CLAUSE,
            sqlite_where=_OPEN_ORDER_CLAUSE,
        ),
        Index("ix_payments_user_created_at", "user_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    # Nulled when the retention purge removes the subscription; the ledger row stays
    subscription_id: Mapped[int | None] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True
    )
    plan_id: Mapped[int] = mapped_column(ForeignKey("plans.id"), nullable=False)
    plan_type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="INR")
    razorpay_order_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    razorpay_payment_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    razorpay_signature: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="created", index=True)
    method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    bank: Mapped[str | None] = mapped_column(String(64), nullable=True)
    wallet: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vpa: Mapped[str | None] = mapped_column(String(128), nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    order_created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    payment_captured_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=now_utc, onupdate=now_utc)

    user: Mapped["User"] = relationship(back_populates="payments")
    subscription: Mapped["Subscription | None"] = relationship(back_populates="payments")
