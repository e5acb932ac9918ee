"""Subscription-related Pydantic schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CustomerStatus(str, Enum):
    NO_SUBSCRIPTION = "no_subscription"
    TRIAL_ACTIVE = "trial_active"
    TRIAL_EXPIRED = "trial_expired"
    ACTIVE_PAID = "active_paid"
    TRIAL_USED = "trial_used"


class NextAction(str, Enum):
    START_TRIAL = "start_trial"
    WAIT_FOR_TRIAL_END = "wait_for_trial_end"
    CREATE_PAYMENT = "create_payment"
    SUBSCRIBE_PAID = "subscribe_paid"
    NONE = "none"


class DenyReason(str, Enum):
    REQUIRES_SUBSCRIPTION = "requires_subscription"
    TRIAL_EXPIRED = "trial_expired"
    SUBSCRIPTION_EXPIRED = "subscription_expired"


class PlanOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    plan_type: str
    price: int
    description: str
    is_active: bool


class SubscriptionSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    plan_type: str
    amount: int
    payment_status: str
    is_trial_period: bool
    start_date: datetime
    end_date: datetime
    trial_start_date: datetime | None = None
    trial_end_date: datetime | None = None
    is_active: bool
    remaining_days: int


class StatusResult(BaseModel):
    status: CustomerStatus
    next_action: NextAction
    can_start_trial: bool
    subscription: SubscriptionSummary | None = None


class OrderResult(BaseModel):
    order_id: str
    amount: int
    currency: str
    subscription_id: int
    key_id: str | None = None


class AccessDecision(BaseModel):
    allowed: bool
    reason: DenyReason | None = None
    subscription: SubscriptionSummary | None = None


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    subscription_id: int | None
    plan_type: str
    amount: int
    currency: str
    razorpay_order_id: str
    razorpay_payment_id: str | None = None
    status: str
    method: str | None = None
    error_code: str | None = None
    error_description: str | None = None
    order_created_at: datetime
    payment_captured_at: datetime | None = None


# --- Requests ---


class StartTrialRequest(BaseModel):
    # Validated by the service so an unknown plan maps to InvalidInput
    plan_type: str = Field(..., max_length=32)


class VerifyPaymentRequest(BaseModel):
    order_id: str | None = None
    payment_id: str | None = None
    signature: str | None = None
