"""Subscription routes — trial, payment and status JSON endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from learngate.db.session import get_db
from learngate.models.user import User
from learngate.schemas.subscription import (
    OrderResult,
    PaymentOut,
    PlanOut,
    StartTrialRequest,
    StatusResult,
    SubscriptionSummary,
    VerifyPaymentRequest,
)
from learngate.services import subscription_service
from learngate.services.auth_service import get_current_user
from learngate.services.payment_gateway import PaymentGateway, get_payment_gateway
from learngate.services.plan_service import ensure_default_plans

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.get("/plans", response_model=list[PlanOut])
async def list_plans(db: AsyncSession = Depends(get_db)):
    return await ensure_default_plans(db)


@router.get("/status", response_model=StatusResult)
async def subscription_status(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await subscription_service.check_status(db, user.id)


@router.get("/me")
async def my_subscription(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    summary = await subscription_service.latest_subscription(db, user.id)
    return {"success": True, "subscription": summary}


@router.post("/start-trial", response_model=SubscriptionSummary, status_code=201)
async def start_trial(
    body: StartTrialRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await subscription_service.start_trial(db, user.id, body.plan_type)


@router.post("/create-payment", response_model=OrderResult)
async def create_payment(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    return await subscription_service.request_payment(db, user.id, gateway)


@router.post("/verify-payment", response_model=SubscriptionSummary)
async def verify_payment(
    body: VerifyPaymentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    return await subscription_service.verify_payment(
        db, user.id, body.order_id, body.payment_id, body.signature, gateway
    )


@router.post("/{subscription_id}/cancel", response_model=SubscriptionSummary)
async def cancel_subscription(
    subscription_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await subscription_service.cancel(db, user.id, subscription_id)


@router.get("/payments", response_model=list[PaymentOut])
async def payment_history(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await subscription_service.payment_history(db, user.id)
