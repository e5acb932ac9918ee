"""Subscription lifecycle — trial, payment order, confirmation, cancel, status.

All writes to Subscription and Payment rows go through this module (and the
reconciliation sweep, which reuses ``expire_if_lapsed``). Operations for the
same user are serialized in-process; the partial unique indexes and the
optimistic version column catch races between processes.
"""

import asyncio
import logging
import weakref
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from learngate.config import get_settings
from learngate.constants import (
    OPEN_ORDER_STATUSES,
    OPEN_STATUSES,
    ORDER_AUTHORIZED,
    ORDER_CAPTURED,
    ORDER_CREATED,
    ORDER_FAILED,
    PAYMENT_COMPLETED,
    PAYMENT_PENDING,
    PLAN_PRICES,
    PLAN_TYPES,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_EXPIRED,
    STATUS_TRIAL,
    TERMINAL_STATUSES,
)
from learngate.errors import Conflict, Forbidden, InvalidInput, NotFound, Unauthorized, ValidationError
from learngate.models.payment import Payment
from learngate.models.subscription import Subscription
from learngate.schemas.subscription import (
    CustomerStatus,
    NextAction,
    OrderResult,
    StatusResult,
    SubscriptionSummary,
)
from learngate.services.access_policy import (
    derived_status,
    is_active,
    plan_end_date,
    remaining_days,
    trial_end_date,
)
from learngate.services.payment_gateway import PaymentDetails, PaymentGateway, make_receipt
from learngate.services.plan_service import find_active_plan
from learngate.services.user_service import get_user, load_subscriptions, refresh_user_projection
from learngate.utils import now_utc

logger = logging.getLogger(__name__)

_user_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


def user_lock(user_id: int) -> asyncio.Lock:
    """Per-user lock serializing lifecycle operations within this process."""
    lock = _user_locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _user_locks[user_id] = lock
    return lock


def build_summary(sub: Subscription, now: datetime) -> SubscriptionSummary:
    return SubscriptionSummary(
        id=sub.id,
        status=sub.status,
        plan_type=sub.plan_type,
        amount=sub.amount,
        payment_status=sub.payment_status,
        is_trial_period=sub.is_trial_period,
        start_date=sub.start_date,
        end_date=sub.end_date,
        trial_start_date=sub.trial_start_date,
        trial_end_date=sub.trial_end_date,
        is_active=is_active(sub, now),
        remaining_days=remaining_days(sub, now),
    )


def expire_if_lapsed(sub: Subscription, now: datetime) -> bool:
    """Move *sub* to its derived status in memory. Returns True if it changed.

    A trial that lapses is marked as awaiting its conversion payment.
    """
    target = derived_status(sub, now)
    if target == sub.status:
        return False
    logger.info("Subscription %s: %s -> %s", sub.id, sub.status, target)
    sub.status = target
    sub.updated_at = now
    if target == STATUS_EXPIRED and sub.is_trial_period:
        sub.payment_status = PAYMENT_PENDING
    return True


def find_payment_owed(subscriptions: list[Subscription]) -> Subscription | None:
    """The lapsed trial still waiting for its conversion payment, if any."""
    for sub in subscriptions:
        if sub.status == STATUS_EXPIRED and sub.payment_status == PAYMENT_PENDING and sub.is_trial_period:
            return sub
    return None


async def commit_self_heal(db: AsyncSession) -> bool:
    """Commit opportunistic corrections; give way if another writer got there first."""
    try:
        await db.commit()
        return True
    except StaleDataError:
        await db.rollback()
        logger.info("Concurrent subscription update detected; keeping the other writer's state")
        return False


async def _open_order(db: AsyncSession, subscription_id: int) -> Payment | None:
    result = await db.execute(
        select(Payment)
        .where(Payment.subscription_id == subscription_id, Payment.status.in_(OPEN_ORDER_STATUSES))
        .limit(1)
    )
    return result.scalar_one_or_none()


# --- Trial ---


async def start_trial(
    db: AsyncSession, user_id: int, plan_type: str, now: datetime | None = None
) -> SubscriptionSummary:
    """Start the user's one free trial on *plan_type*.

    Raises:
        InvalidInput: Unknown plan type.
        Conflict: The user already has access, or already used the trial.
        NotFound: The plan is not active in the catalog.
    """
    now = now or now_utc()
    if plan_type not in PLAN_TYPES:
        raise InvalidInput("Invalid plan type", plan_type=plan_type)

    async with user_lock(user_id):
        subscriptions = await load_subscriptions(db, user_id)
        current = next((sub for sub in subscriptions if is_active(sub, now)), None)
        if current:
            raise Conflict(
                "You already have an active subscription",
                code="already_subscribed",
                subscription_id=current.id,
            )

        user = await get_user(db, user_id)
        if user.has_used_trial:
            if subscriptions:
                raise Conflict(
                    "You have already used your trial period. Please subscribe to a paid plan.",
                    code="trial_already_used",
                )
            logger.warning("User %s flagged as trial-used with no subscriptions; repairing flag", user_id)
            user.has_used_trial = False

        plan = await find_active_plan(db, plan_type)

        # Stale open rows would block the insert below
        for sub in subscriptions:
            expire_if_lapsed(sub, now)

        trial_start = now
        trial_end = trial_end_date(trial_start)
        subscription = Subscription(
            user_id=user_id,
            plan_id=plan.id,
            plan_type=plan.plan_type,
            status=STATUS_TRIAL,
            amount=plan.price,
            payment_status=PAYMENT_PENDING,
            start_date=trial_start,
            end_date=plan_end_date(plan.plan_type, trial_end),
            is_trial_period=True,
            trial_start_date=trial_start,
            trial_end_date=trial_end,
            auto_renew=False,
            created_at=now,
            updated_at=now,
        )
        db.add(subscription)
        try:
            await db.flush()
        except (IntegrityError, StaleDataError):
            await db.rollback()
            raise Conflict("You already have an active subscription", code="already_subscribed") from None

        await refresh_user_projection(db, user, now, [subscription, *subscriptions])
        await db.commit()

    logger.info("Trial started for user %s on %s plan (subscription %s)", user_id, plan_type, subscription.id)
    return build_summary(subscription, now)


# --- Payment ---


async def request_payment(
    db: AsyncSession, user_id: int, gateway: PaymentGateway, now: datetime | None = None
) -> OrderResult:
    """Create a gateway order for the subscription the user owes payment on.

    Raises:
        NotFound: Nothing to pay for.
        Conflict: Already paid, or an order is already pending.
        ValidationError: Stored amount does not match the plan price.
        GatewayUnavailable: The gateway could not create the order.
    """
    now = now or now_utc()
    settings = get_settings()

    async with user_lock(user_id):
        subscriptions = await load_subscriptions(db, user_id)
        subscription = find_payment_owed(subscriptions)

        if subscription is None:
            lapsed = next(
                (
                    sub for sub in subscriptions
                    if sub.status in OPEN_STATUSES and derived_status(sub, now) == STATUS_EXPIRED
                ),
                None,
            )
            if lapsed is not None:
                user = await get_user(db, user_id)
                expire_if_lapsed(lapsed, now)
                await refresh_user_projection(db, user, now, subscriptions)
                if not await commit_self_heal(db):
                    raise Conflict("Subscription changed concurrently, please retry", code="concurrent_update")
                subscription = lapsed

        if subscription is None:
            raise NotFound("No subscription requires payment", code="nothing_to_pay")

        if subscription.payment_status == PAYMENT_COMPLETED:
            raise Conflict("Payment already completed for this subscription", code="already_paid")

        pending = await _open_order(db, subscription.id)
        if pending:
            raise Conflict(
                "A payment order is already pending for this subscription",
                code="order_pending",
                order_id=pending.razorpay_order_id,
            )

        expected = PLAN_PRICES.get(subscription.plan_type)
        if expected is None or subscription.amount != expected:
            logger.error(
                "Subscription %s amount %s does not match %s price %s",
                subscription.id, subscription.amount, subscription.plan_type, expected,
            )
            raise ValidationError("Subscription amount does not match the plan price", code="amount_mismatch")

        subscription_id = subscription.id
        plan_id = subscription.plan_id
        plan_type = subscription.plan_type
        amount = subscription.amount
        await db.commit()

    # Neither the lock nor a transaction is held across the gateway round-trip
    receipt = make_receipt(subscription_id, int(now.timestamp() * 1000))
    order = await gateway.create_order(amount, settings.payment_currency, receipt)

    async with user_lock(user_id):
        subscription = await db.get(Subscription, subscription_id, populate_existing=True)
        if subscription is None:
            raise NotFound("No subscription requires payment", code="nothing_to_pay")
        if subscription.payment_status == PAYMENT_COMPLETED:
            logger.info("Discarding order %s: subscription %s was paid meanwhile", order.order_id, subscription_id)
            raise Conflict("Payment already completed for this subscription", code="already_paid")
        pending = await _open_order(db, subscription_id)
        if pending:
            logger.info("Discarding order %s: %s is already pending", order.order_id, pending.razorpay_order_id)
            raise Conflict(
                "A payment order is already pending for this subscription",
                code="order_pending",
                order_id=pending.razorpay_order_id,
            )

        subscription.razorpay_order_id = order.order_id
        subscription.updated_at = now
        db.add(
            Payment(
                user_id=user_id,
                subscription_id=subscription_id,
                plan_id=plan_id,
                plan_type=plan_type,
                amount=amount,
                currency=order.currency,
                razorpay_order_id=order.order_id,
                status=ORDER_CREATED,
                order_created_at=now,
                created_at=now,
                updated_at=now,
            )
        )
        try:
            await db.commit()
        except (IntegrityError, StaleDataError):
            # Rollback expires every loaded instance; only locals are safe to read
            await db.rollback()
            existing = await _open_order(db, subscription_id)
            raise Conflict(
                "A payment order is already pending for this subscription",
                code="order_pending",
                order_id=existing.razorpay_order_id if existing else None,
            ) from None

    logger.info("Order %s created for subscription %s (user %s)", order.order_id, subscription_id, user_id)
    return OrderResult(
        order_id=order.order_id,
        amount=amount,
        currency=order.currency,
        subscription_id=subscription_id,
        key_id=settings.razorpay_key_id or None,
    )


async def _subscription_for_order(db: AsyncSession, order_id: str, user_id: int) -> Subscription:
    result = await db.execute(
        select(Subscription).where(
            Subscription.razorpay_order_id == order_id,
            Subscription.user_id == user_id,
        )
        .execution_options(populate_existing=True)
    )
    subscription = result.scalar_one_or_none()
    if not subscription:
        raise NotFound("Subscription not found for this order", code="subscription_not_found")
    return subscription


async def _apply_confirmation(
    db: AsyncSession,
    subscription: Subscription,
    order_id: str,
    payment_id: str,
    signature: str | None,
    details: PaymentDetails,
    now: datetime,
) -> SubscriptionSummary:
    """Activate *subscription* for a verified payment. Exactly one caller wins."""
    subscription_id = subscription.id
    values = {
        "status": STATUS_ACTIVE,
        "payment_status": PAYMENT_COMPLETED,
        "is_trial_period": False,
        "razorpay_payment_id": payment_id,
        # The paid period restarts at confirmation time
        "start_date": now,
        "end_date": plan_end_date(subscription.plan_type, now),
        "version": Subscription.version + 1,
        "updated_at": now,
    }
    if signature:
        values["razorpay_signature"] = signature

    try:
        result = await db.execute(
            update(Subscription)
            .where(
                Subscription.id == subscription_id,
                Subscription.payment_status != PAYMENT_COMPLETED,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
    except IntegrityError:
        await db.rollback()
        raise Conflict("You already have an active subscription", code="already_subscribed") from None

    if result.rowcount != 1:
        await db.rollback()
        raise Conflict("Payment already processed", code="already_processed", subscription_id=subscription_id)

    payment_result = await db.execute(select(Payment).where(Payment.razorpay_order_id == order_id))
    payment = payment_result.scalar_one_or_none()
    if payment is None:
        logger.warning("No payment ledger row for order %s", order_id)
    elif payment.status != ORDER_CAPTURED:
        payment.status = ORDER_CAPTURED
        payment.razorpay_payment_id = payment_id
        if signature:
            payment.razorpay_signature = signature
        payment.payment_captured_at = now
        payment.method = details.method
        payment.bank = details.bank
        payment.wallet = details.wallet
        payment.vpa = details.vpa

    await db.refresh(subscription)
    user = await get_user(db, subscription.user_id)
    await refresh_user_projection(db, user, now)
    await db.commit()

    logger.info(
        "Payment %s confirmed; subscription %s active until %s",
        payment_id, subscription_id, subscription.end_date.isoformat(),
    )
    return build_summary(subscription, now)


async def verify_payment(
    db: AsyncSession,
    user_id: int,
    order_id: str | None,
    payment_id: str | None,
    signature: str | None,
    gateway: PaymentGateway,
    now: datetime | None = None,
) -> SubscriptionSummary:
    """Confirm a checkout callback and activate the paid period.

    Raises:
        ValidationError: A field is missing.
        Unauthorized: Signature mismatch. No state is touched.
        NotFound: No subscription of this user carries the order.
        Conflict: The payment was already applied.
        GatewayUnavailable: Payment details could not be fetched.
    """
    now = now or now_utc()
    if not (order_id and payment_id and signature):
        raise ValidationError("order_id, payment_id and signature are required", code="missing_fields")

    if not gateway.verify_signature(order_id, payment_id, signature):
        logger.warning("Signature verification failed for order %s (user %s)", order_id, user_id)
        raise Unauthorized("Payment verification failed", code="signature_mismatch")

    async with user_lock(user_id):
        subscription = await _subscription_for_order(db, order_id, user_id)
        if subscription.payment_status == PAYMENT_COMPLETED:
            raise Conflict("Payment already processed", code="already_processed", subscription_id=subscription.id)

        await db.commit()

    details = await gateway.fetch_payment_details(payment_id)

    # The conditional update in _apply_confirmation settles any race lost meanwhile
    async with user_lock(user_id):
        return await _apply_confirmation(db, subscription, order_id, payment_id, signature, details, now)


# --- Webhook events ---


async def _payment_for_order(db: AsyncSession, order_id: str | None) -> Payment | None:
    if not order_id:
        return None
    result = await db.execute(select(Payment).where(Payment.razorpay_order_id == order_id))
    return result.scalar_one_or_none()


async def handle_payment_captured(db: AsyncSession, entity: dict, now: datetime | None = None) -> bool:
    """Apply a signed ``payment.captured`` webhook. Returns True if it activated a subscription."""
    now = now or now_utc()
    order_id = entity.get("order_id")
    payment = await _payment_for_order(db, order_id)
    if payment is None or payment.subscription_id is None:
        logger.warning("Captured webhook for unknown order %s", order_id)
        return False

    details = PaymentDetails(
        payment_id=entity.get("id", ""),
        status=entity.get("status"),
        method=entity.get("method"),
        bank=entity.get("bank"),
        wallet=entity.get("wallet"),
        vpa=entity.get("vpa"),
    )
    async with user_lock(payment.user_id):
        subscription = await db.get(Subscription, payment.subscription_id, populate_existing=True)
        if subscription is None:
            return False
        try:
            await _apply_confirmation(db, subscription, order_id, details.payment_id, None, details, now)
        except Conflict:
            logger.info("Webhook for order %s already applied", order_id)
            return False
    return True


async def handle_payment_authorized(db: AsyncSession, entity: dict) -> None:
    payment = await _payment_for_order(db, entity.get("order_id"))
    if payment is not None and payment.status == ORDER_CREATED:
        payment.status = ORDER_AUTHORIZED
        payment.razorpay_payment_id = entity.get("id")
        await db.commit()


async def handle_payment_failed(db: AsyncSession, entity: dict) -> None:
    """Mark the open order failed so the user can request a fresh one."""
    payment = await _payment_for_order(db, entity.get("order_id"))
    if payment is None or payment.status not in OPEN_ORDER_STATUSES:
        return
    payment.status = ORDER_FAILED
    payment.razorpay_payment_id = entity.get("id")
    payment.error_code = entity.get("error_code")
    payment.error_description = entity.get("error_description")
    payment.method = entity.get("method")
    await db.commit()
    logger.info("Order %s failed: %s", payment.razorpay_order_id, payment.error_code)


# --- Cancel / status ---


async def cancel(
    db: AsyncSession, user_id: int, subscription_id: int, now: datetime | None = None
) -> SubscriptionSummary:
    """Cancel one of the user's subscriptions. Terminal rows are left as they are."""
    now = now or now_utc()
    async with user_lock(user_id):
        subscription = await db.get(Subscription, subscription_id, populate_existing=True)
        if subscription is None:
            raise NotFound("Subscription not found", code="subscription_not_found")
        if subscription.user_id != user_id:
            raise Forbidden("Subscription belongs to another user")

        if subscription.status in TERMINAL_STATUSES:
            return build_summary(subscription, now)

        subscription.status = STATUS_CANCELLED
        subscription.updated_at = now
        user = await get_user(db, user_id)
        await refresh_user_projection(db, user, now)
        try:
            await db.commit()
        except StaleDataError:
            await db.rollback()
            raise Conflict("Subscription changed concurrently, please retry", code="concurrent_update") from None

    logger.info("Subscription %s cancelled by user %s", subscription_id, user_id)
    return build_summary(subscription, now)


async def check_status(db: AsyncSession, user_id: int, now: datetime | None = None) -> StatusResult:
    """Classify the user's funnel position and the next action the client should offer."""
    now = now or now_utc()
    async with user_lock(user_id):
        user = await get_user(db, user_id)
        subscriptions = await load_subscriptions(db, user_id)

        healed = [sub for sub in subscriptions if expire_if_lapsed(sub, now)]
        changed = await refresh_user_projection(db, user, now, subscriptions)
        if healed or changed:
            if not await commit_self_heal(db):
                user = await get_user(db, user_id)
                subscriptions = await load_subscriptions(db, user_id)

    live = next((sub for sub in subscriptions if is_active(sub, now)), None)
    owed = find_payment_owed(subscriptions)

    if live is not None and live.status == STATUS_TRIAL:
        status, action, shown = CustomerStatus.TRIAL_ACTIVE, NextAction.WAIT_FOR_TRIAL_END, live
    elif live is not None:
        status, action, shown = CustomerStatus.ACTIVE_PAID, NextAction.NONE, live
    elif owed is not None:
        status, action, shown = CustomerStatus.TRIAL_EXPIRED, NextAction.CREATE_PAYMENT, owed
    elif subscriptions and user.has_used_trial:
        status, action, shown = CustomerStatus.TRIAL_USED, NextAction.SUBSCRIBE_PAID, subscriptions[0]
    else:
        status = CustomerStatus.NO_SUBSCRIPTION
        action = NextAction.SUBSCRIBE_PAID if user.has_used_trial else NextAction.START_TRIAL
        shown = None

    return StatusResult(
        status=status,
        next_action=action,
        can_start_trial=live is None and not user.has_used_trial,
        subscription=build_summary(shown, now) if shown is not None else None,
    )


async def latest_subscription(db: AsyncSession, user_id: int, now: datetime | None = None) -> SubscriptionSummary | None:
    now = now or now_utc()
    subscriptions = await load_subscriptions(db, user_id)
    return build_summary(subscriptions[0], now) if subscriptions else None


async def payment_history(db: AsyncSession, user_id: int) -> list[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.user_id == user_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
    )
    return list(result.scalars().all())
