"""Access gate — decides whether a user may use paid content right now."""

import logging
from datetime import datetime

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from learngate.constants import OPEN_STATUSES
from learngate.db.session import get_db
from learngate.models.user import User
from learngate.schemas.subscription import AccessDecision, DenyReason
from learngate.services.access_policy import is_active
from learngate.services.auth_service import get_current_user
from learngate.services.subscription_service import (
    build_summary,
    commit_self_heal,
    expire_if_lapsed,
    find_payment_owed,
    user_lock,
)
from learngate.services.user_service import get_user, load_subscriptions, refresh_user_projection
from learngate.utils import now_utc

logger = logging.getLogger(__name__)


async def is_access_allowed(db: AsyncSession, user_id: int, now: datetime | None = None) -> AccessDecision:
    """Allow iff the user's open subscription is active at *now*.

    A lapsed open subscription is persisted as expired on the way out.
    """
    now = now or now_utc()
    subscriptions = await load_subscriptions(db, user_id)
    current = next((sub for sub in subscriptions if sub.status in OPEN_STATUSES), None)

    if current is None:
        owed = find_payment_owed(subscriptions)
        if owed is not None:
            return AccessDecision(
                allowed=False, reason=DenyReason.TRIAL_EXPIRED, subscription=build_summary(owed, now)
            )
        return AccessDecision(allowed=False, reason=DenyReason.REQUIRES_SUBSCRIPTION)

    if is_active(current, now):
        return AccessDecision(allowed=True, subscription=build_summary(current, now))

    reason = DenyReason.TRIAL_EXPIRED if current.is_trial_period else DenyReason.SUBSCRIPTION_EXPIRED
    async with user_lock(user_id):
        user = await get_user(db, user_id)
        if expire_if_lapsed(current, now):
            await refresh_user_projection(db, user, now, subscriptions)
            if not await commit_self_heal(db):
                await db.refresh(current)
                if is_active(current, now):
                    return AccessDecision(allowed=True, subscription=build_summary(current, now))
    logger.info("Access denied for user %s: %s", user_id, reason.value)
    return AccessDecision(allowed=False, reason=reason, subscription=build_summary(current, now))


async def require_active_subscription(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> User:
    """FastAPI dependency: 403 unless the current user has access.

    The decision's subscription summary is exposed on ``request.state.subscription``.
    """
    decision = await is_access_allowed(db, user.id)
    if not decision.allowed:
        raise HTTPException(
            status_code=403,
            detail={
                "message": "An active subscription is required",
                "reason": decision.reason.value,
                "requires_subscription": True,
            },
        )
    request.state.subscription = decision.subscription
    return user
