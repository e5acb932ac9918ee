"""User lookups and the subscription flag projection.

The flags on User are a materialized view of the user's subscription rows.
They are always recomputed from the full row set, never patched one field at
a time.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from learngate.constants import STATUS_TRIAL
from learngate.errors import NotFound
from learngate.models.subscription import Subscription
from learngate.models.user import User
from learngate.services.access_policy import is_active

logger = logging.getLogger(__name__)


async def get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound("User not found", code="user_not_found")
    return user


async def load_subscriptions(db: AsyncSession, user_id: int) -> list[Subscription]:
    """All of a user's subscription rows, newest first, as currently stored."""
    result = await db.execute(
        select(Subscription)
        .where(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def fold_projection(subscriptions: list[Subscription], now: datetime) -> dict[str, Any]:
    """Compute the user flags from *subscriptions* (newest first)."""
    live = [sub for sub in subscriptions if is_active(sub, now)]
    trials = [sub for sub in subscriptions if sub.trial_start_date is not None]
    latest_trial = trials[0] if trials else None
    return {
        "has_used_trial": bool(trials),
        "has_active_subscription": bool(live),
        "is_trial_active": any(sub.status == STATUS_TRIAL for sub in live),
        "trial_start_date": latest_trial.trial_start_date if latest_trial else None,
        "trial_end_date": latest_trial.trial_end_date if latest_trial else None,
    }


async def refresh_user_projection(
    db: AsyncSession,
    user: User,
    now: datetime,
    subscriptions: list[Subscription] | None = None,
) -> bool:
    """Rewrite the user's flags from their subscription rows. Does not commit.

    Returns True if any flag changed.
    """
    if subscriptions is None:
        await db.flush()
        subscriptions = await load_subscriptions(db, user.id)

    flags = fold_projection(subscriptions, now)
    changed = False
    for key, value in flags.items():
        if getattr(user, key) != value:
            setattr(user, key, value)
            changed = True

    if changed:
        logger.debug("Projection for user %s updated: %s", user.id, flags)
    return changed
