"""Scheduler tasks — reconciliation sweep and retention purge.

Both run from the ARQ worker cron; the ``learngate`` CLI runs them by hand.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased
from sqlalchemy.orm.exc import StaleDataError

from learngate.config import get_settings
from learngate.constants import OPEN_STATUSES, ORDER_FAILED, STATUS_EXPIRED
from learngate.db.session import async_session_factory
from learngate.models.payment import Payment
from learngate.models.subscription import Subscription
from learngate.services.subscription_service import expire_if_lapsed
from learngate.services.user_service import get_user, refresh_user_projection
from learngate.utils import now_utc

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    checked: int = 0
    expired: int = 0
    skipped: int = 0
    failed: int = 0
    users_refreshed: set[int] = field(default_factory=set)


@dataclass
class PurgeReport:
    subscriptions_deleted: int = 0
    payments_deleted: int = 0


async def _expire_one(db: AsyncSession, subscription_id: int, now: datetime) -> int | None:
    """Expire one subscription if it lapsed. Returns its user id when it changed."""
    sub = await db.get(Subscription, subscription_id)
    if sub is None or not expire_if_lapsed(sub, now):
        return None
    await db.commit()
    return sub.user_id


async def reconcile_subscriptions(
    session_factory: async_sessionmaker = async_session_factory,
    now: datetime | None = None,
) -> ReconcileReport:
    """Persist ``expired`` on every open subscription whose window has passed.

    Each row commits on its own; a failing row is logged and left for the
    next run. Losing the store itself (``OperationalError``/``InterfaceError``)
    aborts the whole cycle. The affected users' flags are recomputed afterwards.
    """
    now = now or now_utc()

    async with session_factory() as db:
        result = await db.execute(
            select(Subscription.id).where(Subscription.status.in_(OPEN_STATUSES)).order_by(Subscription.id)
        )
        candidate_ids = list(result.scalars().all())

    report = ReconcileReport(checked=len(candidate_ids))
    for subscription_id in candidate_ids:
        try:
            async with session_factory() as db:
                user_id = await _expire_one(db, subscription_id, now)
        except StaleDataError:
            # Another writer changed the row since it was read
            logger.info("Subscription %s changed concurrently, skipping", subscription_id)
            report.skipped += 1
            continue
        except (OperationalError, InterfaceError):
            logger.error("Store unavailable at subscription %s, aborting reconciliation", subscription_id)
            raise
        except Exception:
            logger.exception("Failed to reconcile subscription %s", subscription_id)
            report.failed += 1
            continue
        if user_id is not None:
            report.expired += 1
            report.users_refreshed.add(user_id)

    for user_id in sorted(report.users_refreshed):
        try:
            async with session_factory() as db:
                user = await get_user(db, user_id)
                await refresh_user_projection(db, user, now)
                await db.commit()
        except (OperationalError, InterfaceError):
            logger.error("Store unavailable while refreshing user %s, aborting reconciliation", user_id)
            raise
        except Exception:
            logger.exception("Failed to refresh flags for user %s", user_id)
            report.failed += 1

    logger.info(
        "Reconciliation: checked %d, expired %d, skipped %d, failed %d",
        report.checked, report.expired, report.skipped, report.failed,
    )
    return report


async def purge_stale_records(
    session_factory: async_sessionmaker = async_session_factory,
    now: datetime | None = None,
) -> PurgeReport:
    """Delete expired subscriptions and failed payment rows past their retention window.

    A user's newest subscription is never purged: it is the record that the
    trial was used, and start_trial would otherwise grant a second one.
    """
    settings = get_settings()
    now = now or now_utc()
    subscription_cutoff = now - timedelta(days=settings.expired_subscription_retention_days)
    payment_cutoff = now - timedelta(days=settings.failed_payment_retention_days)

    newer = aliased(Subscription)
    superseded = (
        select(newer.id)
        .where(newer.user_id == Subscription.user_id, newer.id > Subscription.id)
        .correlate(Subscription)
        .exists()
    )

    async with session_factory() as db:
        subs = await db.execute(
            delete(Subscription).where(
                Subscription.status == STATUS_EXPIRED,
                Subscription.updated_at < subscription_cutoff,
                superseded,
            )
            .execution_options(synchronize_session=False)
        )
        payments = await db.execute(
            delete(Payment).where(
                Payment.status == ORDER_FAILED,
                Payment.created_at < payment_cutoff,
            )
        )
        await db.commit()

    report = PurgeReport(subscriptions_deleted=subs.rowcount, payments_deleted=payments.rowcount)
    logger.info(
        "Purge: deleted %d expired subscriptions, %d failed payments",
        report.subscriptions_deleted, report.payments_deleted,
    )
    return report

