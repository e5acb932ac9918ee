"""Access decision rules and date arithmetic.

Pure functions over a subscription snapshot and an explicit ``now``. The
orchestrator, the access gate and the reconciliation sweep all derive status
from these, so concurrent writers always converge on the same value.
"""

import math
from datetime import datetime, timedelta
from typing import Protocol

from learngate.constants import (
    PLAN_DURATION_DAYS,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_EXPIRED,
    STATUS_TRIAL,
    TRIAL_DAYS,
)
from learngate.utils import ensure_utc

_SECONDS_PER_DAY = 86400


class SubscriptionSnapshot(Protocol):
    """The fields the access rules read. Satisfied by the Subscription model."""

    status: str
    end_date: datetime
    trial_end_date: datetime | None


def trial_end_date(start: datetime) -> datetime:
    """Trial window end: ``TRIAL_DAYS`` after *start*."""
    return start + timedelta(days=TRIAL_DAYS)


def plan_end_date(plan_type: str, start: datetime) -> datetime:
    """Paid window end for *plan_type* starting at *start*.

    Raises:
        KeyError: If the plan type is unknown.
    """
    return start + timedelta(days=PLAN_DURATION_DAYS[plan_type])


def _relevant_end(sub: SubscriptionSnapshot) -> datetime | None:
    if sub.status == STATUS_TRIAL:
        return ensure_utc(sub.trial_end_date)
    return ensure_utc(sub.end_date)


def is_active(sub: SubscriptionSnapshot, now: datetime) -> bool:
    """True while the subscription grants access. The end instant itself is included."""
    if sub.status == STATUS_TRIAL:
        end = ensure_utc(sub.trial_end_date)
        return end is not None and now <= end
    if sub.status == STATUS_ACTIVE:
        return now <= ensure_utc(sub.end_date)
    return False


def remaining_days(sub: SubscriptionSnapshot, now: datetime) -> int:
    """Whole days left (rounded up) until the relevant end date, never negative."""
    end = _relevant_end(sub)
    if end is None:
        return 0
    seconds = (end - now).total_seconds()
    return max(0, math.ceil(seconds / _SECONDS_PER_DAY))


def derived_status(sub: SubscriptionSnapshot, now: datetime) -> str:
    """The status the row should carry at *now*, independent of what is stored."""
    if sub.status in (STATUS_CANCELLED, STATUS_EXPIRED):
        return sub.status
    if sub.status in (STATUS_TRIAL, STATUS_ACTIVE) and not is_active(sub, now):
        return STATUS_EXPIRED
    return sub.status
