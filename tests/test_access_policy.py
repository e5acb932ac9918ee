"""Tests for the pure access rules."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from conftest import T0

from learngate.services.access_policy import (
    derived_status,
    is_active,
    plan_end_date,
    remaining_days,
    trial_end_date,
)


@dataclass
class Snapshot:
    status: str
    end_date: datetime
    trial_end_date: datetime | None = None


def _trial(start=T0):
    trial_end = trial_end_date(start)
    return Snapshot(status="trial", end_date=plan_end_date("monthly", trial_end), trial_end_date=trial_end)


class TestDates:
    def test_trial_is_three_days(self):
        assert trial_end_date(T0) == T0 + timedelta(days=3)

    def test_plan_durations_are_fixed_day_counts(self):
        assert plan_end_date("monthly", T0) == T0 + timedelta(days=30)
        assert plan_end_date("quarterly", T0) == T0 + timedelta(days=90)
        assert plan_end_date("yearly", T0) == T0 + timedelta(days=360)


class TestIsActive:
    def test_trial_active_inside_window(self):
        assert is_active(_trial(), T0 + timedelta(days=1))

    def test_trial_boundary_is_inclusive(self):
        sub = _trial()
        assert is_active(sub, sub.trial_end_date)
        assert not is_active(sub, sub.trial_end_date + timedelta(microseconds=1))

    def test_trial_uses_trial_end_not_plan_end(self):
        sub = _trial()
        assert not is_active(sub, T0 + timedelta(days=10))

    def test_active_boundary_is_inclusive(self):
        sub = Snapshot(status="active", end_date=T0 + timedelta(days=30))
        assert is_active(sub, sub.end_date)
        assert not is_active(sub, sub.end_date + timedelta(seconds=1))

    def test_terminal_statuses_never_active(self):
        future = T0 + timedelta(days=100)
        for status in ("expired", "cancelled"):
            assert not is_active(Snapshot(status=status, end_date=future, trial_end_date=future), T0)


class TestRemainingDays:
    def test_rounds_up_partial_days(self):
        sub = _trial()
        assert remaining_days(sub, T0) == 3
        assert remaining_days(sub, T0 + timedelta(hours=1)) == 3
        assert remaining_days(sub, T0 + timedelta(days=2, hours=23)) == 1

    def test_never_negative(self):
        sub = _trial()
        assert remaining_days(sub, T0 + timedelta(days=50)) == 0

    def test_decreases_as_now_advances(self):
        sub = Snapshot(status="active", end_date=T0 + timedelta(days=30))
        values = [remaining_days(sub, T0 + timedelta(days=d)) for d in range(0, 31)]
        assert values == sorted(values, reverse=True)
        assert all(a > b for a, b in zip(values, values[1:]))


class TestDerivedStatus:
    def test_lapsed_trial_becomes_expired(self):
        assert derived_status(_trial(), T0 + timedelta(days=4)) == "expired"

    def test_lapsed_active_becomes_expired(self):
        sub = Snapshot(status="active", end_date=T0)
        assert derived_status(sub, T0 + timedelta(days=1)) == "expired"

    def test_live_rows_keep_status(self):
        assert derived_status(_trial(), T0) == "trial"

    def test_cancelled_never_changes(self):
        sub = Snapshot(status="cancelled", end_date=T0, trial_end_date=T0)
        assert derived_status(sub, T0 + timedelta(days=365)) == "cancelled"
