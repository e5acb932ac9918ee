"""Tests for the access gate."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from conftest import T0, sign

from learngate.models.subscription import Subscription
from learngate.schemas.subscription import DenyReason
from learngate.services.access_gate import is_access_allowed
from learngate.services.subscription_service import check_status, request_payment, start_trial, verify_payment
from learngate.services.user_service import get_user


class TestIsAccessAllowed:
    @pytest.mark.asyncio
    async def test_user_without_rows(self, db, user):
        decision = await is_access_allowed(db, user.id, now=T0)
        assert decision.allowed is False
        assert decision.reason == DenyReason.REQUIRES_SUBSCRIPTION
        assert decision.subscription is None

    @pytest.mark.asyncio
    async def test_trial_allows(self, db, user):
        await start_trial(db, user.id, "monthly", now=T0)
        decision = await is_access_allowed(db, user.id, now=T0 + timedelta(days=3))
        assert decision.allowed is True
        assert decision.reason is None
        assert decision.subscription.status == "trial"

    @pytest.mark.asyncio
    async def test_lapsed_trial_denied_and_persisted(self, db, user):
        summary = await start_trial(db, user.id, "monthly", now=T0)

        decision = await is_access_allowed(db, user.id, now=T0 + timedelta(days=3, seconds=1))

        assert decision.allowed is False
        assert decision.reason == DenyReason.TRIAL_EXPIRED
        await db.commit()
        sub = (
            await db.execute(
                select(Subscription)
                .where(Subscription.id == summary.id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one()
        assert sub.status == "expired"
        assert sub.payment_status == "pending"
        refreshed = await get_user(db, user.id)
        assert refreshed.has_active_subscription is False

    @pytest.mark.asyncio
    async def test_already_expired_trial_still_reports_payment_owed(self, db, user):
        await start_trial(db, user.id, "monthly", now=T0)
        await check_status(db, user.id, now=T0 + timedelta(days=4))

        decision = await is_access_allowed(db, user.id, now=T0 + timedelta(days=5))
        assert decision.allowed is False
        assert decision.reason == DenyReason.TRIAL_EXPIRED

    @pytest.mark.asyncio
    async def test_lapsed_paid_period(self, db, user, gateway):
        await start_trial(db, user.id, "monthly", now=T0)
        paid_at = T0 + timedelta(days=4)
        order = await request_payment(db, user.id, gateway, now=paid_at)
        await verify_payment(
            db, user.id, order.order_id, "pay_1", sign(order.order_id, "pay_1"), gateway, now=paid_at
        )

        assert (await is_access_allowed(db, user.id, now=paid_at + timedelta(days=30))).allowed is True

        decision = await is_access_allowed(db, user.id, now=paid_at + timedelta(days=31))
        assert decision.allowed is False
        assert decision.reason == DenyReason.SUBSCRIPTION_EXPIRED
