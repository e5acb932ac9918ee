"""Plan catalog — read access plus the empty-catalog bootstrap."""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from learngate.constants import PLAN_DESCRIPTIONS, PLAN_PRICES, PLAN_TYPES
from learngate.errors import NotFound
from learngate.models.plan import Plan

logger = logging.getLogger(__name__)


async def list_active_plans(db: AsyncSession) -> list[Plan]:
    result = await db.execute(select(Plan).where(Plan.is_active == True).order_by(Plan.price))
    return list(result.scalars().all())


async def ensure_default_plans(db: AsyncSession) -> list[Plan]:
    """Return active plans, seeding the default catalog when none are active.

    Only plan types missing entirely are created; a plan an admin deactivated
    stays deactivated.
    """
    plans = await list_active_plans(db)
    if plans:
        return plans

    existing = set((await db.execute(select(Plan.plan_type))).scalars().all())
    created = 0
    for plan_type in PLAN_TYPES:
        if plan_type in existing:
            continue
        db.add(
            Plan(
                plan_type=plan_type,
                price=PLAN_PRICES[plan_type],
                description=PLAN_DESCRIPTIONS[plan_type],
                is_active=True,
            )
        )
        created += 1

    if created:
        await db.commit()
        logger.info("Seeded %d default subscription plans", created)
    return await list_active_plans(db)


async def find_active_plan(db: AsyncSession, plan_type: str) -> Plan:
    """Look up an active plan by type.

    Raises:
        NotFound: If the catalog has no active plan of that type.
    """
    result = await db.execute(
        select(Plan).where(Plan.plan_type == plan_type, Plan.is_active == True)
    )
    plan = result.scalar_one_or_none()
    if not plan:
        raise NotFound("Subscription plan not found", code="plan_not_found", plan_type=plan_type)
    return plan
