"""Plan catalog: fixed plan shapes, DB-backed plan rows, cached listing."""

import logging
from dataclasses import dataclass

from pydantic import TypeAdapter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin import cache
from tiffin.config import get_settings
from tiffin.constants import PLANS_CACHE_TTL
from tiffin.errors import NotFoundError, ValidationError
from tiffin.models.enums import PlanType
from tiffin.models.plan import Plan
from tiffin.schemas.plan import PlanOut

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlanConfig:
    """Static shape of a purchasable tier. ``price`` is in paisa."""

    type: PlanType
    label: str
    price: int
    display_price: str
    duration_days: int
    description: str
    per_month_display: str


SUBSCRIPTION_PLANS: dict[PlanType, PlanConfig] = {
    PlanType.BASE_MONTHLY: PlanConfig(
        type=PlanType.BASE_MONTHLY,
        label="1 Month",
        price=599_00,
        display_price="Rs. 599",
        duration_days=30,
        description="Standard monthly subscription",
        per_month_display="Rs. 599/mo",
    ),
    PlanType.BASE_2MONTH: PlanConfig(
        type=PlanType.BASE_2MONTH,
        label="2 Months",
        price=1_099_00,
        display_price="Rs. 1,099",
        duration_days=60,
        description="Save Rs. 99 with 2-month plan",
        per_month_display="Rs. 550/mo",
    ),
    PlanType.BASE_4MONTH: PlanConfig(
        type=PlanType.BASE_4MONTH,
        label="4 Months",
        price=2_099_00,
        display_price="Rs. 2,099",
        duration_days=120,
        description="Best value, save Rs. 297",
        per_month_display="Rs. 525/mo",
    ),
}

DEFAULT_PLAN_NAME = "Smart Tiffin Pro"
DEFAULT_PLAN_DESCRIPTION = "Full access to the Smart Tiffin platform for home cooks"
DEFAULT_PLAN_FEATURES = [
    "Kitchen listing on platform",
    "Unlimited menu items",
    "Order management dashboard",
    "Customer reviews & analytics",
    "Priority in search results",
]

_plan_list_adapter = TypeAdapter(list[PlanOut])


def get_plan_config(plan_type: PlanType | str) -> PlanConfig:
    """Look up a static plan shape, raising ValidationError for unknown types."""
    try:
        return SUBSCRIPTION_PLANS[PlanType(plan_type)]
    except ValueError:
        raise ValidationError(
            "Invalid plan type",
            details={"plan_type": [f"Must be one of: {', '.join(t.value for t in PlanType)}"]},
        )


def resolve_price_id(plan: Plan, plan_type: PlanType) -> str | None:
    """Map a plan type onto the plan row's Stripe recurring price id (if provisioned)."""
    return {
        PlanType.BASE_MONTHLY: plan.stripe_price_id_monthly,
        PlanType.BASE_2MONTH: plan.stripe_price_id_quarterly,
        PlanType.BASE_4MONTH: plan.stripe_price_id_yearly,
    }[plan_type]


async def list_plans(db: AsyncSession, region: str | None = None) -> list[PlanOut]:
    """Return active plans for a region, cached for PLANS_CACHE_TTL."""
    region = region or get_settings().default_region
    key = cache.plans_key(region)

    raw = await cache.get_cached(key)
    if raw is not None:
        return _plan_list_adapter.validate_json(raw)

    result = await db.execute(
        select(Plan).where(Plan.region == region, Plan.is_active == True).order_by(Plan.id)
    )
    plans = [PlanOut.model_validate(p) for p in result.scalars().all()]
    await cache.set_cached(key, _plan_list_adapter.dump_json(plans).decode(), PLANS_CACHE_TTL)
    return plans


async def get_active_plan(db: AsyncSession, region: str) -> Plan:
    """The single active plan that resolves checkout pricing for a region."""
    result = await db.execute(
        select(Plan)
        .where(Plan.region == region, Plan.is_active == True)
        .order_by(Plan.id)
        .limit(1)
    )
    plan = result.scalar_one_or_none()
    if not plan:
        raise NotFoundError("Premium plan")
    return plan


def _default_plan_values(region: str) -> dict:
    settings = get_settings()
    return {
        "name": DEFAULT_PLAN_NAME,
        "description": DEFAULT_PLAN_DESCRIPTION,
        "price_monthly": SUBSCRIPTION_PLANS[PlanType.BASE_MONTHLY].price,
        "price_quarterly": SUBSCRIPTION_PLANS[PlanType.BASE_2MONTH].price,
        "price_yearly": SUBSCRIPTION_PLANS[PlanType.BASE_4MONTH].price,
        "currency": settings.currency,
        "region": region,
        "features": list(DEFAULT_PLAN_FEATURES),
    }


async def ensure_default_plan(db: AsyncSession, region: str) -> Plan:
    """Return the region's active plan, adding a default one if there is none.

    Does not commit; the caller's unit of work owns the insert.
    """
    result = await db.execute(
        select(Plan).where(Plan.region == region, Plan.is_active == True).order_by(Plan.id).limit(1)
    )
    plan = result.scalar_one_or_none()
    if plan:
        return plan

    plan = Plan(**_default_plan_values(region), is_active=True)
    db.add(plan)
    await db.flush()
    logger.warning("No active plan for region %s; seeded default plan %s", region, plan.id)
    return plan


async def upsert_plan(db: AsyncSession, region: str) -> tuple[Plan, bool]:
    """Idempotent admin seed keyed on region + active flag.

    Refreshes pricing on the existing active plan, or creates one. Returns
    ``(plan, created)``.
    """
    result = await db.execute(
        select(Plan).where(Plan.region == region, Plan.is_active == True).order_by(Plan.id).limit(1)
    )
    plan = result.scalar_one_or_none()
    values = _default_plan_values(region)

    created = plan is None
    if created:
        plan = Plan(**values, is_active=True)
        db.add(plan)
    else:
        for key, value in values.items():
            setattr(plan, key, value)
        plan.includes_verified_badge = False
        plan.includes_boost = False
        plan.boost_duration_days = None

    await db.commit()
    await db.refresh(plan)
    await cache.invalidate(cache.plans_key(region))

    logger.info("%s plan %s for region %s", "Created" if created else "Updated", plan.id, region)
    return plan, created
