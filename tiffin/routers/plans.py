"""Premium routes: public plan catalog plus the older kitchen-addressed checkout and status."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.db.session import get_db
from tiffin.models.user import User
from tiffin.schemas.plan import PlanOut
from tiffin.schemas.subscription import CheckoutResult, LegacyCheckoutRequest, SubscriptionStatusResult
from tiffin.services.auth_service import get_owned_kitchen, require_seller_role
from tiffin.services.plan_catalog import list_plans
from tiffin.services.subscription_service import create_subscription_checkout, get_subscription_status

router = APIRouter(prefix="/api/premium", tags=["plans"])


@router.get("/plans", response_model=list[PlanOut])
async def get_plans(
    region: str | None = Query(None, max_length=16),
    db: AsyncSession = Depends(get_db),
):
    return await list_plans(db, region)


@router.post("/checkout", response_model=CheckoutResult)
async def legacy_checkout(
    body: LegacyCheckoutRequest,
    user: User = Depends(require_seller_role),
    db: AsyncSession = Depends(get_db),
):
    """Superseded by /api/seller/subscription/checkout; kept for older clients."""
    kitchen = await get_owned_kitchen(db, user, body.kitchen_id)
    return await create_subscription_checkout(
        db, user.id, kitchen.id, body.resolved_plan_type(), body.payment_method
    )


@router.get("/status", response_model=SubscriptionStatusResult | None)
async def legacy_status(
    kitchen_id: int | None = Query(None),
    user: User = Depends(require_seller_role),
    db: AsyncSession = Depends(get_db),
):
    if kitchen_id is None:
        return None
    kitchen = await get_owned_kitchen(db, user, kitchen_id)
    return await get_subscription_status(db, kitchen.id)
