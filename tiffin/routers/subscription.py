"""Seller subscription routes: status, trial, checkout, cancel."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.db.session import get_db
from tiffin.schemas.subscription import (
    CancelRequest,
    CancelResult,
    CheckoutRequest,
    CheckoutResult,
    SubscriptionOut,
    SubscriptionStatusResult,
)
from tiffin.services.auth_service import SellerContext, require_seller
from tiffin.services.subscription_service import (
    cancel_subscription,
    create_subscription_checkout,
    get_subscription_status,
    start_free_trial,
)

router = APIRouter(prefix="/api/seller/subscription", tags=["subscription"])


@router.get("/status", response_model=SubscriptionStatusResult)
async def subscription_status(
    seller: SellerContext = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await get_subscription_status(db, seller.kitchen.id)


@router.post("/trial", response_model=SubscriptionOut)
async def start_trial(
    seller: SellerContext = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await start_free_trial(db, seller.kitchen.id, seller.user.id)


@router.post("/checkout", response_model=CheckoutResult)
async def checkout(
    body: CheckoutRequest,
    seller: SellerContext = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await create_subscription_checkout(
        db, seller.user.id, seller.kitchen.id, body.plan_type, body.payment_method
    )


@router.post("/cancel", response_model=CancelResult)
async def cancel(
    body: CancelRequest,
    seller: SellerContext = Depends(require_seller),
    db: AsyncSession = Depends(get_db),
):
    return await cancel_subscription(db, body.subscription_id, seller.user.id, body.reason)
