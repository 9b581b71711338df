"""Order placement route."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tiffin.db.session import get_db
from tiffin.models.user import User
from tiffin.schemas.order import OrderCreate, OrderOut
from tiffin.services.auth_service import get_current_user
from tiffin.services.order_service import place_order

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
async def create_order(
    body: OrderCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await place_order(db, user.id, body)
