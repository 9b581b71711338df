"""Order-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from tiffin.constants import ORDER_ITEM_MAX_QUANTITY, ORDER_MAX_ITEMS
from tiffin.models.enums import OrderStatus


class OrderItemIn(BaseModel):
    meal_id: int
    quantity: int = Field(..., ge=1, le=ORDER_ITEM_MAX_QUANTITY)
    notes: str | None = Field(None, max_length=500)


class OrderCreate(BaseModel):
    kitchen_id: int
    items: list[OrderItemIn] = Field(..., min_length=1, max_length=ORDER_MAX_ITEMS)
    notes: str | None = Field(None, max_length=1000)


class OrderItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    meal_id: int
    quantity: int
    price_at_order: int
    notes: str | None = None


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kitchen_id: int
    customer_id: int
    status: OrderStatus
    total_amount: int
    currency: str
    notes: str | None = None
    items: list[OrderItemOut] = []
    created_at: datetime
