from pydantic import BaseModel, Field
from typing import Generic, List, Optional, TypeVar
from datetime import datetime
import math

from food_service.models import FoodStatus, OrderStatus, StockChangeType

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    success: bool
    message: str
    data: Optional[T] = None
    errors: Optional[List[str]] = None


class Page(BaseModel, Generic[T]):
    data: List[T]
    total: int
    page: int
    limit: int
    total_pages: int = Field(alias="totalPages")
    has_next: bool = Field(alias="hasNext")
    has_prev: bool = Field(alias="hasPrev")

    class Config:
        populate_by_name = True

    @classmethod
    def build(cls, data, total: int, page: int, limit: int):
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            data=data,
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


# ----- Foods -----

class FoodCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, example="Tonkotsu Ramen")
    description: Optional[str] = Field(None, max_length=500)
    price: float = Field(..., gt=0)
    category_id: Optional[int] = Field(None, gt=0)
    status: FoodStatus = FoodStatus.ACTIVE
    stock: int = Field(0, ge=0)
    min_stock: int = Field(5, ge=0)


class FoodUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    price: Optional[float] = Field(None, gt=0)
    category_id: Optional[int] = Field(None, gt=0)
    status: Optional[FoodStatus] = None
    min_stock: Optional[int] = Field(None, ge=0)


class FoodRead(BaseModel):
    id: int
    name: str
    description: Optional[str]
    price: float
    category_id: Optional[int]
    status: FoodStatus
    stock: int
    reserved: int
    available: int
    min_stock: int
    is_low_stock: bool

    class Config:
        from_attributes = True


class FoodBrief(BaseModel):
    id: int
    name: str
    price: float
    status: FoodStatus

    class Config:
        from_attributes = True


# ----- Inventory -----

class StockAdjustRequest(BaseModel):
    quantity: int = Field(..., gt=0, example=10)
    operation: StockChangeType = Field(..., example="add")
    note: Optional[str] = Field(None, max_length=500)


class StockInfoRead(BaseModel):
    food_id: int = Field(alias="foodId")
    stock: int
    reserved: int
    available: int
    min_stock: int = Field(alias="minStock")
    is_low_stock: bool = Field(alias="isLowStock")

    class Config:
        from_attributes = True
        populate_by_name = True


class InventoryHistoryRead(BaseModel):
    id: int
    food_id: int
    change_type: StockChangeType
    quantity: int
    previous_stock: int
    new_stock: int
    previous_reserved: int
    new_reserved: int
    order_id: Optional[int]
    created_by: Optional[int]
    note: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


# ----- Cart -----

class AddCartItemRequest(BaseModel):
    food_id: int = Field(..., gt=0, example=5)
    quantity: int = Field(..., ge=1, le=99, example=2)


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(..., ge=0, le=99, example=3)


class CartItemRead(BaseModel):
    id: int
    food_id: int
    quantity: int
    subtotal: float
    food: FoodBrief

    class Config:
        from_attributes = True


class CartSummaryRead(BaseModel):
    total_items: int = Field(alias="totalItems")
    total_amount: float = Field(alias="totalAmount")
    item_count: int = Field(alias="itemCount")

    class Config:
        from_attributes = True
        populate_by_name = True


class CartRead(BaseModel):
    id: int
    user_id: int
    items: List[CartItemRead]
    summary: CartSummaryRead


class CartItemChange(BaseModel):
    item: Optional[CartItemRead] = None
    summary: CartSummaryRead


class CartCleared(BaseModel):
    cleared: int


# ----- Orders -----

class CheckoutRequest(BaseModel):
    delivery_address: str = Field(..., min_length=10, max_length=200, example="1-2-3 Shibuya, Tokyo 150-0002")
    phone: str = Field(..., min_length=10, max_length=20, pattern=r"^[0-9\-+().\s]+$", example="090-1234-5678")
    notes: Optional[str] = Field(None, max_length=500)


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus
    note: Optional[str] = Field(None, max_length=500)


class OrderItemRead(BaseModel):
    id: int
    food_id: int
    food_name: str
    quantity: int
    price: float
    subtotal: float

    class Config:
        from_attributes = True


class OrderSummaryRead(BaseModel):
    item_count: int = Field(alias="itemCount")
    total_quantity: int = Field(alias="totalQuantity")
    total_amount: float = Field(alias="totalAmount")

    class Config:
        from_attributes = True
        populate_by_name = True


class OrderRead(BaseModel):
    id: int
    user_id: int
    total_amount: float
    status: OrderStatus
    delivery_address: str
    phone: str
    notes: Optional[str]
    order_date: datetime
    updated_at: datetime
    items: List[OrderItemRead]
    summary: OrderSummaryRead


class OrderStatusHistoryRead(BaseModel):
    id: int
    order_id: int
    previous_status: Optional[OrderStatus]
    new_status: OrderStatus
    updated_by: Optional[int]
    note: Optional[str]
    updated_at: datetime

    class Config:
        from_attributes = True


class OrderStatsRead(BaseModel):
    total_orders: int
    total_revenue: float
    status_breakdown: dict
    recent_orders: List[OrderRead]
