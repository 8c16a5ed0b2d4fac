from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from food_service import cart as carts
from food_service import catalog, messaging
from food_service.checkout import checkout
from food_service.database import get_session
from food_service.deps import get_cache, get_current_user_id
from food_service.errors import NotFound
from food_service.routers import ok
from food_service.routers.orders import order_to_read
from food_service.schemas import (
    AddCartItemRequest,
    ApiResponse,
    CartCleared,
    CartItemChange,
    CartItemRead,
    CartRead,
    CartSummaryRead,
    CheckoutRequest,
    OrderRead,
    UpdateCartItemRequest,
)

router = APIRouter(prefix="/api/cart", tags=["cart"])


def cart_to_read(cart) -> CartRead:
    return CartRead(
        id=cart.id,
        user_id=cart.user_id,
        items=[CartItemRead.model_validate(item) for item in cart.items],
        summary=CartSummaryRead.model_validate(carts.summarize(cart)),
    )


async def _change(session: AsyncSession, user_id: int, item=None) -> CartItemChange:
    cart = await carts.get_cart(session, user_id)
    item_read = None
    if item is not None:
        item_read = next(CartItemRead.model_validate(i) for i in cart.items if i.id == item.id)
    return CartItemChange(item=item_read, summary=CartSummaryRead.model_validate(carts.summarize(cart)))


@router.get("", response_model=ApiResponse[CartRead])
async def get_cart(
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    cart = await carts.get_cart(session, user_id)
    return ok(cart_to_read(cart))


@router.post("/items", response_model=ApiResponse[CartItemChange], status_code=201)
async def add_item(
    body: AddCartItemRequest,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    item = await carts.add_item(session, user_id, body.food_id, body.quantity)
    return ok(await _change(session, user_id, item), "Item added to cart")


@router.put("/items/{item_id}", response_model=ApiResponse[CartItemChange])
async def update_item(
    item_id: int,
    body: UpdateCartItemRequest,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    item = await carts.update_item(session, user_id, item_id, body.quantity)
    message = "Cart item updated" if item is not None else "Item removed from cart"
    return ok(await _change(session, user_id, item), message)


@router.delete("/items/{item_id}", response_model=ApiResponse[CartItemChange])
async def remove_item(
    item_id: int,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    if not await carts.remove_item(session, user_id, item_id):
        raise NotFound("Cart item not found")
    return ok(await _change(session, user_id), "Item removed from cart")


@router.delete("", response_model=ApiResponse[CartCleared])
async def clear_cart(
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    cleared = await carts.clear(session, user_id)
    return ok(CartCleared(cleared=cleared), "Cart cleared")


@router.post("/checkout", response_model=ApiResponse[OrderRead], status_code=201)
async def checkout_cart(
    body: CheckoutRequest,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    cache=Depends(get_cache),
):
    order = await checkout(session, user_id, body.delivery_address, body.phone, body.notes)
    catalog.invalidate(cache)

    await messaging.publish_order_event("order.created", "OrderCreated", order)
    await messaging.publish_low_stock(item.food for item in order.items)
    return ok(order_to_read(order), "Order placed")
