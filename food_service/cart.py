"""Cart aggregate: one cart per user, holding purchase intent only.

Adding or updating an item checks availability against the ledger but does
not reserve anything; reservation happens once, at checkout.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from food_service import inventory
from food_service.database import transaction
from food_service.errors import InvalidInput, NotFound
from food_service.models import Cart, CartItem, Food

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartSummary:
    total_items: int
    total_amount: float
    item_count: int


def summarize(cart: Cart) -> CartSummary:
    return CartSummary(
        total_items=sum(item.quantity for item in cart.items),
        total_amount=sum(item.food.price * item.quantity for item in cart.items),
        item_count=len(cart.items),
    )


async def get_or_create_cart(session: AsyncSession, user_id: int) -> Cart:
    result = await session.execute(select(Cart).where(Cart.user_id == user_id))
    cart = result.scalar_one_or_none()
    if cart is not None:
        return cart

    cart = Cart(user_id=user_id)
    session.add(cart)
    await session.flush()
    return cart


async def load_cart(session: AsyncSession, user_id: int) -> Cart:
    cart = await get_or_create_cart(session, user_id)
    result = await session.execute(
        select(Cart)
        .where(Cart.id == cart.id)
        .options(selectinload(Cart.items).selectinload(CartItem.food))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def get_cart(session: AsyncSession, user_id: int) -> Cart:
    # Persists the cart on first access
    async with transaction(session):
        cart = await load_cart(session, user_id)
    return cart


async def _find_owned_item(session: AsyncSession, user_id: int, item_id: int) -> Optional[CartItem]:
    result = await session.execute(
        select(CartItem)
        .join(Cart, CartItem.cart_id == Cart.id)
        .where(CartItem.id == item_id, Cart.user_id == user_id)
        .options(selectinload(CartItem.food))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def add_item(session: AsyncSession, user_id: int, food_id: int, quantity: int) -> CartItem:
    if quantity <= 0:
        raise InvalidInput("Quantity must be greater than zero")

    async with transaction(session):
        food = await session.get(Food, food_id, populate_existing=True)
        if food is None or not food.is_active:
            raise NotFound("Food not found or unavailable")

        cart = await get_or_create_cart(session, user_id)
        result = await session.execute(
            select(CartItem)
            .where(CartItem.cart_id == cart.id, CartItem.food_id == food_id)
            .execution_options(populate_existing=True)
        )
        item = result.scalar_one_or_none()

        requested_total = item.quantity + quantity if item else quantity
        inventory.check_availability(food, requested_total)

        if item is None:
            item = CartItem(cart_id=cart.id, food_id=food_id, quantity=quantity)
            session.add(item)
        else:
            item.quantity = requested_total
        item.food = food
        await session.flush()

    logger.info("User %s cart: food %s quantity now %s", user_id, food_id, item.quantity)
    return item


async def update_item(session: AsyncSession, user_id: int, item_id: int, quantity: int) -> Optional[CartItem]:
    """Set an item's quantity. Zero removes the item and returns None."""
    if quantity < 0:
        raise InvalidInput("Quantity must not be negative")

    async with transaction(session):
        item = await _find_owned_item(session, user_id, item_id)
        if quantity == 0:
            if item is not None:
                await session.delete(item)
            return None
        if item is None:
            raise NotFound("Cart item not found")

        inventory.check_availability(item.food, quantity)
        item.quantity = quantity

    return item


async def remove_item(session: AsyncSession, user_id: int, item_id: int) -> bool:
    async with transaction(session):
        item = await _find_owned_item(session, user_id, item_id)
        if item is None:
            return False
        await session.delete(item)
    return True


async def clear(session: AsyncSession, user_id: int) -> int:
    async with transaction(session):
        result = await session.execute(select(Cart.id).where(Cart.user_id == user_id))
        cart_id = result.scalar_one_or_none()
        if cart_id is None:
            return 0
        deleted = await session.execute(
            delete(CartItem).where(CartItem.cart_id == cart_id).execution_options(synchronize_session=False)
        )
    logger.info("Cleared %s items from cart of user %s", deleted.rowcount, user_id)
    return deleted.rowcount
