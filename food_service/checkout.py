"""Cart to order conversion.

The whole conversion runs in one transaction: stock is re-validated under row
locks, reserved, frozen into order items and the cart emptied, or nothing
changes at all.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from food_service import inventory, orders
from food_service.cart import load_cart
from food_service.database import transaction
from food_service.errors import EmptyCart
from food_service.models import Order, OrderItem, OrderStatus, OrderStatusHistory

logger = logging.getLogger(__name__)


async def checkout(
    session: AsyncSession,
    user_id: int,
    delivery_address: str,
    phone: str,
    notes: Optional[str] = None,
) -> Order:
    async with transaction(session):
        cart = await load_cart(session, user_id)
        if not cart.items:
            raise EmptyCart()

        # Ascending food id so concurrent checkouts take row locks in the same order
        items = sorted(cart.items, key=lambda item: item.food_id)

        locked = {}
        for item in items:
            food = await inventory.load_food(session, item.food_id, lock=True)
            inventory.check_availability(food, item.quantity)
            locked[food.id] = food

        order = Order(
            user_id=user_id,
            total_amount=sum(locked[item.food_id].price * item.quantity for item in items),
            status=OrderStatus.PENDING,
            delivery_address=delivery_address,
            phone=phone,
            notes=notes,
        )
        session.add(order)
        await session.flush()

        for item in items:
            food = locked[item.food_id]
            await inventory.reserve(
                session,
                food.id,
                item.quantity,
                user_id=user_id,
                order_id=order.id,
                note=f"Reserved for order {order.id}",
            )
            session.add(OrderItem(order_id=order.id, food_id=food.id, quantity=item.quantity, price=food.price))

        session.add(OrderStatusHistory(
            order_id=order.id,
            previous_status=None,
            new_status=OrderStatus.PENDING,
            updated_by=user_id,
            note="Order created",
        ))

        cart.items.clear()
        await session.flush()
        order_id = order.id

    logger.info("User %s checked out order %s (%s items)", user_id, order_id, len(items))
    return await orders.get_order(session, order_id)
