"""Order status state machine.

pending -> confirmed -> preparing -> delivery -> completed, with cancelled
reachable from pending and confirmed. Reaching cancelled releases the
reserved stock of every order item; no other transition touches the ledger.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from food_service import inventory, orders
from food_service.database import transaction
from food_service.errors import InvalidTransition, NotFound
from food_service.models import Order, OrderItem, OrderStatus, OrderStatusHistory

logger = logging.getLogger(__name__)

TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.DELIVERY},
    OrderStatus.DELIVERY: {OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}


def is_valid_transition(current: OrderStatus, new: OrderStatus) -> bool:
    return OrderStatus(new) in TRANSITIONS[OrderStatus(current)]


def can_cancel(status: OrderStatus) -> bool:
    return is_valid_transition(status, OrderStatus.CANCELLED)


async def _lock_order(session: AsyncSession, order_id: int, user_id: Optional[int] = None) -> Order:
    query = select(Order).where(Order.id == order_id).with_for_update().execution_options(populate_existing=True)
    if user_id is not None:
        query = query.where(Order.user_id == user_id)
    order = (await session.execute(query)).scalar_one_or_none()
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return order


async def _release_items(session: AsyncSession, order: Order, user_id: Optional[int]) -> None:
    result = await session.execute(
        select(OrderItem).where(OrderItem.order_id == order.id).order_by(OrderItem.food_id)
    )
    for item in result.scalars().all():
        await inventory.release(
            session,
            item.food_id,
            item.quantity,
            user_id=user_id,
            order_id=order.id,
            note=f"Released for cancelled order {order.id}",
        )


def _append_note(notes: Optional[str], line: str) -> str:
    return f"{notes}\n{line}" if notes else line


async def _transition(
    session: AsyncSession,
    order: Order,
    new_status: OrderStatus,
    updated_by: Optional[int],
    note: Optional[str],
) -> OrderStatus:
    previous = order.status
    if not is_valid_transition(previous, new_status):
        raise InvalidTransition(f"Cannot change order {order.id} from {previous.value} to {new_status.value}")

    if new_status == OrderStatus.CANCELLED:
        await _release_items(session, order, updated_by)

    order.status = new_status
    order.updated_at = datetime.utcnow()
    session.add(OrderStatusHistory(
        order_id=order.id,
        previous_status=previous,
        new_status=new_status,
        updated_by=updated_by,
        note=note,
    ))
    await session.flush()
    return previous


async def cancel_order(
    session: AsyncSession,
    order_id: int,
    user_id: int,
    reason: Optional[str] = None,
) -> Order:
    """Cancel one of the user's own orders while it is still pending or confirmed."""
    async with transaction(session):
        order = await _lock_order(session, order_id, user_id)
        if not can_cancel(order.status):
            raise InvalidTransition(f"Order {order_id} cannot be cancelled in status {order.status.value}")
        if reason:
            order.notes = _append_note(order.notes, f"Cancellation reason: {reason}")
        await _transition(session, order, OrderStatus.CANCELLED, user_id, reason or "Cancelled by customer")

    logger.info("Order %s cancelled by user %s", order_id, user_id)
    return await orders.get_order(session, order_id)


async def update_order_status(
    session: AsyncSession,
    order_id: int,
    new_status: OrderStatus,
    updated_by: int,
    note: Optional[str] = None,
):
    """Move an order along the state machine. Returns ``(order, previous_status)``."""
    new_status = OrderStatus(new_status)
    async with transaction(session):
        order = await _lock_order(session, order_id)
        if note:
            order.notes = _append_note(order.notes, f"[{new_status.value}] {note}")
        previous = await _transition(session, order, new_status, updated_by, note)

    logger.info("Order %s status %s -> %s by %s", order_id, previous.value, new_status.value, updated_by)
    return await orders.get_order(session, order_id), previous
