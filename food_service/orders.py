from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from food_service.errors import NotFound
from food_service.models import Order, OrderItem, OrderStatus, OrderStatusHistory


@dataclass(frozen=True)
class OrderSummary:
    item_count: int
    total_quantity: int
    total_amount: float


@dataclass(frozen=True)
class OrderStats:
    total_orders: int
    total_revenue: float
    status_breakdown: dict
    recent_orders: List[Order]


def summarize_order(order: Order) -> OrderSummary:
    # Uses prices frozen at checkout, never the live food price
    return OrderSummary(
        item_count=len(order.items),
        total_quantity=sum(item.quantity for item in order.items),
        total_amount=sum(item.price * item.quantity for item in order.items),
    )


def _with_items(query):
    return query.options(selectinload(Order.items).selectinload(OrderItem.food))


async def get_order(session: AsyncSession, order_id: int, user_id: Optional[int] = None) -> Order:
    """Load an order with its items; with ``user_id`` only that user's order is visible."""
    query = _with_items(select(Order).where(Order.id == order_id)).execution_options(populate_existing=True)
    if user_id is not None:
        query = query.where(Order.user_id == user_id)
    result = await session.execute(query)
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return order


def _filtered(query, user_id, status, date_from, date_to):
    if user_id is not None:
        query = query.where(Order.user_id == user_id)
    if status is not None:
        query = query.where(Order.status == status)
    if date_from is not None:
        query = query.where(Order.order_date >= date_from)
    if date_to is not None:
        query = query.where(Order.order_date <= date_to)
    return query


async def list_orders(
    session: AsyncSession,
    *,
    user_id: Optional[int] = None,
    status: Optional[OrderStatus] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Order], int]:
    total_result = await session.execute(
        _filtered(select(func.count(Order.id)), user_id, status, date_from, date_to)
    )
    total = total_result.scalar_one()

    query = _filtered(_with_items(select(Order)), user_id, status, date_from, date_to)
    query = query.order_by(Order.order_date.desc(), Order.id.desc()).offset((page - 1) * limit).limit(limit)
    result = await session.execute(query.execution_options(populate_existing=True))
    return list(result.scalars().all()), total


async def get_status_history(
    session: AsyncSession,
    order_id: int,
    user_id: Optional[int] = None,
) -> List[OrderStatusHistory]:
    query = select(Order.id).where(Order.id == order_id)
    if user_id is not None:
        query = query.where(Order.user_id == user_id)
    if (await session.execute(query)).scalar_one_or_none() is None:
        raise NotFound(f"Order {order_id} not found")

    result = await session.execute(
        select(OrderStatusHistory)
        .where(OrderStatusHistory.order_id == order_id)
        .order_by(OrderStatusHistory.updated_at, OrderStatusHistory.id)
    )
    return list(result.scalars().all())


async def get_order_stats(
    session: AsyncSession,
    *,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> OrderStats:
    total_orders = (await session.execute(
        _filtered(select(func.count(Order.id)), None, None, date_from, date_to)
    )).scalar_one()

    revenue = (await session.execute(
        _filtered(select(func.coalesce(func.sum(Order.total_amount), 0.0)), None, None, date_from, date_to)
        .where(Order.status != OrderStatus.CANCELLED)
    )).scalar_one()

    breakdown = {status.value: 0 for status in OrderStatus}
    grouped = await session.execute(
        _filtered(select(Order.status, func.count(Order.id)), None, None, date_from, date_to)
        .group_by(Order.status)
    )
    for status, count in grouped.all():
        breakdown[status.value] = count

    recent, _ = await list_orders(session, date_from=date_from, date_to=date_to, page=1, limit=5)
    return OrderStats(
        total_orders=total_orders,
        total_revenue=float(revenue),
        status_breakdown=breakdown,
        recent_orders=recent,
    )
