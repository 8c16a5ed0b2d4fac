from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from food_service import catalog, lifecycle, messaging, orders
from food_service.database import get_session
from food_service.deps import get_cache, get_current_user_id, require_admin
from food_service.models import OrderStatus
from food_service.routers import ok
from food_service.schemas import (
    ApiResponse,
    CancelOrderRequest,
    OrderItemRead,
    OrderRead,
    OrderStatsRead,
    OrderStatusHistoryRead,
    OrderSummaryRead,
    Page,
    UpdateOrderStatusRequest,
)

router = APIRouter(prefix="/api/orders", tags=["orders"])
admin_router = APIRouter(prefix="/api/admin/orders", tags=["admin"])


def order_to_read(order) -> OrderRead:
    return OrderRead(
        id=order.id,
        user_id=order.user_id,
        total_amount=order.total_amount,
        status=order.status,
        delivery_address=order.delivery_address,
        phone=order.phone,
        notes=order.notes,
        order_date=order.order_date,
        updated_at=order.updated_at,
        items=[OrderItemRead.model_validate(item) for item in order.items],
        summary=OrderSummaryRead.model_validate(orders.summarize_order(order)),
    )


@router.get("", response_model=ApiResponse[Page[OrderRead]])
async def list_my_orders(
    status: Optional[OrderStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    found, total = await orders.list_orders(session, user_id=user_id, status=status, page=page, limit=limit)
    return ok(Page[OrderRead].build([order_to_read(o) for o in found], total, page, limit))


@router.get("/{order_id}", response_model=ApiResponse[OrderRead])
async def get_my_order(
    order_id: int,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    order = await orders.get_order(session, order_id, user_id)
    return ok(order_to_read(order))


@router.get("/{order_id}/history", response_model=ApiResponse[List[OrderStatusHistoryRead]])
async def get_order_history(
    order_id: int,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    history = await orders.get_status_history(session, order_id, user_id)
    return ok([OrderStatusHistoryRead.model_validate(entry) for entry in history])


@router.put("/{order_id}/cancel", response_model=ApiResponse[OrderRead])
async def cancel_order(
    order_id: int,
    body: Optional[CancelOrderRequest] = None,
    user_id: int = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    cache=Depends(get_cache),
):
    reason = body.reason if body else None
    order = await lifecycle.cancel_order(session, order_id, user_id, reason)
    catalog.invalidate(cache)

    await messaging.publish_order_event("order.cancelled", "OrderCancelled", order, reason=reason)
    return ok(order_to_read(order), "Order cancelled")


@router.put("/{order_id}/status", response_model=ApiResponse[OrderRead])
async def update_order_status(
    order_id: int,
    body: UpdateOrderStatusRequest,
    admin_id: int = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    cache=Depends(get_cache),
):
    order, previous = await lifecycle.update_order_status(session, order_id, body.status, admin_id, body.note)

    await messaging.publish_order_event(
        "order.status_changed", "OrderStatusChanged", order, previous_status=previous.value
    )
    if order.status == OrderStatus.CANCELLED:
        catalog.invalidate(cache)
        await messaging.publish_order_event("order.cancelled", "OrderCancelled", order, reason=body.note)
    return ok(order_to_read(order), f"Order status updated to {order.status.value}")


@admin_router.get("", response_model=ApiResponse[Page[OrderRead]])
async def list_all_orders(
    status: Optional[OrderStatus] = None,
    user_id: Optional[int] = Query(None, gt=0),
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    _admin: int = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    found, total = await orders.list_orders(
        session,
        user_id=user_id,
        status=status,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit,
    )
    return ok(Page[OrderRead].build([order_to_read(o) for o in found], total, page, limit))


@admin_router.get("/stats", response_model=ApiResponse[OrderStatsRead])
async def order_stats(
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    _admin: int = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    stats = await orders.get_order_stats(session, date_from=date_from, date_to=date_to)
    return ok(OrderStatsRead(
        total_orders=stats.total_orders,
        total_revenue=stats.total_revenue,
        status_breakdown=stats.status_breakdown,
        recent_orders=[order_to_read(o) for o in stats.recent_orders],
    ))
