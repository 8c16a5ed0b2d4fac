from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from food_service import catalog, inventory, messaging
from food_service.database import get_session, transaction
from food_service.deps import get_cache, require_admin
from food_service.models import StockChangeType
from food_service.routers import ok
from food_service.schemas import ApiResponse, InventoryHistoryRead, StockAdjustRequest, StockInfoRead

router = APIRouter(prefix="/api/inventory", tags=["inventory"])


@router.get("", response_model=ApiResponse[List[StockInfoRead]])
async def list_stock(
    low_stock_only: bool = False,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    foods = await inventory.list_stock_status(session, low_stock_only=low_stock_only, limit=limit, offset=offset)
    return ok([StockInfoRead.model_validate(inventory.stock_info_for(f)) for f in foods])


@router.get("/{food_id}", response_model=ApiResponse[StockInfoRead])
async def get_stock(food_id: int, session: AsyncSession = Depends(get_session)):
    info = await inventory.get_stock_info(session, food_id)
    return ok(StockInfoRead.model_validate(info))


@router.post("/{food_id}/adjust", response_model=ApiResponse[StockInfoRead])
async def adjust_stock(
    food_id: int,
    body: StockAdjustRequest,
    admin_id: int = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    cache=Depends(get_cache),
):
    async with transaction(session):
        info = await inventory.adjust_stock(
            session, food_id, body.quantity, body.operation, user_id=admin_id, note=body.note
        )
    catalog.invalidate(cache)

    if info.is_low_stock:
        await messaging.publish_low_stock([await inventory.load_food(session, food_id)])
    return ok(StockInfoRead.model_validate(info), "Stock adjusted")


@router.get("/{food_id}/history", response_model=ApiResponse[List[InventoryHistoryRead]])
async def stock_history(
    food_id: int,
    change_type: Optional[StockChangeType] = None,
    order_id: Optional[int] = Query(None, gt=0),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    _admin: int = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    entries = await inventory.get_inventory_history(
        session, food_id, change_type=change_type, order_id=order_id, limit=limit, offset=offset
    )
    return ok([InventoryHistoryRead.model_validate(e) for e in entries])
