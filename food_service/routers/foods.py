from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from food_service import catalog
from food_service.database import get_session
from food_service.deps import get_cache, require_admin
from food_service.errors import NotFound
from food_service.models import FoodStatus
from food_service.routers import ok
from food_service.schemas import ApiResponse, FoodCreate, FoodRead, FoodUpdate, Page

router = APIRouter(prefix="/api/foods", tags=["foods"])
admin_router = APIRouter(prefix="/api/admin/foods", tags=["admin"])


class FoodFilters:
    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        search: Optional[str] = Query(None, min_length=1, max_length=100),
        category_id: Optional[int] = Query(None, gt=0),
        price_min: Optional[float] = Query(None, ge=0),
        price_max: Optional[float] = Query(None, ge=0),
        sort_by: str = Query("id", pattern="^(id|name|price|created_at)$"),
        sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    ):
        self.page = page
        self.limit = limit
        self.search = search
        self.category_id = category_id
        self.price_min = price_min
        self.price_max = price_max
        self.sort_by = sort_by
        self.sort_order = sort_order


async def _food_page(session, cache, filters: FoodFilters, active_only: bool) -> dict:
    foods, total = await catalog.list_foods(session, cache, active_only=active_only, **vars(filters))
    return ok(Page[FoodRead].build(foods, total, filters.page, filters.limit))


@router.get("", response_model=ApiResponse[Page[FoodRead]])
async def list_foods(
    filters: FoodFilters = Depends(),
    session: AsyncSession = Depends(get_session),
    cache=Depends(get_cache),
):
    return await _food_page(session, cache, filters, active_only=True)


@router.get("/{food_id}", response_model=ApiResponse[FoodRead])
async def get_food(
    food_id: int,
    session: AsyncSession = Depends(get_session),
    cache=Depends(get_cache),
):
    food = await catalog.get_food(session, cache, food_id)
    if food.status != FoodStatus.ACTIVE:
        raise NotFound(f"Food {food_id} not found")
    return ok(food)


@router.post("", response_model=ApiResponse[FoodRead], status_code=201)
async def create_food(
    body: FoodCreate,
    admin_id: int = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    cache=Depends(get_cache),
):
    food = await catalog.create_food(session, cache, created_by=admin_id, **body.model_dump())
    return ok(FoodRead.model_validate(food), "Food created")


@router.put("/{food_id}", response_model=ApiResponse[FoodRead])
async def update_food(
    food_id: int,
    body: FoodUpdate,
    _admin: int = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    cache=Depends(get_cache),
):
    food = await catalog.update_food(session, cache, food_id, **body.model_dump(exclude_unset=True))
    return ok(FoodRead.model_validate(food), "Food updated")


@router.delete("/{food_id}", response_model=ApiResponse[FoodRead])
async def delete_food(
    food_id: int,
    _admin: int = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    cache=Depends(get_cache),
):
    food = await catalog.deactivate_food(session, cache, food_id)
    return ok(FoodRead.model_validate(food), "Food deactivated")


@admin_router.get("", response_model=ApiResponse[Page[FoodRead]])
async def list_all_foods(
    filters: FoodFilters = Depends(),
    _admin: int = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
    cache=Depends(get_cache),
):
    return await _food_page(session, cache, filters, active_only=False)
