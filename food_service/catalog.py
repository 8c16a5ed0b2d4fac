import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from food_service import inventory
from food_service.cache import TTLCache, cached, make_key
from food_service.config import FOOD_DETAIL_CACHE_TTL, FOOD_LIST_CACHE_TTL
from food_service.database import transaction
from food_service.errors import InvalidInput, NotFound
from food_service.models import Category, Food, FoodStatus, StockChangeType
from food_service.schemas import FoodRead

logger = logging.getLogger(__name__)

CACHE_PREFIX = "foods"

SORT_COLUMNS = {
    "id": Food.id,
    "name": Food.name,
    "price": Food.price,
    "created_at": Food.created_at,
}


def _filters(search, category_id, price_min, price_max, active_only) -> list:
    conditions = []
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(Food.name.ilike(pattern), Food.description.ilike(pattern)))
    if category_id is not None:
        conditions.append(Food.category_id == category_id)
    if price_min is not None:
        conditions.append(Food.price >= price_min)
    if price_max is not None:
        conditions.append(Food.price <= price_max)
    if active_only:
        conditions.append(Food.status == FoodStatus.ACTIVE)
    return conditions


async def list_foods(
    session: AsyncSession,
    cache: Optional[TTLCache],
    *,
    page: int = 1,
    limit: int = 20,
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    price_min: Optional[float] = None,
    price_max: Optional[float] = None,
    sort_by: str = "id",
    sort_order: str = "asc",
    active_only: bool = True,
) -> Tuple[List[FoodRead], int]:
    """Return one page of foods as ``FoodRead`` snapshots plus the total match count.

    Cached results are detached from any session, so they stay valid after the
    request that loaded them has closed.
    """
    if sort_by not in SORT_COLUMNS:
        raise InvalidInput(f"Cannot sort foods by {sort_by!r}")
    if sort_order not in ("asc", "desc"):
        raise InvalidInput(f"Sort order must be 'asc' or 'desc', not {sort_order!r}")
    if price_min is not None and price_max is not None and price_min > price_max:
        raise InvalidInput("price_min cannot exceed price_max")

    async def load():
        conditions = _filters(search, category_id, price_min, price_max, active_only)
        column = SORT_COLUMNS[sort_by]
        ordering = column.desc() if sort_order == "desc" else column.asc()

        total = (await session.execute(select(func.count(Food.id)).where(*conditions))).scalar_one()
        result = await session.execute(
            select(Food).where(*conditions)
            .order_by(ordering, Food.id)
            .offset((page - 1) * limit).limit(limit)
            .execution_options(populate_existing=True)
        )
        return [FoodRead.model_validate(food) for food in result.scalars()], total

    key = make_key(
        f"{CACHE_PREFIX}:list",
        page=page,
        limit=limit,
        search=search,
        category=category_id,
        price_min=price_min,
        price_max=price_max,
        sort=f"{sort_by}:{sort_order}",
        active=active_only,
    )
    return await cached(cache, key, FOOD_LIST_CACHE_TTL, load)


async def get_food(session: AsyncSession, cache: Optional[TTLCache], food_id: int) -> FoodRead:
    async def load():
        return FoodRead.model_validate(await inventory.load_food(session, food_id))

    return await cached(cache, make_key(f"{CACHE_PREFIX}:detail", id=food_id), FOOD_DETAIL_CACHE_TTL, load)


async def _check_category(session: AsyncSession, category_id: Optional[int]) -> None:
    if category_id is not None and await session.get(Category, category_id) is None:
        raise InvalidInput(f"Category {category_id} does not exist")


def invalidate(cache: Optional[TTLCache]) -> None:
    if cache is not None:
        cache.invalidate(CACHE_PREFIX)


async def create_food(
    session: AsyncSession,
    cache: Optional[TTLCache],
    *,
    name: str,
    price: float,
    description: Optional[str] = None,
    category_id: Optional[int] = None,
    status: FoodStatus = FoodStatus.ACTIVE,
    stock: int = 0,
    min_stock: int = 5,
    created_by: Optional[int] = None,
) -> Food:
    """Create a food; any initial stock goes through the ledger so it shows up in inventory history."""
    async with transaction(session):
        await _check_category(session, category_id)
        food = Food(
            name=name,
            description=description,
            price=price,
            category_id=category_id,
            status=FoodStatus(status),
            min_stock=min_stock,
        )
        session.add(food)
        await session.flush()
        if stock > 0:
            await inventory.adjust_stock(
                session, food.id, stock, StockChangeType.ADD, user_id=created_by, note="Initial stock"
            )
        food_id = food.id

    invalidate(cache)
    logger.info("Created food %s (%s)", food_id, name)
    return await inventory.load_food(session, food_id)


async def update_food(session: AsyncSession, cache: Optional[TTLCache], food_id: int, **changes) -> Food:
    # Stock fields belong to the ledger; only descriptive fields change here.
    # description and category_id may be cleared with an explicit None.
    async with transaction(session):
        food = await inventory.load_food(session, food_id)
        if "category_id" in changes:
            await _check_category(session, changes["category_id"])
        for field in ("description", "category_id"):
            if field in changes:
                setattr(food, field, changes[field])
        for field in ("name", "price", "status", "min_stock"):
            if changes.get(field) is not None:
                setattr(food, field, changes[field])

    invalidate(cache)
    logger.info("Updated food %s", food_id)
    return food


async def deactivate_food(session: AsyncSession, cache: Optional[TTLCache], food_id: int) -> Food:
    async with transaction(session):
        food = await inventory.load_food(session, food_id)
        if food.status == FoodStatus.INACTIVE:
            raise NotFound(f"Food {food_id} not found")
        food.status = FoodStatus.INACTIVE

    invalidate(cache)
    logger.info("Deactivated food %s", food_id)
    return food
