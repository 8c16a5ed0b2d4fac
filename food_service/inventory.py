"""Stock ledger: the only code path that writes Food.stock, reserved and version.

Functions here never commit. They run inside the caller's transaction so a
checkout or cancellation applies all of its ledger changes or none of them.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_random_exponential

from food_service.config import STOCK_RETRY_ATTEMPTS
from food_service.errors import InvalidInput, InventoryError, NotFound
from food_service.models import Food, InventoryHistory, StockChangeType
from food_service.stock_errors import StockError, StockErrorKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockInfo:
    food_id: int
    stock: int
    reserved: int
    min_stock: int

    @property
    def available(self) -> int:
        return self.stock - self.reserved

    @property
    def is_low_stock(self) -> bool:
        return self.available <= self.min_stock


def stock_info_for(food: Food) -> StockInfo:
    return StockInfo(food_id=food.id, stock=food.stock, reserved=food.reserved, min_stock=food.min_stock)


async def load_food(session: AsyncSession, food_id: int, lock: bool = False) -> Food:
    query = select(Food).where(Food.id == food_id).execution_options(populate_existing=True)
    if lock:
        query = query.with_for_update()
    result = await session.execute(query)
    food = result.scalar_one_or_none()
    if food is None:
        raise NotFound(f"Food {food_id} not found")
    return food


async def get_stock_info(session: AsyncSession, food_id: int) -> StockInfo:
    return stock_info_for(await load_food(session, food_id))


def check_availability(food: Food, requested: int) -> None:
    """Raise the StockError that applies if ``requested`` units cannot be claimed now."""
    if not food.is_active:
        raise StockError(StockErrorKind.UNAVAILABLE, food.name, requested, food.available)
    if food.available < requested:
        raise StockError(StockErrorKind.INSUFFICIENT, food.name, requested, food.available)


async def _write(session: AsyncSession, food: Food, requested: int, **values) -> None:
    # Conditioned on the version we read; zero rows means another writer got there first
    read_version = food.version
    values["version"] = read_version + 1
    result = await session.execute(
        update(Food)
        .where(Food.id == food.id, Food.version == read_version)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning("Version conflict on food %s (read version %s)", food.id, read_version)
        raise StockError(StockErrorKind.CONFLICT, food.name, requested, food.available)
    await session.refresh(food)


async def _record(
    session: AsyncSession,
    food: Food,
    change_type: StockChangeType,
    quantity: int,
    previous_stock: int,
    previous_reserved: int,
    order_id: Optional[int],
    user_id: Optional[int],
    note: Optional[str],
) -> None:
    session.add(InventoryHistory(
        food_id=food.id,
        change_type=change_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=food.stock,
        previous_reserved=previous_reserved,
        new_reserved=food.reserved,
        order_id=order_id,
        created_by=user_id,
        note=note,
    ))
    await session.flush()


def _is_conflict(exc: BaseException) -> bool:
    return isinstance(exc, StockError) and exc.kind == StockErrorKind.CONFLICT


@retry(
    retry=retry_if_exception(_is_conflict),
    stop=stop_after_attempt(STOCK_RETRY_ATTEMPTS),
    wait=wait_random_exponential(multiplier=0.05, max=1),
    reraise=True,
)
async def adjust_stock(
    session: AsyncSession,
    food_id: int,
    quantity: int,
    operation: StockChangeType,
    *,
    user_id: Optional[int] = None,
    order_id: Optional[int] = None,
    note: Optional[str] = None,
) -> StockInfo:
    operation = StockChangeType(operation)
    if operation not in (StockChangeType.ADD, StockChangeType.SUBTRACT):
        raise InvalidInput(f"Unsupported stock operation: {operation.value}")
    if quantity <= 0:
        raise InvalidInput("Quantity must be greater than zero")

    food = await load_food(session, food_id, lock=True)
    previous_stock, previous_reserved = food.stock, food.reserved
    new_stock = previous_stock + quantity if operation == StockChangeType.ADD else previous_stock - quantity

    if new_stock < food.reserved:
        raise InventoryError(
            f"Stock for {food.name} cannot drop below reserved units "
            f"(reserved {food.reserved}, requested stock {new_stock})"
        )

    await _write(session, food, quantity, stock=new_stock)
    await _record(session, food, operation, quantity, previous_stock, previous_reserved,
                  order_id, user_id, note or f"Stock {operation.value}: {quantity}")
    logger.info("Stock %s %s on food %s: %s -> %s", operation.value, quantity, food_id, previous_stock, new_stock)
    return stock_info_for(food)


async def reserve(
    session: AsyncSession,
    food_id: int,
    quantity: int,
    *,
    user_id: Optional[int] = None,
    order_id: Optional[int] = None,
    note: Optional[str] = None,
) -> StockInfo:
    if quantity <= 0:
        raise InvalidInput("Quantity must be greater than zero")

    food = await load_food(session, food_id, lock=True)
    check_availability(food, quantity)

    previous_stock, previous_reserved = food.stock, food.reserved
    await _write(session, food, quantity, reserved=previous_reserved + quantity)
    await _record(session, food, StockChangeType.RESERVE, quantity, previous_stock, previous_reserved,
                  order_id, user_id, note or f"Reserved {quantity}")
    logger.info("Reserved %s of food %s (reserved %s -> %s)", quantity, food_id, previous_reserved, food.reserved)
    return stock_info_for(food)


async def release(
    session: AsyncSession,
    food_id: int,
    quantity: int,
    *,
    user_id: Optional[int] = None,
    order_id: Optional[int] = None,
    note: Optional[str] = None,
) -> int:
    """Release up to ``quantity`` reserved units and return how many were released."""
    if quantity <= 0:
        raise InvalidInput("Quantity must be greater than zero")

    food = await load_food(session, food_id, lock=True)
    amount = min(quantity, food.reserved)
    if amount == 0:
        return 0

    previous_stock, previous_reserved = food.stock, food.reserved
    await _write(session, food, amount, reserved=previous_reserved - amount)
    await _record(session, food, StockChangeType.RELEASE, amount, previous_stock, previous_reserved,
                  order_id, user_id, note or f"Released {amount}")
    logger.info("Released %s of food %s (reserved %s -> %s)", amount, food_id, previous_reserved, food.reserved)
    return amount


async def list_stock_status(
    session: AsyncSession,
    *,
    low_stock_only: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> List[Food]:
    query = select(Food).order_by(Food.name, Food.id)
    if low_stock_only:
        query = query.where(Food.stock - Food.reserved <= Food.min_stock)
    result = await session.execute(query.offset(offset).limit(limit))
    return list(result.scalars().all())


async def get_inventory_history(
    session: AsyncSession,
    food_id: int,
    *,
    change_type: Optional[StockChangeType] = None,
    order_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[InventoryHistory]:
    await load_food(session, food_id)
    query = select(InventoryHistory).where(InventoryHistory.food_id == food_id)
    if change_type is not None:
        query = query.where(InventoryHistory.change_type == StockChangeType(change_type))
    if order_id is not None:
        query = query.where(InventoryHistory.order_id == order_id)
    query = query.order_by(InventoryHistory.id.desc()).offset(offset).limit(limit)
    result = await session.execute(query)
    return list(result.scalars().all())

