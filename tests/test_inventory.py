import pytest
from unittest.mock import patch
from sqlalchemy import select, text

from food_service import inventory
from food_service.config import STOCK_RETRY_ATTEMPTS
from food_service.errors import InvalidInput, InventoryError, NotFound
from food_service.models import Food, FoodStatus, InventoryHistory, StockChangeType
from food_service.stock_errors import Severity, StockError, StockErrorKind


@pytest.mark.asyncio
async def test_get_stock_info(make_food, session):
    food_id = await make_food(stock=10, reserved=4, min_stock=6)

    info = await inventory.get_stock_info(session, food_id)

    assert (info.stock, info.reserved, info.available) == (10, 4, 6)
    assert info.is_low_stock is True


@pytest.mark.asyncio
async def test_get_stock_info_missing_food(session):
    with pytest.raises(NotFound):
        await inventory.get_stock_info(session, 999)


@pytest.mark.asyncio
async def test_reserve_claims_units_and_bumps_version(make_food, session):
    food_id = await make_food(stock=5)

    info = await inventory.reserve(session, food_id, 3, user_id=1)

    assert (info.stock, info.reserved, info.available) == (5, 3, 2)
    food = await inventory.load_food(session, food_id)
    assert food.version == 2


@pytest.mark.asyncio
async def test_reserve_insufficient(make_food, session, stock_of):
    food_id = await make_food(name="Gyudon", stock=5, reserved=3)

    with pytest.raises(StockError) as exc_info:
        await inventory.reserve(session, food_id, 3)

    error = exc_info.value
    assert error.kind == StockErrorKind.INSUFFICIENT
    assert (error.food_name, error.requested, error.available) == ("Gyudon", 3, 2)
    assert (await stock_of(food_id)).reserved == 3


@pytest.mark.asyncio
async def test_reserve_fully_claimed_food(make_food, session):
    food_id = await make_food(stock=3, reserved=3)

    with pytest.raises(StockError) as exc_info:
        await inventory.reserve(session, food_id, 2)

    error = exc_info.value
    assert error.kind == StockErrorKind.INSUFFICIENT
    assert (error.requested, error.available) == (2, 0)
    assert error.describe().severity == Severity.CRITICAL


@pytest.mark.asyncio
async def test_reserve_inactive_food(make_food, session):
    food_id = await make_food(status=FoodStatus.INACTIVE)

    with pytest.raises(StockError) as exc_info:
        await inventory.reserve(session, food_id, 1)

    assert exc_info.value.kind == StockErrorKind.UNAVAILABLE


@pytest.mark.asyncio
async def test_reserve_then_release_restores_reserved(make_food, session, stock_of):
    food_id = await make_food(stock=8, reserved=1)

    await inventory.reserve(session, food_id, 4)
    released = await inventory.release(session, food_id, 4)

    info = await stock_of(food_id)
    assert released == 4
    assert (info.stock, info.reserved) == (8, 1)


@pytest.mark.asyncio
async def test_release_never_goes_negative(make_food, session, stock_of):
    food_id = await make_food(stock=5, reserved=2)

    assert await inventory.release(session, food_id, 5) == 2
    assert (await stock_of(food_id)).reserved == 0
    assert await inventory.release(session, food_id, 1) == 0


@pytest.mark.asyncio
async def test_release_noop_writes_no_history(make_food, session):
    food_id = await make_food(stock=5)

    await inventory.release(session, food_id, 1)

    rows = (await session.execute(select(InventoryHistory))).scalars().all()
    assert rows == []


@pytest.mark.asyncio
async def test_adjust_stock_add_and_subtract(make_food, session, stock_of):
    food_id = await make_food(stock=5)

    await inventory.adjust_stock(session, food_id, 10, StockChangeType.ADD, user_id=9)
    info = await inventory.adjust_stock(session, food_id, 3, "subtract", user_id=9)

    assert info.stock == 12
    assert (await stock_of(food_id)).stock == 12


@pytest.mark.asyncio
async def test_adjust_stock_cannot_drop_below_reserved(make_food, session, stock_of):
    food_id = await make_food(stock=5, reserved=4)

    with pytest.raises(InventoryError):
        await inventory.adjust_stock(session, food_id, 2, StockChangeType.SUBTRACT)

    assert (await stock_of(food_id)).stock == 5


@pytest.mark.asyncio
async def test_adjust_stock_rejects_bad_input(make_food, session):
    food_id = await make_food()

    with pytest.raises(InvalidInput):
        await inventory.adjust_stock(session, food_id, 0, StockChangeType.ADD)
    with pytest.raises(InvalidInput):
        await inventory.adjust_stock(session, food_id, 1, StockChangeType.RESERVE)


@pytest.mark.asyncio
async def test_mutations_are_recorded(make_food, session):
    food_id = await make_food(stock=5)

    await inventory.adjust_stock(session, food_id, 5, StockChangeType.ADD, user_id=7, note="Delivery")
    await inventory.reserve(session, food_id, 2, user_id=3)
    await inventory.release(session, food_id, 1, user_id=3)

    history = await inventory.get_inventory_history(session, food_id)
    assert [h.change_type for h in history] == [
        StockChangeType.RELEASE,
        StockChangeType.RESERVE,
        StockChangeType.ADD,
    ]
    add = history[-1]
    assert (add.previous_stock, add.new_stock, add.created_by, add.note) == (5, 10, 7, "Delivery")
    reserve = history[1]
    assert (reserve.previous_reserved, reserve.new_reserved) == (0, 2)

    only_adds = await inventory.get_inventory_history(session, food_id, change_type=StockChangeType.ADD)
    assert len(only_adds) == 1


@pytest.mark.asyncio
async def test_list_stock_status_low_stock_only(make_food, session):
    low = await make_food(name="Tuna Roll", stock=3, min_stock=5)
    await make_food(name="Katsudon", stock=30, min_stock=5)

    foods = await inventory.list_stock_status(session, low_stock_only=True)

    assert [f.id for f in foods] == [low]


@pytest.mark.asyncio
async def test_stale_version_write_raises_conflict(make_food, session, stock_of):
    food_id = await make_food(stock=5)
    food = await inventory.load_food(session, food_id)

    # Another writer commits between our read and our write
    await session.execute(text("UPDATE foods SET version = version + 1 WHERE id = :id"), {"id": food_id})

    with pytest.raises(StockError) as exc_info:
        await inventory._write(session, food, 1, reserved=1)

    assert exc_info.value.kind == StockErrorKind.CONFLICT
    assert exc_info.value.describe().retryable is True
    assert (await stock_of(food_id)).reserved == 0


@pytest.mark.asyncio
async def test_adjust_stock_retries_after_conflict(make_food, session, stock_of):
    food_id = await make_food(stock=5)
    real_write = inventory._write
    calls = []

    async def flaky_write(session, food, requested, **values):
        calls.append(values)
        if len(calls) == 1:
            raise StockError(StockErrorKind.CONFLICT, food.name, requested, food.available)
        return await real_write(session, food, requested, **values)

    with patch("food_service.inventory._write", side_effect=flaky_write):
        info = await inventory.adjust_stock(session, food_id, 2, StockChangeType.ADD)

    assert len(calls) == 2
    assert info.stock == 7
    assert (await stock_of(food_id)).stock == 7


@pytest.mark.asyncio
async def test_adjust_stock_gives_up_after_max_attempts(make_food, session, stock_of):
    food_id = await make_food(stock=5)

    async def always_conflict(session, food, requested, **values):
        raise StockError(StockErrorKind.CONFLICT, food.name, requested, food.available)

    with patch("food_service.inventory._write", side_effect=always_conflict) as mock_write:
        with pytest.raises(StockError) as exc_info:
            await inventory.adjust_stock(session, food_id, 2, StockChangeType.ADD)

    assert exc_info.value.kind == StockErrorKind.CONFLICT
    assert mock_write.call_count == STOCK_RETRY_ATTEMPTS
    assert (await stock_of(food_id)).stock == 5


@pytest.mark.asyncio
async def test_reserved_never_exceeds_stock(make_food, session):
    food_id = await make_food(stock=4)

    await inventory.reserve(session, food_id, 4)
    with pytest.raises(StockError):
        await inventory.reserve(session, food_id, 1)

    food = (await session.execute(select(Food).where(Food.id == food_id))).scalar_one()
    assert 0 <= food.reserved <= food.stock
    assert food.available == 0
