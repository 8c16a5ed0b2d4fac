import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool

from food_service import cart, inventory
from food_service.checkout import checkout
from food_service.database import create_database, init_db, make_sessionmaker
from food_service.models import Food, FoodStatus

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

DELIVERY_ADDRESS = "1-2-3 Shibuya, Tokyo 150-0002"
PHONE = "090-1234-5678"


@pytest_asyncio.fixture
async def engine():
    # One shared in-memory connection per test
    engine, _ = create_database(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_sessionmaker(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_food(session):
    """Insert a food row directly and return its id."""
    async def _make(
        name="Tonkotsu Ramen",
        price=1000.0,
        stock=5,
        reserved=0,
        min_stock=1,
        status=FoodStatus.ACTIVE,
        description=None,
    ):
        food = Food(
            name=name,
            description=description,
            price=price,
            stock=stock,
            reserved=reserved,
            min_stock=min_stock,
            status=status,
        )
        session.add(food)
        await session.commit()
        return food.id

    return _make


@pytest.fixture
def place_order(session):
    """Fill the user's cart with ``(food_id, quantity)`` lines and check out. Returns the order id."""
    async def _place(user_id, *lines):
        for food_id, quantity in lines:
            await cart.add_item(session, user_id, food_id, quantity)
        order = await checkout(session, user_id, DELIVERY_ADDRESS, PHONE)
        return order.id

    return _place


@pytest.fixture
def stock_of(session):
    async def _stock(food_id):
        return await inventory.get_stock_info(session, food_id)

    return _stock
