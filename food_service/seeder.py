import asyncio
import logging

from sqlalchemy import func, select

from food_service import inventory
from food_service.config import DATABASE_URL
from food_service.database import create_database, init_db, transaction
from food_service.models import Category, Food, StockChangeType

logger = logging.getLogger(__name__)

CATEGORIES = ["Ramen", "Sushi", "Donburi", "Drinks"]

# (name, category, price, initial stock, min stock)
FOODS = [
    ("Tonkotsu Ramen", "Ramen", 980.0, 40, 5),
    ("Shoyu Ramen", "Ramen", 880.0, 30, 5),
    ("Salmon Nigiri Set", "Sushi", 1480.0, 20, 4),
    ("Tuna Roll", "Sushi", 760.0, 3, 5),
    ("Katsudon", "Donburi", 920.0, 25, 5),
    ("Gyudon", "Donburi", 690.0, 0, 5),
    ("Matcha Latte", "Drinks", 450.0, 50, 10),
]


async def seed(session) -> bool:
    """Seed the catalog when it is empty. Returns False if foods already exist."""
    if (await session.execute(select(func.count(Food.id)))).scalar_one():
        logger.info("Catalog already seeded.")
        return False

    async with transaction(session):
        categories = {name: Category(name=name) for name in CATEGORIES}
        session.add_all(categories.values())
        await session.flush()

        for name, category, price, stock, min_stock in FOODS:
            food = Food(name=name, price=price, category_id=categories[category].id, min_stock=min_stock)
            session.add(food)
            await session.flush()
            if stock:
                await inventory.adjust_stock(session, food.id, stock, StockChangeType.ADD, note="Seed stock")

    logger.info("Catalog seeded with %s foods.", len(FOODS))
    return True


async def main():
    engine, sessionmaker = create_database(DATABASE_URL)
    await init_db(engine)
    try:
        async with sessionmaker() as session:
            await seed(session)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
