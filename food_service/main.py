import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from food_service.cache import TTLCache
from food_service.config import DATABASE_URL, LOG_LEVEL, PORT, RABBITMQ_URL
from food_service.database import create_database, init_db
from food_service.handlers import register_exception_handlers
from food_service.messaging import close_rabbitmq, setup_rabbitmq
from food_service.routers import cart, foods, inventory, orders

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [food-service] %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine, sessionmaker = create_database(DATABASE_URL, pool_pre_ping=True)
    await init_db(engine)
    app.state.engine = engine
    app.state.sessionmaker = sessionmaker
    app.state.cache = TTLCache()
    await setup_rabbitmq(RABBITMQ_URL)
    logger.info("Food service started")
    try:
        yield
    finally:
        await close_rabbitmq()
        await engine.dispose()
        logger.info("Food service stopped")


def create_app() -> FastAPI:
    app = FastAPI(title="Food Order Service", lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(cart.router)
    app.include_router(orders.router)
    app.include_router(orders.admin_router)
    app.include_router(foods.router)
    app.include_router(foods.admin_router)
    app.include_router(inventory.router)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "food-service"}

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=PORT)
