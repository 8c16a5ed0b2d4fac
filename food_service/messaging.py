import json
import logging
from datetime import datetime
from typing import Optional
from uuid import uuid4

import aio_pika

from food_service.config import RABBITMQ_URL

logger = logging.getLogger(__name__)

ORDER_EXCHANGE = "order_exchange"
INVENTORY_EXCHANGE = "inventory_exchange"

connection = None
channel = None


async def setup_rabbitmq(url: str = RABBITMQ_URL):
    global connection, channel
    try:
        connection = await aio_pika.connect_robust(url)
        channel = await connection.channel()
        await channel.declare_exchange(ORDER_EXCHANGE, aio_pika.ExchangeType.TOPIC, durable=True)
        await channel.declare_exchange(INVENTORY_EXCHANGE, aio_pika.ExchangeType.TOPIC, durable=True)
        logger.info("RabbitMQ setup complete.")
    except Exception as e:
        # The service runs without events when the broker is down
        logger.warning("Error setting up RabbitMQ, events disabled: %s", e)
        connection = channel = None


async def close_rabbitmq():
    global connection, channel
    if connection is not None:
        await connection.close()
    connection = channel = None


async def publish_event(exchange_name: str, routing_key: str, message_data: dict):
    if not channel:
        logger.debug("RabbitMQ channel not available. Dropping %s", routing_key)
        return

    message_body = json.dumps(message_data, default=str).encode("utf-8")
    message = aio_pika.Message(
        message_body,
        content_type="application/json",
        delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
    )

    try:
        exchange = await channel.get_exchange(exchange_name)
        await exchange.publish(message, routing_key=routing_key)
        logger.info("Published event to %s: %s", routing_key, message_data["event_type"])
    except Exception as e:
        # Events never undo a committed transaction
        logger.warning("Error publishing event %s: %s", routing_key, e)


def build_event(event_type: str, **payload) -> dict:
    return {
        "event_id": str(uuid4()),
        "event_type": event_type,
        "timestamp": datetime.utcnow().isoformat(),
        **payload,
    }


def order_event(event_type: str, order, previous_status: Optional[str] = None, **extra) -> dict:
    payload = {
        "order_id": order.id,
        "user_id": order.user_id,
        "status": order.status.value,
        "total_amount": order.total_amount,
        "items": [
            {"food_id": item.food_id, "quantity": item.quantity, "price": item.price}
            for item in order.items
        ],
    }
    if previous_status is not None:
        payload["previous_status"] = previous_status
    payload.update(extra)
    return build_event(event_type, **payload)


def low_stock_event(food) -> dict:
    return build_event(
        "LowStock",
        food_id=food.id,
        food_name=food.name,
        stock=food.stock,
        reserved=food.reserved,
        available=food.available,
        min_stock=food.min_stock,
    )


async def publish_order_event(routing_key: str, event_type: str, order, **extra):
    await publish_event(ORDER_EXCHANGE, routing_key, order_event(event_type, order, **extra))


async def publish_low_stock(foods):
    for food in foods:
        if food.is_low_stock:
            await publish_event(INVENTORY_EXCHANGE, "inventory.low_stock", low_stock_event(food))
