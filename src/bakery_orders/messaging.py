import asyncio
import json
import logging
from typing import Any, Mapping

from aio_pika import connect_robust, DeliveryMode, ExchangeType, Message
from aio_pika.abc import AbstractRobustConnection, AbstractRobustChannel
from bakery_orders.config import settings

logger = logging.getLogger("orders.messaging")

ORDERS_EXCHANGE          = "orders_exchange"
QUEUE_NOTIFICATIONS      = "order_notifications"
EVENT_STATUS_CHANGED     = "order.status.changed"

rabbit_connection: AbstractRobustConnection | None = None
rabbit_channel:    AbstractRobustChannel     | None = None

async def init_rabbit(retry_attempts: int = 5, retry_delay: int = 2) -> None:
    global rabbit_connection, rabbit_channel
    url = f"amqp://{settings.RABBIT_USER}:{settings.RABBIT_PASSWORD}@{settings.RABBIT_HOST}:{settings.RABBIT_PORT}/"

    for attempt in range(1, retry_attempts + 1):
        try:
            logger.info(f"[Orders] Connecting to RabbitMQ (attempt {attempt}/{retry_attempts})")
            rabbit_connection = await connect_robust(url)
            rabbit_channel    = await rabbit_connection.channel()

            exchange = await rabbit_channel.declare_exchange(
                ORDERS_EXCHANGE, ExchangeType.TOPIC, durable=True
            )
            queue_notifications = await rabbit_channel.declare_queue(
                QUEUE_NOTIFICATIONS, durable=True
            )
            await queue_notifications.bind(exchange, EVENT_STATUS_CHANGED)

            logger.info("[Orders] RabbitMQ setup complete")
            return
        except Exception as e:
            logger.error(f"[Orders] RabbitMQ init failed: {e}")
            if attempt < retry_attempts:
                await asyncio.sleep(retry_delay)
            else:
                logger.critical("[Orders] Could not connect to RabbitMQ, exiting")
                raise

async def get_channel(retry_attempts: int = 5) -> AbstractRobustChannel:
    if rabbit_channel is None:
        await init_rabbit(retry_attempts=retry_attempts)
    return rabbit_channel

async def close_rabbit() -> None:
    global rabbit_connection, rabbit_channel
    if rabbit_connection:
        await rabbit_connection.close()
        rabbit_connection = None
        rabbit_channel = None
        logger.info("[Orders] RabbitMQ connection closed")


class RabbitEventPublisher:
    """
    Publishes domain events to ORDERS_EXCHANGE with the event type as routing key.

    Runs inside request handlers: a missing connection gets a single connect
    attempt and the whole publish is bounded by `timeout` seconds.
    """

    def __init__(self, timeout: float = settings.RABBIT_PUBLISH_TIMEOUT):
        self.timeout = timeout

    async def emit(self, event_type: str, payload: Mapping[str, Any]) -> None:
        await asyncio.wait_for(self._publish(event_type, payload), timeout=self.timeout)

    async def _publish(self, event_type: str, payload: Mapping[str, Any]) -> None:
        channel = await get_channel(retry_attempts=1)
        exchange = await channel.declare_exchange(
            ORDERS_EXCHANGE, ExchangeType.TOPIC, durable=True
        )
        body = json.dumps(payload, default=str).encode()
        await exchange.publish(
            Message(body=body, content_type="application/json", delivery_mode=DeliveryMode.PERSISTENT),
            routing_key=event_type,
        )
        logger.info("[Orders] Published %s: %s", event_type, payload)
