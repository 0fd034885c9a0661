"""
RabbitMQ publisher for order lifecycle events.

One connection and one channel per process. The connection is opened once at
startup by connect(), which retries a bounded number of times and raises
BrokerStartupError when every attempt fails. There is no reconnect after that:
if the connection drops later, publishes are logged and dropped.

publish() never raises. Order creation must not fail because an event could
not be sent.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

import pika
import pika.exceptions

from orders_service.config import Settings
from orders_service.errors import BrokerStartupError, BrokerUnavailable
from orders_service.schemas import OrderCreatedEvent

logger = logging.getLogger(__name__)


class BrokerState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def rabbit_connect(url: str, timeout: float = 10.0) -> Tuple[pika.BlockingConnection, pika.adapters.blocking_connection.BlockingChannel]:
    params = pika.URLParameters(url)
    params.connection_attempts = 1
    params.socket_timeout = timeout
    params.stack_timeout = timeout
    params.blocked_connection_timeout = timeout
    # nothing drives a BlockingConnection between publishes, so heartbeats would
    # go unanswered and the broker would drop an idle connection
    params.heartbeat = 0
    connection = pika.BlockingConnection(params)
    channel = connection.channel()
    return connection, channel


class EventPublisher:
    def __init__(
        self,
        url: str,
        queue: str = "order_created",
        max_attempts: int = 10,
        retry_delay: float = 5.0,
        connect_timeout: float = 10.0,
        connect_fn: Optional[Callable] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.url = url
        self.queue = queue
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.connect_timeout = connect_timeout
        self._connect_fn = connect_fn or rabbit_connect
        self._sleep = sleep

        self.state = BrokerState.DISCONNECTED
        self.connection = None
        self.channel = None
        # pika's BlockingChannel is not thread-safe; request threads publish through this lock
        self._lock = threading.Lock()
        self.metrics = {"published": 0, "failed": 0, "skipped": 0}

    @classmethod
    def from_settings(cls, settings: Settings) -> "EventPublisher":
        return cls(
            settings.rabbitmq_url,
            queue=settings.orders_queue,
            max_attempts=settings.broker_max_attempts,
            retry_delay=settings.broker_retry_delay,
            connect_timeout=settings.broker_connect_timeout,
        )

    def connect(self):
        """
        Open the connection, open a channel and declare the queue.
        Retries up to max_attempts with a fixed delay between attempts.
        Raises BrokerStartupError once the attempts are used up.
        """
        if self.state is BrokerState.CONNECTED:
            return

        self.state = BrokerState.CONNECTING
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            connection = None
            try:
                connection, channel = self._connect_fn(self.url, self.connect_timeout)
                channel.queue_declare(queue=self.queue, durable=True)
            except Exception as e:
                if connection is not None and not connection.is_closed:
                    try:
                        connection.close()
                    except Exception as close_err:
                        logger.debug(f"Error closing half-open connection: {close_err}")
                last_error = e
                logger.warning(f"Failed to connect to RabbitMQ (attempt {attempt}/{self.max_attempts}): {e}")
                if attempt < self.max_attempts:
                    self._sleep(self.retry_delay)
                continue

            self.connection, self.channel = connection, channel
            self.state = BrokerState.CONNECTED
            logger.info(f"Connected to RabbitMQ, publishing to queue {self.queue}")
            return

        self.state = BrokerState.DISCONNECTED
        logger.error("All attempts to connect to RabbitMQ failed")
        raise BrokerStartupError(self.max_attempts, last_error)

    def acquire_channel(self):
        if self.state is not BrokerState.CONNECTED or self.channel is None:
            raise BrokerUnavailable(f"publisher is {self.state.value}")
        if self.connection is not None and self.connection.is_closed:
            raise BrokerUnavailable("connection closed")
        return self.channel

    def publish(self, event: OrderCreatedEvent) -> bool:
        """Fire-and-forget send to the orders queue. Returns False when the event was not sent."""
        body = event.to_message()
        with self._lock:
            try:
                channel = self.acquire_channel()
            except BrokerUnavailable as e:
                self.metrics["skipped"] += 1
                logger.warning(f"Event not published, broker unavailable: {e}")
                return False

            try:
                channel.basic_publish(
                    exchange="",
                    routing_key=self.queue,
                    body=body,
                    properties=pika.BasicProperties(content_type="application/json"),
                )
            except (pika.exceptions.AMQPError, OSError) as e:
                self.metrics["failed"] += 1
                logger.warning(f"Failed to publish order {event.order.id}: {e}")
                return False

            self.metrics["published"] += 1
        logger.info(f"Published {event.event} for order {event.order.id}")
        return True

    def health(self) -> str:
        """Current phase, or "closed" when a connected publisher has lost its connection."""
        if self.state is BrokerState.CONNECTED and self.connection is not None and self.connection.is_closed:
            return "closed"
        return self.state.value

    def get_metrics(self) -> Dict[str, int]:
        return self.metrics.copy()

    def close(self):
        with self._lock:
            try:
                if self.connection is not None and not self.connection.is_closed:
                    self.connection.close()
                logger.info("Publisher connection closed")
            except (pika.exceptions.AMQPError, OSError) as e:
                logger.error(f"Error closing connection: {e}")
            finally:
                self.connection = None
                self.channel = None
                self.state = BrokerState.DISCONNECTED
