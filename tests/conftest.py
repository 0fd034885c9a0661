"""Shared fixtures: in-memory stand-ins for Postgres, Redis and RabbitMQ."""

from datetime import datetime, timezone

import pytest
import redis
from fastapi.testclient import TestClient

from orders_service.broker import EventPublisher
from orders_service.cache import CacheClient, OrderListCache
from orders_service.config import Settings
from orders_service.errors import StoreError
from orders_service.main import create_app
from orders_service.schemas import Order
from orders_service.security import create_access_token

SECRET = "test-secret"


class Clock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeRedis:
    """Just enough of redis.Redis: GET, SETEX and key expiry against a fake clock."""

    def __init__(self, clock: Clock):
        self.clock = clock
        self.data = {}
        self.down = False
        self.setex_calls = []

    def get(self, key):
        if self.down:
            raise redis.ConnectionError("redis is down")
        entry = self.data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self.clock() >= expires_at:
            del self.data[key]
            return None
        return value

    def setex(self, key, ttl, value):
        if self.down:
            raise redis.TimeoutError("redis timed out")
        self.setex_calls.append((key, ttl, value))
        self.data[key] = (value, self.clock() + ttl)
        return True

    def close(self):
        pass


class FakeOrderStore:
    def __init__(self):
        self.orders = []
        self.failing = False
        self.create_calls = 0
        self.list_calls = 0

    def create_order(self, user_id, book_id, quantity):
        self.create_calls += 1
        if self.failing:
            raise StoreError("connection refused")
        order = Order(
            id=len(self.orders) + 1,
            user_id=user_id,
            book_id=book_id,
            quantity=quantity,
            created_at=datetime(2024, 5, 1, 12, 0, len(self.orders), tzinfo=timezone.utc),
        )
        self.orders.append(order)
        return order

    def list_orders(self, user_id):
        self.list_calls += 1
        if self.failing:
            raise StoreError("connection refused")
        return [o for o in self.orders if o.user_id == user_id]


class FakeChannel:
    def __init__(self):
        self.declared = []
        self.published = []
        self.fail_publish = None

    def queue_declare(self, queue, durable=False):
        self.declared.append((queue, durable))

    def basic_publish(self, exchange, routing_key, body, properties=None):
        if self.fail_publish is not None:
            raise self.fail_publish
        self.published.append((exchange, routing_key, body))


class FakeConnection:
    def __init__(self):
        self.is_closed = False

    def close(self):
        self.is_closed = True


class FakeBroker:
    """connect_fn for EventPublisher. Fails the first `failures` attempts."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.attempts = 0
        self.connection = FakeConnection()
        self.channel = FakeChannel()

    def __call__(self, url, timeout):
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionRefusedError("broker not ready")
        return self.connection, self.channel


@pytest.fixture
def settings():
    return Settings(jwt_secret=SECRET, rate_limit_enabled=False, orders_cache_ttl=60)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def fake_redis(clock):
    return FakeRedis(clock)


@pytest.fixture
def order_cache(fake_redis, settings):
    return OrderListCache(CacheClient(fake_redis), ttl=settings.orders_cache_ttl)


@pytest.fixture
def store():
    return FakeOrderStore()


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def publisher(broker):
    p = EventPublisher("amqp://test", connect_fn=broker, sleep=lambda s: None)
    p.connect()
    return p


@pytest.fixture
def app(settings, store, order_cache, publisher):
    return create_app(settings, store=store, cache=order_cache, publisher=publisher)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def auth_header(user_id: int = 1, secret: str = SECRET) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, secret, username=f'user{user_id}')}"}
