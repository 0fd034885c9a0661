import pytest
from pydantic import ValidationError

from orders_service.config import Settings


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("DATABASE_URL", "DB_PORT", "ORDERS_CACHE_TTL", "PORT", "ORDERS_PORT", "RATE_LIMIT_ENABLED", "JWT_SECRET"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    s = Settings.from_env()
    assert s.orders_cache_ttl == 3600
    assert s.orders_queue == "order_created"
    assert s.broker_max_attempts == 10
    assert s.port == 3002
    assert s.rate_limit_enabled is True


def test_reads_environment(clean_env):
    clean_env.setenv("ORDERS_CACHE_TTL", "5")
    clean_env.setenv("JWT_SECRET", "abc")
    clean_env.setenv("PORT", "8080")
    clean_env.setenv("RATE_LIMIT_ENABLED", "false")
    s = Settings.from_env()
    assert s.orders_cache_ttl == 5
    assert s.jwt_secret == "abc"
    assert s.port == 8080
    assert s.rate_limit_enabled is False


def test_bad_number_fails_at_startup(clean_env):
    clean_env.setenv("DB_PORT", "not-a-port")
    with pytest.raises(ValidationError):
        Settings.from_env()


def test_db_params_from_fields():
    s = Settings(db_host="pg", db_port=6543, db_name="books", db_user="u", db_password="p w")
    params = s.db_connect_kwargs()
    assert params["host"] == "pg"
    assert params["port"] == 6543
    assert params["password"] == "p w"
    assert params["options"] == "-c statement_timeout=5000"
    assert "dsn" not in params


def test_database_url_wins():
    s = Settings(database_url="postgresql://u:p@pg/books", db_host="ignored")
    params = s.db_connect_kwargs()
    assert params["dsn"] == "postgresql://u:p@pg/books"
    assert "host" not in params
