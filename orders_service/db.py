import logging
from contextlib import contextmanager

import psycopg2
from psycopg2.pool import ThreadedConnectionPool

from orders_service.config import Settings
from orders_service.errors import StoreError

logger = logging.getLogger(__name__)


class Database:
    """Thread-safe psycopg2 pool shared by every request thread."""

    def __init__(self, pool: ThreadedConnectionPool):
        self._pool = pool

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        try:
            pool = ThreadedConnectionPool(
                settings.db_pool_min,
                settings.db_pool_max,
                **settings.db_connect_kwargs(),
            )
        except psycopg2.Error as e:
            raise StoreError(str(e)) from e
        return cls(pool)

    @contextmanager
    def conn(self):
        """
        Borrow a connection for one unit of work.
        Commits on success, rolls back on any error, always returns it to the pool.
        """
        try:
            conn = self._pool.getconn()
        except psycopg2.Error as e:
            # includes PoolError when the pool is exhausted
            raise StoreError(str(e)) from e

        try:
            yield conn
            conn.commit()
        except Exception:
            if not conn.closed:
                conn.rollback()
            raise
        finally:
            self._pool.putconn(conn, close=bool(conn.closed))

    def close(self):
        self._pool.closeall()


def init_db(db: Database):
    with db.conn() as conn:
        with conn.cursor() as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS orders (
                    id SERIAL PRIMARY KEY,
                    user_id INTEGER NOT NULL,
                    book_id INTEGER NOT NULL,
                    quantity INTEGER NOT NULL CHECK (quantity > 0),
                    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
                );
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS orders_user_id_idx ON orders (user_id);")
    logger.info("orders schema ready")
