import logging
from typing import Any, List

import psycopg2
from psycopg2.extras import RealDictCursor

from orders_service.db import Database
from orders_service.errors import InvalidInput, StoreError
from orders_service.schemas import Order

logger = logging.getLogger(__name__)

ORDER_COLUMNS = "id, user_id, book_id, quantity, created_at"


def validate_order_input(book_id: Any, quantity: Any):
    """Raise InvalidInput unless book_id is present and quantity is a positive integer."""
    if not book_id or not quantity:
        raise InvalidInput("Missing fields")
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidInput("quantity must be a positive integer")


class OrderStore:
    """Postgres persistence for orders. The source of truth."""

    def __init__(self, db: Database):
        self.db = db

    def create_order(self, user_id: int, book_id: int, quantity: int) -> Order:
        validate_order_input(book_id, quantity)
        try:
            with self.db.conn() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        f"INSERT INTO orders (user_id, book_id, quantity) VALUES (%s,%s,%s) RETURNING {ORDER_COLUMNS}",
                        (user_id, book_id, quantity),
                    )
                    row = cur.fetchone()
        except psycopg2.Error as e:
            logger.error(f"Error creating order: {e}")
            raise StoreError(str(e)) from e
        return Order(**row)

    def list_orders(self, user_id: int) -> List[Order]:
        try:
            with self.db.conn() as conn:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    cur.execute(
                        f"SELECT {ORDER_COLUMNS} FROM orders WHERE user_id=%s ORDER BY id",
                        (user_id,),
                    )
                    rows = cur.fetchall()
        except psycopg2.Error as e:
            logger.error(f"Error fetching orders: {e}")
            raise StoreError(str(e)) from e
        return [Order(**r) for r in rows]
