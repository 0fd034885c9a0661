import logging
from typing import Any, List

from orders_service.broker import EventPublisher
from orders_service.cache import OrderListCache
from orders_service.schemas import Order, OrderCreatedEvent, Principal
from orders_service.store import OrderStore, validate_order_input

logger = logging.getLogger(__name__)


class OrderService:
    """
    create_order: validate -> durable insert -> best-effort event -> Order
    list_orders:  cache -> (miss) store -> best-effort cache fill -> orders

    Only the store can fail a call. Cache and broker problems are logged and
    otherwise ignored.
    """

    def __init__(self, store: OrderStore, cache: OrderListCache, publisher: EventPublisher):
        self.store = store
        self.cache = cache
        self.publisher = publisher

    def create_order(self, principal: Principal, book_id: Any, quantity: Any) -> Order:
        # rejected input must leave no trace: no insert, no cache write, no event
        validate_order_input(book_id, quantity)

        order = self.store.create_order(principal.user_id, book_id, quantity)
        logger.info(f"order {order.id} created for user {principal.user_id}")

        self.publisher.publish(OrderCreatedEvent(order=order))
        return order

    def list_orders(self, principal: Principal) -> List[Order]:
        cached = self.cache.get(principal.user_id)
        if cached is not None:
            return cached

        orders = self.store.list_orders(principal.user_id)
        self.cache.put(principal.user_id, orders)
        return orders
