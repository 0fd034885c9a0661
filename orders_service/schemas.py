from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class Principal(BaseModel):
    user_id: int
    username: Optional[str] = None


class CreateOrderReq(BaseModel):
    # optional so a missing field reaches the service and maps to "Missing fields"
    book_id: Optional[int] = None
    quantity: Optional[int] = None


class Order(BaseModel):
    id: int
    user_id: int
    book_id: int
    quantity: int
    created_at: datetime


class OrderCreatedEvent(BaseModel):
    order: Order
    event: Literal["order_created"] = "order_created"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_message(self) -> bytes:
        return self.model_dump_json().encode("utf-8")


class OrderOut(BaseModel):
    status: str = "success"
    data: Order


class OrderListOut(BaseModel):
    status: str = "success"
    data: List[Order]
