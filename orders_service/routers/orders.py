from fastapi import APIRouter, Depends

from orders_service.deps import get_current_user, get_order_service
from orders_service.schemas import CreateOrderReq, OrderListOut, OrderOut, Principal
from orders_service.service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", status_code=201, response_model=OrderOut)
def create_order(
    body: CreateOrderReq,
    user: Principal = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    order = service.create_order(user, body.book_id, body.quantity)
    return {"status": "success", "data": order}


@router.get("", response_model=OrderListOut)
def my_orders(
    user: Principal = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    # an empty list is still a 200
    orders = service.list_orders(user)
    return {"status": "success", "data": orders}
