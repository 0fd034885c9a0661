from fastapi import Header, Request

from orders_service.schemas import Principal
from orders_service.security import bearer_token
from orders_service.service import OrderService


def get_current_user(request: Request, authorization: str = Header(None)) -> Principal:
    # 401 when no token is sent at all, 403 when the token is bad
    token = bearer_token(authorization)
    return request.app.state.verifier.verify(token)


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service
