from fastapi import Request

from .service import OrderService


def get_order_service(request: Request) -> OrderService:
    return request.app.state.order_service
