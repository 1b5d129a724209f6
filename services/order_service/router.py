from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from shared.errors import AuthorizationError, ValidationError
from shared.responses import success
from shared.security.dependencies import get_auth_header, get_current_user
from shared.security.jwt_handler import TokenClaims

from .dependencies import get_order_service
from .schemas import OrderCreate, OrderResponse, StatusUpdate
from .service import OrderService

router = APIRouter(prefix="/api/orders", tags=["Orders"])
user_orders_router = APIRouter(prefix="/api/users", tags=["Orders"])


def _owns(user: TokenClaims, order: dict) -> bool:
    return user.is_admin or int(order["user_id"]) == user.id


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create an order")
async def create_order(
    payload: OrderCreate,
    user: TokenClaims = Depends(get_current_user),
    auth_header: Optional[str] = Depends(get_auth_header),
    service: OrderService = Depends(get_order_service),
):
    # Only admins can create orders for other users
    if not user.is_admin and payload.user_id is not None and payload.user_id != user.id:
        raise AuthorizationError("You are not authorized to create orders for other users")

    data = payload.model_dump()
    data["user_id"] = payload.user_id or user.id
    order = await service.create_order(data, auth_header)
    return success({"order": OrderResponse.model_validate(order)})


@router.get("", summary="List orders (own orders unless admin)")
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    order_status: Optional[str] = Query(None, alias="status"),
    user_id: Optional[int] = Query(None),
    user: TokenClaims = Depends(get_current_user),
    auth_header: Optional[str] = Depends(get_auth_header),
    service: OrderService = Depends(get_order_service),
):
    filters = {"status": order_status}
    # Regular users only ever see their own orders, whatever they ask for
    filters["user_id"] = user_id if user.is_admin else user.id

    result = await service.list_orders(filters, page, limit, auth_header)
    return success(
        [OrderResponse.model_validate(order) for order in result["orders"]],
        pagination=result["pagination"],
    )


@router.get("/{order_id}", summary="Get an order by id")
async def get_order(
    order_id: int,
    user: TokenClaims = Depends(get_current_user),
    auth_header: Optional[str] = Depends(get_auth_header),
    service: OrderService = Depends(get_order_service),
):
    if not _owns(user, await service.find_order(order_id)):
        raise AuthorizationError("You are not authorized to view this order")

    order = await service.get_order_by_id(order_id, auth_header)
    return success({"order": OrderResponse.model_validate(order)})


@router.patch("/{order_id}/status", summary="Move an order to another status")
async def update_order_status(
    order_id: int,
    payload: StatusUpdate,
    user: TokenClaims = Depends(get_current_user),
    auth_header: Optional[str] = Depends(get_auth_header),
    service: OrderService = Depends(get_order_service),
):
    if not payload.status:
        raise ValidationError("Status is required")

    if not _owns(user, await service.find_order(order_id)):
        raise AuthorizationError("You are not authorized to update this order")

    order = await service.update_status(order_id, payload.status, auth_header)
    return success({"order": OrderResponse.model_validate(order)})


@router.delete("/{order_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an order")
async def delete_order(
    order_id: int,
    user: TokenClaims = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    if not _owns(user, await service.find_order(order_id)):
        raise AuthorizationError("You are not authorized to delete this order")

    await service.delete_order(order_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@user_orders_router.get("/{user_id}/orders", summary="List a user's orders")
async def get_user_orders(
    user_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: TokenClaims = Depends(get_current_user),
    auth_header: Optional[str] = Depends(get_auth_header),
    service: OrderService = Depends(get_order_service),
):
    if not user.is_admin and user_id != user.id:
        raise AuthorizationError("You are not authorized to view orders for this user")

    result = await service.get_user_orders(user_id, page, limit, auth_header)
    return success(
        [OrderResponse.model_validate(order) for order in result["orders"]],
        pagination=result["pagination"],
    )
