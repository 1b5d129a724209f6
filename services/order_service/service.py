from decimal import Decimal
from typing import Dict, List, Optional

import structlog

from shared.errors import NotFoundError, ValidationError
from shared.responses import offset_for, paginate

from .repository import OrderRepository
from .schemas import OrderStatus
from .user_resolver import UserResolver

logger = structlog.get_logger(__name__)

MIN_PRICE = Decimal("0.01")

UNKNOWN_USER_NAME = "Unknown User"
UNKNOWN_USER_EMAIL = "unknown@email.com"


def _with_user(order: dict, user: Optional[dict]) -> dict:
    user = user or {}
    return {
        **order,
        "user_name": user.get("name") or UNKNOWN_USER_NAME,
        "user_email": user.get("email") or UNKNOWN_USER_EMAIL,
    }


class OrderService:
    """
    Order use cases. Who may do what is decided by the routers; this class
    only validates input and assembles orders with their owner's details.
    """

    def __init__(self, orders: OrderRepository, users: UserResolver):
        self.orders = orders
        self.users = users

    @staticmethod
    def validate_items(items: Optional[List[Dict]]) -> None:
        if not items:
            raise ValidationError("Order must contain at least one item")

        for item in items:
            if not item.get("product_name") or not item.get("quantity") or not item.get("price"):
                raise ValidationError("Each item must have a product name, quantity, and price")
            if item["quantity"] <= 0:
                raise ValidationError("Item quantity must be greater than 0")
            price = Decimal(str(item["price"]))
            if price <= 0:
                raise ValidationError("Item price must be greater than 0")
            if price < MIN_PRICE:
                raise ValidationError("Item price must be at least 0.01")
            # Whole cents only, so quantity * price is exact
            if price.normalize().as_tuple().exponent < -2:
                raise ValidationError("Item price cannot have more than 2 decimal places")

    @staticmethod
    def validate_status(status: str) -> None:
        if status not in OrderStatus.values():
            raise ValidationError(f"Status must be one of: {', '.join(OrderStatus.values())}")

    async def create_order(self, data: Dict, auth_token: Optional[str] = None) -> dict:
        items = data.get("items")
        self.validate_items(items)
        status = data.get("status") or OrderStatus.PENDING.value
        self.validate_status(status)

        user = await self.users.get_user(data["user_id"], auth_token)
        order = await self.orders.create(data["user_id"], status, items)
        logger.info("order_created", order_id=order["id"], user_id=order["user_id"], total=str(order["total_amount"]))
        return _with_user(order, user)

    async def find_order(self, order_id: int) -> dict:
        """The bare order (no owner details), for ownership checks."""
        order = await self.orders.find_by_id(order_id)
        if not order:
            raise NotFoundError("Order not found")
        return order

    async def get_order_by_id(self, order_id: int, auth_token: Optional[str] = None) -> dict:
        order = await self.find_order(order_id)
        user = await self.users.get_user(order["user_id"], auth_token)
        return _with_user(order, user)

    async def list_orders(
        self, filters: Dict = None, page: int = 1, limit: int = 10, auth_token: Optional[str] = None
    ) -> dict:
        filters = {key: value for key, value in (filters or {}).items() if value is not None}
        orders = await self.orders.find_all(filters, limit=limit, offset=offset_for(page, limit))
        total = await self.orders.count(filters)

        users = await self.users.get_users([order["user_id"] for order in orders], auth_token) if orders else {}
        return {
            "orders": [_with_user(order, users.get(order["user_id"])) for order in orders],
            "pagination": paginate(page, limit, total),
        }

    async def get_user_orders(
        self, user_id: int, page: int = 1, limit: int = 10, auth_token: Optional[str] = None
    ) -> dict:
        await self.users.get_user(user_id, auth_token)
        return await self.list_orders({"user_id": user_id}, page, limit, auth_token)

    async def update_status(self, order_id: int, status: str, auth_token: Optional[str] = None) -> dict:
        await self.find_order(order_id)
        self.validate_status(status)

        order = await self.orders.update_status(order_id, status)
        if not order:
            raise NotFoundError("Order not found")
        logger.info("order_status_updated", order_id=order_id, status=status)
        user = await self.users.get_user(order["user_id"], auth_token)
        return _with_user(order, user)

    async def delete_order(self, order_id: int) -> bool:
        if not await self.orders.remove(order_id):
            raise NotFoundError("Order not found")
        logger.info("order_deleted", order_id=order_id)
        return True
