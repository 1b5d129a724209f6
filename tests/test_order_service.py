from decimal import Decimal

import pytest

from services.order_service.service import OrderService
from services.order_service.user_resolver import LocalUserResolver, UserResolver
from shared.errors import NotFoundError, ValidationError

ITEMS = [
    {"product_name": "Widget", "quantity": 2, "price": Decimal("10.50")},
    {"product_name": "Gadget", "quantity": 1, "price": Decimal("21.99")},
]


class NobodyResolver(UserResolver):
    """Resolves no one: every listed order falls back to placeholders."""

    async def get_user(self, user_id, auth_token=None):
        raise NotFoundError("User not found")

    async def get_users(self, user_ids, auth_token=None):
        return {}


@pytest.fixture
def service(repos):
    return OrderService(repos.orders, LocalUserResolver(repos.users))


async def test_create_order_computes_item_and_order_totals(service, repos, new_user):
    user = await new_user(repos.users, name="Ada Lovelace", email="ada@shop.io")

    order = await service.create_order({"user_id": user["id"], "items": ITEMS})

    assert order["status"] == "pending"
    assert order["total_amount"] == Decimal("42.99")
    assert [item["total"] for item in order["items"]] == [Decimal("21.00"), Decimal("21.99")]
    assert order["user_name"] == "Ada Lovelace"
    assert order["user_email"] == "ada@shop.io"

    stored = await repos.orders.find_by_id(order["id"])
    assert stored["total_amount"] == Decimal("42.99")
    assert len(stored["items"]) == 2


async def test_order_total_is_the_exact_sum_of_line_totals(service, repos, new_user):
    user = await new_user(repos.users)
    items = [
        {"product_name": "Bolt", "quantity": 3, "price": Decimal("0.33")},
        {"product_name": "Nut", "quantity": 7, "price": Decimal("1.15")},
        {"product_name": "Washer", "quantity": 1, "price": Decimal("0.01")},
    ]

    order = await service.create_order({"user_id": user["id"], "items": items})

    expected = sum(item["quantity"] * item["price"] for item in items)
    assert [item["total"] for item in order["items"]] == [Decimal("0.99"), Decimal("8.05"), Decimal("0.01")]
    assert order["total_amount"] == expected.quantize(Decimal("0.01"))


async def test_fractional_cent_price_is_rejected(service, repos, new_user):
    user = await new_user(repos.users)

    with pytest.raises(ValidationError) as exc:
        await service.create_order(
            {"user_id": user["id"], "items": [{"product_name": "Bolt", "quantity": 3, "price": Decimal("0.335")}]}
        )

    assert exc.value.message == "Item price cannot have more than 2 decimal places"
    assert await repos.orders.count() == 0


@pytest.mark.parametrize(
    "items, message",
    [
        (None, "Order must contain at least one item"),
        ([], "Order must contain at least one item"),
        ([{"product_name": "", "quantity": 1, "price": Decimal("1")}], "Each item must have a product name, quantity, and price"),
        ([{"product_name": "Widget", "price": Decimal("1")}], "Each item must have a product name, quantity, and price"),
        ([{"product_name": "Widget", "quantity": -1, "price": Decimal("1")}], "Item quantity must be greater than 0"),
        ([{"product_name": "Widget", "quantity": 1, "price": Decimal("-2")}], "Item price must be greater than 0"),
        ([{"product_name": "Pin", "quantity": 1, "price": Decimal("0.001")}], "Item price must be at least 0.01"),
    ],
)
async def test_create_order_validates_items(service, repos, new_user, items, message):
    user = await new_user(repos.users)

    with pytest.raises(ValidationError) as exc:
        await service.create_order({"user_id": user["id"], "items": items})

    assert exc.value.message == message
    assert exc.value.status_code == 400
    assert await repos.orders.count() == 0


async def test_create_order_for_unknown_user(service):
    with pytest.raises(NotFoundError) as exc:
        await service.create_order({"user_id": 404, "items": ITEMS})
    assert exc.value.message == "User not found"


async def test_items_are_validated_before_user_lookup(service):
    with pytest.raises(ValidationError):
        await service.create_order({"user_id": 404, "items": []})


async def test_update_status_rejects_unknown_status(service, repos, new_user):
    user = await new_user(repos.users)
    order = await service.create_order({"user_id": user["id"], "items": ITEMS})

    with pytest.raises(ValidationError) as exc:
        await service.update_status(order["id"], "lost")

    assert exc.value.message == "Status must be one of: pending, processing, shipped, delivered, cancelled"


async def test_any_status_may_follow_any_other(service, repos, new_user):
    user = await new_user(repos.users)
    order = await service.create_order({"user_id": user["id"], "items": ITEMS})

    for status in ("delivered", "pending", "cancelled", "processing"):
        assert (await service.update_status(order["id"], status))["status"] == status


async def test_update_status_of_missing_order(service):
    with pytest.raises(NotFoundError) as exc:
        await service.update_status(999, "shipped")
    assert exc.value.message == "Order not found"


async def test_list_orders_paginates_and_filters(service, repos, new_user):
    alice = await new_user(repos.users)
    bob = await new_user(repos.users)
    for _ in range(3):
        await service.create_order({"user_id": alice["id"], "items": ITEMS})
    await service.create_order({"user_id": bob["id"], "items": ITEMS})

    first = await service.list_orders({"user_id": alice["id"]}, page=1, limit=2)
    second = await service.list_orders({"user_id": alice["id"]}, page=2, limit=2)

    assert len(first["orders"]) == 2
    assert len(second["orders"]) == 1
    assert first["pagination"].model_dump() == {"page": 1, "limit": 2, "totalItems": 3, "totalPages": 2}
    assert {order["user_id"] for order in first["orders"] + second["orders"]} == {alice["id"]}
    assert all(order["items"] for order in first["orders"])


async def test_list_orders_uses_placeholders_for_unresolved_users(repos, new_user):
    user = await new_user(repos.users)
    await repos.orders.create(user["id"], "pending", ITEMS)

    result = await OrderService(repos.orders, NobodyResolver()).list_orders()

    assert result["orders"][0]["user_name"] == "Unknown User"
    assert result["orders"][0]["user_email"] == "unknown@email.com"


async def test_get_user_orders_requires_existing_user(service):
    with pytest.raises(NotFoundError):
        await service.get_user_orders(12345)


async def test_delete_order(service, repos, new_user):
    user = await new_user(repos.users)
    order = await service.create_order({"user_id": user["id"], "items": ITEMS})

    assert await service.delete_order(order["id"]) is True
    with pytest.raises(NotFoundError):
        await service.get_order_by_id(order["id"])
    with pytest.raises(NotFoundError):
        await service.delete_order(order["id"])
