from decimal import Decimal

import pytest
from sqlalchemy import text

from shared.config.settings import SchemaMapping
from shared.db.mirror import FAILED, SKIPPED, SUCCEEDED, MirrorResult

from .conftest import build_repos, record_reports

ITEMS = [
    {"product_name": "Widget", "quantity": 2, "price": Decimal("10.50")},
    {"product_name": "Gadget", "quantity": 1, "price": Decimal("21.99")},
]


async def rows(engine, sql, **params):
    async with engine.connect() as conn:
        result = await conn.execute(text(sql), params)
        return [dict(row) for row in result.mappings().all()]


# -- flag off ---------------------------------------------------------------


async def test_mirror_is_never_attempted_with_flag_off(repos, new_user, monkeypatch):
    user_reports = record_reports(monkeypatch, repos.users)
    order_reports = record_reports(monkeypatch, repos.orders)

    def forbidden(*args, **kwargs):
        raise AssertionError("mirror statement built with the flag off")

    monkeypatch.setattr(repos.users, "mirror_sql", forbidden)
    monkeypatch.setattr(repos.orders, "mirror_sql", forbidden)

    user = await new_user(repos.users)
    order = await repos.orders.create(user["id"], "pending", ITEMS)
    await repos.orders.update_status(order["id"], "shipped")
    await repos.users.update(user["id"], {"name": "Renamed"})

    results = user_reports + order_reports
    assert results and all(result.outcome == SKIPPED for result in results)
    assert not any(result.attempted for result in results)


async def test_primary_writes_land_in_default_schema(repos, new_user):
    user = await new_user(repos.users)
    stored = await rows(repos.engine, "SELECT id, email, password FROM main.users")
    assert [row["id"] for row in stored] == [user["id"]]
    assert stored[0]["password"].startswith("$2")
    assert "password" not in user


# -- flag on ----------------------------------------------------------------


async def test_create_user_is_mirrored_with_same_id(dual_repos, new_user, monkeypatch):
    reports = record_reports(monkeypatch, dual_repos.users)

    user = await new_user(dual_repos.users, email="mirror@shop.io")

    mirrored = await rows(dual_repos.engine, "SELECT id, email FROM users_schema.users")
    assert mirrored == [{"id": user["id"], "email": "mirror@shop.io"}]
    assert [r.outcome for r in reports] == [SUCCEEDED]


async def test_create_order_mirrors_order_and_items_with_same_ids(dual_repos, new_user, monkeypatch):
    reports = record_reports(monkeypatch, dual_repos.orders)
    user = await new_user(dual_repos.users)

    order = await dual_repos.orders.create(user["id"], "pending", ITEMS)

    mirrored_orders = await rows(dual_repos.engine, "SELECT id, user_id, status FROM orders_schema.orders")
    assert mirrored_orders == [{"id": order["id"], "user_id": user["id"], "status": "pending"}]

    mirrored_items = await rows(dual_repos.engine, "SELECT id, order_id FROM orders_schema.order_items ORDER BY id")
    assert [row["id"] for row in mirrored_items] == [item["id"] for item in order["items"]]
    assert {row["order_id"] for row in mirrored_items} == {order["id"]}
    assert reports[-1].outcome == SUCCEEDED


async def test_update_copies_committed_row_into_mirror(dual_repos, new_user):
    user = await new_user(dual_repos.users)

    updated = await dual_repos.users.update(user["id"], {"name": "New Name", "phone": "555-0100"})

    assert updated["name"] == "New Name"
    mirrored = await rows(dual_repos.engine, "SELECT name, phone FROM users_schema.users WHERE id = :id", id=user["id"])
    assert mirrored == [{"name": "New Name", "phone": "555-0100"}]


async def test_order_status_update_and_delete_are_mirrored(dual_repos, new_user):
    user = await new_user(dual_repos.users)
    order = await dual_repos.orders.create(user["id"], "pending", ITEMS)

    await dual_repos.orders.update_status(order["id"], "delivered")
    mirrored = await rows(dual_repos.engine, "SELECT status FROM orders_schema.orders WHERE id = :id", id=order["id"])
    assert mirrored == [{"status": "delivered"}]

    assert await dual_repos.orders.remove(order["id"]) is True
    assert await rows(dual_repos.engine, "SELECT id FROM orders_schema.orders") == []


async def test_reads_never_touch_the_mirror(dual_repos, new_user):
    user = await new_user(dual_repos.users)
    async with dual_repos.engine.begin() as conn:
        await conn.execute(text("DELETE FROM users_schema.users"))

    assert (await dual_repos.users.find_by_id(user["id"]))["id"] == user["id"]


async def test_mirror_failure_does_not_fail_primary(dual_settings, make_engine, new_user, monkeypatch):
    # Flag on, but the mirror tables were never created
    repos = await build_repos(
        dual_settings, make_engine(dual_settings), create_mapping=SchemaMapping(enabled=False, default_schema="main")
    )
    reports = record_reports(monkeypatch, repos.users)

    user = await new_user(repos.users)

    assert user["id"] is not None
    assert await repos.users.find_by_id(user["id"]) is not None
    assert len(reports) == 1
    assert reports[0].outcome == FAILED
    assert reports[0].error is not None


async def test_mirror_returns_failed_result_instead_of_raising(dual_repos):
    async def broken(session):
        raise RuntimeError("boom")

    result = await dual_repos.users.mirror("create", 1, broken)

    assert isinstance(result, MirrorResult)
    assert result.outcome == FAILED
    assert not result.ok
    assert isinstance(result.error, RuntimeError)


# -- cascade ----------------------------------------------------------------


async def test_deleting_user_cascades_to_orders_and_items(repos, new_user):
    user = await new_user(repos.users)
    order = await repos.orders.create(user["id"], "pending", ITEMS)

    assert await repos.users.remove(user["id"]) is True

    assert await repos.orders.find_by_id(order["id"]) is None
    assert await repos.orders.items.count({"order_id": order["id"]}) == 0


async def test_remove_missing_rows_reports_false(repos):
    assert await repos.users.remove(999) is False
    assert await repos.orders.remove(999) is False


@pytest.mark.parametrize("limit, offset, expected", [(2, 0, 2), (2, 2, 1), (10, 5, 0)])
async def test_find_all_paginates(repos, new_user, limit, offset, expected):
    for _ in range(3):
        await new_user(repos.users)
    assert len(await repos.users.find_all(limit=limit, offset=offset)) == expected
    assert await repos.users.count() == 3
