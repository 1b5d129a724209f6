from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import DateTime, Numeric

from shared.config.settings import ORDERS_DOMAIN
from shared.db.repository import DualWriteRepository

ORDER_COLUMNS = "id, user_id, status, total_amount, created_at, updated_at"
ITEM_COLUMNS = "id, order_id, product_name, quantity, price, total"

MONEY = Numeric(10, 2)
ORDER_TYPES = {"total_amount": MONEY, "created_at": DateTime, "updated_at": DateTime}
ITEM_TYPES = {"price": MONEY, "total": MONEY}

CENT = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(quantity: int, price) -> Decimal:
    return money(Decimal(quantity) * Decimal(str(price)))


def _where(filters: Optional[Dict], allowed: Tuple[str, ...]) -> Tuple[str, Dict]:
    clauses, params = [], {}
    for key in allowed:
        value = (filters or {}).get(key)
        if value is not None:
            clauses.append(f"{key} = :{key}")
            params[key] = value
    return (f"WHERE {' AND '.join(clauses)}" if clauses else ""), params


class OrderItemRepository(DualWriteRepository):
    """Order lines. Written only as part of an order; never updated afterwards."""

    domain = ORDERS_DOMAIN
    FILTERS = ("order_id",)

    async def create_many(self, session, order_id: int, items: List[Dict]) -> List[dict]:
        stmt = self.sql(
            f"""
            INSERT INTO order_items (order_id, product_name, quantity, price, total)
            VALUES (:order_id, :product_name, :quantity, :price, :total)
            RETURNING {ITEM_COLUMNS}
            """,
            binds=ITEM_TYPES,
            columns=ITEM_TYPES,
        )
        rows = []
        for item in items:
            params = {
                "order_id": order_id,
                "product_name": item["product_name"],
                "quantity": item["quantity"],
                "price": money(item["price"]),
                "total": line_total(item["quantity"], item["price"]),
            }
            result = await self.execute(session, stmt, params)
            rows.append(dict(result.mappings().one()))
        return rows

    async def mirror_rows(self, session, rows: List[dict]) -> None:
        stmt = self.mirror_sql(
            f"""
            INSERT INTO order_items ({ITEM_COLUMNS})
            VALUES (:id, :order_id, :product_name, :quantity, :price, :total)
            ON CONFLICT (id) DO NOTHING
            """,
            binds=ITEM_TYPES,
        )
        for row in rows:
            await self.execute(session, stmt, row)

    async def find_by_id(self, item_id: int) -> Optional[dict]:
        stmt = self.sql(f"SELECT {ITEM_COLUMNS} FROM order_items WHERE id = :id", columns=ITEM_TYPES)
        return await self.fetch_one(stmt, {"id": item_id})

    async def find_by_order_ids(self, order_ids: List[int]) -> Dict[int, List[dict]]:
        """Items grouped by order id, fetched with a single IN query."""
        grouped = {order_id: [] for order_id in order_ids}
        if not order_ids:
            return grouped
        stmt = self.sql(
            f"SELECT {ITEM_COLUMNS} FROM order_items WHERE order_id IN :ids ORDER BY id",
            columns=ITEM_TYPES,
            expanding=("ids",),
        )
        for row in await self.fetch_all(stmt, {"ids": list(order_ids)}):
            grouped.setdefault(row["order_id"], []).append(row)
        return grouped

    async def find_all(self, filters: Dict = None, limit: int = 10, offset: int = 0) -> List[dict]:
        where, params = _where(filters, self.FILTERS)
        stmt = self.sql(
            f"SELECT {ITEM_COLUMNS} FROM order_items {where} ORDER BY id LIMIT :limit OFFSET :offset",
            columns=ITEM_TYPES,
        )
        return await self.fetch_all(stmt, {**params, "limit": limit, "offset": offset})

    async def count(self, filters: Dict = None) -> int:
        where, params = _where(filters, self.FILTERS)
        return await self.fetch_scalar(self.sql(f"SELECT COUNT(*) AS total FROM order_items {where}"), params)

    async def remove(self, item_id: int) -> bool:
        async with self.transaction() as session:
            result = await self.execute(session, self.sql("DELETE FROM order_items WHERE id = :id"), {"id": item_id})
            deleted = result.rowcount > 0

        if deleted:
            async def write(session):
                await self.execute(session, self.mirror_sql("DELETE FROM order_items WHERE id = :id"), {"id": item_id})

            self.report(await self.mirror("remove", item_id, write))
        return deleted


class OrderRepository(DualWriteRepository):
    domain = ORDERS_DOMAIN
    FILTERS = ("user_id", "status")

    def __init__(self, session_factory, router, items: OrderItemRepository = None):
        super().__init__(session_factory, router)
        self.items = items or OrderItemRepository(session_factory, router)

    async def create(self, user_id: int, status: str, items: List[Dict]) -> dict:
        """Insert the order and all of its items as one unit, then mirror both."""
        total_amount = money(sum((line_total(item["quantity"], item["price"]) for item in items), Decimal("0")))
        stmt = self.sql(
            f"""
            INSERT INTO orders (user_id, status, total_amount)
            VALUES (:user_id, :status, :total_amount)
            RETURNING {ORDER_COLUMNS}
            """,
            binds={"total_amount": MONEY},
            columns=ORDER_TYPES,
        )
        async with self.transaction() as session:
            result = await self.execute(
                session, stmt, {"user_id": user_id, "status": status, "total_amount": total_amount}
            )
            order = dict(result.mappings().one())
            rows = await self.items.create_many(session, order["id"], items)

        async def write(session):
            mirror_stmt = self.mirror_sql(
                f"""
                INSERT INTO orders ({ORDER_COLUMNS})
                VALUES (:id, :user_id, :status, :total_amount, :created_at, :updated_at)
                ON CONFLICT (id) DO NOTHING
                """,
                binds=ORDER_TYPES,
            )
            await self.execute(session, mirror_stmt, order)
            await self.items.mirror_rows(session, rows)

        self.report(await self.mirror("create", order["id"], write))
        return {**order, "items": rows}

    async def find_by_id(self, order_id: int) -> Optional[dict]:
        stmt = self.sql(f"SELECT {ORDER_COLUMNS} FROM orders WHERE id = :id", columns=ORDER_TYPES)
        order = await self.fetch_one(stmt, {"id": order_id})
        if order is None:
            return None
        grouped = await self.items.find_by_order_ids([order_id])
        return {**order, "items": grouped[order_id]}

    async def find_all(self, filters: Dict = None, limit: int = 10, offset: int = 0) -> List[dict]:
        where, params = _where(filters, self.FILTERS)
        stmt = self.sql(
            f"""
            SELECT {ORDER_COLUMNS}
            FROM orders
            {where}
            ORDER BY created_at DESC, id DESC
            LIMIT :limit OFFSET :offset
            """,
            columns=ORDER_TYPES,
        )
        orders = await self.fetch_all(stmt, {**params, "limit": limit, "offset": offset})
        grouped = await self.items.find_by_order_ids([order["id"] for order in orders])
        return [{**order, "items": grouped[order["id"]]} for order in orders]

    async def count(self, filters: Dict = None) -> int:
        where, params = _where(filters, self.FILTERS)
        return await self.fetch_scalar(self.sql(f"SELECT COUNT(*) AS total FROM orders {where}"), params)

    async def update(self, order_id: int, fields: Dict) -> Optional[dict]:
        """Only the status of an order is mutable; totals follow the items."""
        if fields.get("status") is None:
            return await self.find_by_id(order_id)

        stmt = self.sql(
            f"""
            UPDATE orders
            SET status = :status, updated_at = CURRENT_TIMESTAMP
            WHERE id = :id
            RETURNING {ORDER_COLUMNS}
            """,
            columns=ORDER_TYPES,
        )
        async with self.transaction() as session:
            result = await self.execute(session, stmt, {"status": fields["status"], "id": order_id})
            row = result.mappings().first()
            order = dict(row) if row is not None else None

        if order is None:
            return None

        async def write(session):
            # Copy the committed row so the mirror converges even after missed writes
            mirror_stmt = self.mirror_sql(
                """
                UPDATE orders
                SET user_id = :user_id, status = :status, total_amount = :total_amount,
                    updated_at = :updated_at
                WHERE id = :id
                """,
                binds={"total_amount": MONEY, "updated_at": DateTime},
            )
            params = {key: order[key] for key in ("id", "user_id", "status", "total_amount", "updated_at")}
            await self.execute(session, mirror_stmt, params)

        self.report(await self.mirror("update", order_id, write))
        grouped = await self.items.find_by_order_ids([order_id])
        return {**order, "items": grouped[order_id]}

    async def update_status(self, order_id: int, status: str) -> Optional[dict]:
        return await self.update(order_id, {"status": status})

    async def remove(self, order_id: int) -> bool:
        """Delete an order; its items go with it via ON DELETE CASCADE."""
        async with self.transaction() as session:
            result = await self.execute(session, self.sql("DELETE FROM orders WHERE id = :id"), {"id": order_id})
            deleted = result.rowcount > 0

        if deleted:
            async def write(session):
                await self.execute(session, self.mirror_sql("DELETE FROM orders WHERE id = :id"), {"id": order_id})

            self.report(await self.mirror("remove", order_id, write))
        return deleted
