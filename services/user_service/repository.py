from typing import Dict, List, Optional

from sqlalchemy import DateTime

from shared.config.settings import USERS_DOMAIN
from shared.db.repository import DualWriteRepository

PUBLIC_COLUMNS = "id, name, email, phone, address, role, created_at, updated_at"
ALL_COLUMNS = "id, name, email, password, phone, address, role, created_at, updated_at"

TIMESTAMPS = {"created_at": DateTime, "updated_at": DateTime}

UPDATABLE_FIELDS = ("name", "email", "phone", "address", "role")
CLEARABLE_FIELDS = ("phone", "address")


def public_view(row: Optional[dict]) -> Optional[dict]:
    if row is None:
        return None
    return {key: value for key, value in row.items() if key != "password"}


class UserRepository(DualWriteRepository):
    domain = USERS_DOMAIN

    async def create(self, data: Dict) -> dict:
        stmt = self.sql(
            f"""
            INSERT INTO users (name, email, password, phone, address, role)
            VALUES (:name, :email, :password, :phone, :address, :role)
            RETURNING {ALL_COLUMNS}
            """,
            columns=TIMESTAMPS,
        )
        params = {
            "name": data["name"],
            "email": data["email"],
            "password": data["password"],
            "phone": data.get("phone"),
            "address": data.get("address"),
            "role": data.get("role") or "customer",
        }
        async with self.transaction() as session:
            result = await self.execute(session, stmt, params)
            user = dict(result.mappings().one())

        self.report(await self.mirror("create", user["id"], lambda session: self._mirror_insert(session, user)))
        return public_view(user)

    async def _mirror_insert(self, session, user: dict):
        stmt = self.mirror_sql(
            f"""
            INSERT INTO users ({ALL_COLUMNS})
            VALUES (:id, :name, :email, :password, :phone, :address, :role, :created_at, :updated_at)
            ON CONFLICT (id) DO NOTHING
            """,
            binds=TIMESTAMPS,
        )
        await self.execute(session, stmt, user)

    async def find_by_id(self, user_id: int) -> Optional[dict]:
        stmt = self.sql(f"SELECT {PUBLIC_COLUMNS} FROM users WHERE id = :id", columns=TIMESTAMPS)
        return await self.fetch_one(stmt, {"id": user_id})

    async def find_credentials_by_id(self, user_id: int) -> Optional[dict]:
        """Like find_by_id, but includes the password hash."""
        stmt = self.sql(f"SELECT {ALL_COLUMNS} FROM users WHERE id = :id", columns=TIMESTAMPS)
        return await self.fetch_one(stmt, {"id": user_id})

    async def find_by_email(self, email: str) -> Optional[dict]:
        """Includes the password hash; used for login and uniqueness checks."""
        stmt = self.sql(f"SELECT {ALL_COLUMNS} FROM users WHERE email = :email", columns=TIMESTAMPS)
        return await self.fetch_one(stmt, {"email": email})

    async def find_by_ids(self, user_ids: List[int]) -> List[dict]:
        if not user_ids:
            return []
        stmt = self.sql(
            f"SELECT {PUBLIC_COLUMNS} FROM users WHERE id IN :ids ORDER BY id",
            columns=TIMESTAMPS,
            expanding=("ids",),
        )
        return await self.fetch_all(stmt, {"ids": list(user_ids)})

    async def find_all(self, limit: int = 10, offset: int = 0) -> List[dict]:
        stmt = self.sql(
            f"""
            SELECT {PUBLIC_COLUMNS}
            FROM users
            ORDER BY created_at DESC, id DESC
            LIMIT :limit OFFSET :offset
            """,
            columns=TIMESTAMPS,
        )
        return await self.fetch_all(stmt, {"limit": limit, "offset": offset})

    async def count(self) -> int:
        return await self.fetch_scalar(self.sql("SELECT COUNT(*) AS total FROM users"))

    async def update(self, user_id: int, fields: Dict) -> Optional[dict]:
        """Partial update: only the given fields change; last write wins."""
        changes = {
            key: fields[key]
            for key in UPDATABLE_FIELDS
            if key in fields and (fields[key] is not None or key in CLEARABLE_FIELDS)
        }
        assignments = ", ".join(f"{key} = :{key}" for key in changes)
        assignments = f"{assignments}, updated_at = CURRENT_TIMESTAMP" if assignments else "updated_at = CURRENT_TIMESTAMP"

        stmt = self.sql(
            f"UPDATE users SET {assignments} WHERE id = :id RETURNING {PUBLIC_COLUMNS}",
            columns=TIMESTAMPS,
        )
        async with self.transaction() as session:
            result = await self.execute(session, stmt, {**changes, "id": user_id})
            row = result.mappings().first()
            user = dict(row) if row is not None else None

        if user is None:
            return None
        self.report(await self.mirror("update", user_id, lambda session: self._mirror_update(session, user)))
        return user

    async def _mirror_update(self, session, user: dict):
        # Copy the committed state so the mirror converges even after missed writes
        stmt = self.mirror_sql(
            """
            UPDATE users
            SET name = :name, email = :email, phone = :phone, address = :address,
                role = :role, updated_at = :updated_at
            WHERE id = :id
            """,
            binds={"updated_at": DateTime},
        )
        params = {key: user[key] for key in ("id", "name", "email", "phone", "address", "role", "updated_at")}
        await self.execute(session, stmt, params)

    async def update_password(self, user_id: int, hashed_password: str) -> bool:
        stmt = self.sql(
            """
            UPDATE users
            SET password = :password, updated_at = CURRENT_TIMESTAMP
            WHERE id = :id
            RETURNING id, updated_at
            """,
            columns={"updated_at": DateTime},
        )
        async with self.transaction() as session:
            result = await self.execute(session, stmt, {"password": hashed_password, "id": user_id})
            row = result.mappings().first()
            updated = dict(row) if row is not None else None

        if updated is None:
            return False

        async def write(session):
            mirror_stmt = self.mirror_sql(
                "UPDATE users SET password = :password, updated_at = :updated_at WHERE id = :id",
                binds={"updated_at": DateTime},
            )
            await self.execute(
                session,
                mirror_stmt,
                {"password": hashed_password, "updated_at": updated["updated_at"], "id": user_id},
            )

        self.report(await self.mirror("update_password", user_id, write))
        return True

    async def remove(self, user_id: int) -> bool:
        """Delete a user; their orders (and items) go with them via ON DELETE CASCADE."""
        async with self.transaction() as session:
            result = await self.execute(session, self.sql("DELETE FROM users WHERE id = :id"), {"id": user_id})
            deleted = result.rowcount > 0

        if deleted:
            async def write(session):
                await self.execute(session, self.mirror_sql("DELETE FROM users WHERE id = :id"), {"id": user_id})

            self.report(await self.mirror("remove", user_id, write))
        return deleted
