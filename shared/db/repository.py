"""
Dual-write repository base.

During the migration the legacy (primary) schema is the source of truth.
Every mutation commits there first; only afterwards is the same write,
with the same primary key, mirrored into the domain's new schema. The
mirror is best-effort: its outcome is returned as a ``MirrorResult`` and
never propagates as an exception. Reads only ever touch the primary.
"""
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import structlog
from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shared.observability.metrics import dual_write_mirror_failures_total, dual_write_mirror_total

from .mirror import MirrorResult
from .schema_router import SchemaRouter

logger = structlog.get_logger(__name__)

MirrorWrite = Callable[[AsyncSession], Awaitable[Any]]


class DualWriteRepository:
    domain: str = None

    def __init__(self, session_factory: async_sessionmaker, router: SchemaRouter):
        self._sessions = session_factory
        self.router = router

    @property
    def primary_schema(self) -> str:
        return self.router.default_schema

    @property
    def mirror_schema(self) -> str:
        return self.router.resolve_schema(self.domain)

    @property
    def mirror_enabled(self) -> bool:
        return self.router.enabled and self.mirror_schema != self.primary_schema

    # -- statements --------------------------------------------------------

    def sql(
        self,
        statement: str,
        schema: Optional[str] = None,
        binds: Dict = None,
        columns: Dict = None,
        expanding: Tuple[str, ...] = (),
    ):
        """Build a text statement routed to ``schema`` (the primary by default)."""
        stmt = text(self.router.rewrite(statement, self.domain, schema=schema or self.primary_schema))
        params = [bindparam(name, type_=type_) for name, type_ in (binds or {}).items()]
        params += [bindparam(name, expanding=True) for name in expanding]
        if params:
            stmt = stmt.bindparams(*params)
        if columns:
            stmt = stmt.columns(**columns)
        return stmt

    def mirror_sql(self, statement: str, binds: Dict = None, columns: Dict = None):
        return self.sql(statement, schema=self.mirror_schema, binds=binds, columns=columns)

    async def execute(self, session: AsyncSession, stmt, params: Dict = None):
        try:
            return await session.execute(stmt, params or {})
        except SQLAlchemyError as e:
            logger.error("query_failed", domain=self.domain, sql=str(stmt), error=str(e))
            raise

    # -- units of work -----------------------------------------------------

    @asynccontextmanager
    async def transaction(self):
        """One pooled connection for the atomic unit, released on every exit path."""
        async with self._sessions() as session:
            async with session.begin():
                yield session

    async def fetch_one(self, stmt, params: Dict = None) -> Optional[dict]:
        async with self._sessions() as session:
            result = await self.execute(session, stmt, params)
            row = result.mappings().first()
            return dict(row) if row is not None else None

    async def fetch_all(self, stmt, params: Dict = None) -> list:
        async with self._sessions() as session:
            result = await self.execute(session, stmt, params)
            return [dict(row) for row in result.mappings().all()]

    async def fetch_scalar(self, stmt, params: Dict = None) -> Any:
        async with self._sessions() as session:
            result = await self.execute(session, stmt, params)
            return result.scalar_one()

    # -- mirroring ---------------------------------------------------------

    async def mirror(self, operation: str, entity_id: Any, write: MirrorWrite) -> MirrorResult:
        """Replay a committed write into the new schema. Never raises."""
        if not self.mirror_enabled:
            return MirrorResult.skipped(self.domain, operation, entity_id)
        try:
            async with self.transaction() as session:
                await write(session)
        except Exception as e:
            return MirrorResult.failed(self.domain, operation, entity_id, e)
        return MirrorResult.succeeded(self.domain, operation, entity_id)

    def report(self, result: MirrorResult) -> MirrorResult:
        dual_write_mirror_total.labels(
            domain=result.domain, operation=result.operation, outcome=result.outcome
        ).inc()
        if not result.ok:
            dual_write_mirror_failures_total.labels(domain=result.domain, operation=result.operation).inc()
            logger.warning(
                "mirror_write_failed",
                domain=result.domain,
                operation=result.operation,
                entity_id=result.entity_id,
                schema=self.mirror_schema,
                error=repr(result.error),
            )
        return result
