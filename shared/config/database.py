from sqlalchemy import MetaData, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .settings import SchemaMapping, Settings

# Models declare their tables here without a schema. The physical tables
# are copies placed into the primary and mirror schemas (see build_metadata).
Base = declarative_base()


def build_engine(settings: Settings) -> AsyncEngine:
    url = make_url(settings.database_url)
    options = {"echo": settings.db_echo, "pool_pre_ping": True}
    if url.get_backend_name() != "sqlite":
        options.update(pool_size=settings.db_pool_size, max_overflow=settings.db_max_overflow)
    return create_async_engine(url, **options)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


def _referred_table(constraint) -> str:
    # target_fullname is "table.column" (or "schema.table.column")
    return constraint.elements[0].target_fullname.rsplit(".", 2)[-2]


def build_metadata(mapping: SchemaMapping, mirror: bool = False, source: MetaData = None) -> MetaData:
    """Copy the declared tables into the primary schema, or into their domain schemas."""
    source = source if source is not None else Base.metadata
    target = MetaData()

    def schema_for(table_name: str) -> str:
        if not mirror:
            return mapping.default_schema
        return mapping.domain_schema(mapping.domain_of(table_name))

    def referred_schema_fn(table, to_schema, constraint, referred_schema):
        return schema_for(_referred_table(constraint))

    for table in source.sorted_tables:
        table.to_metadata(target, schema=schema_for(table.name), referred_schema_fn=referred_schema_fn)
    return target


async def create_schema_objects(engine: AsyncEngine, mapping: SchemaMapping) -> None:
    """Create the domain schemas and tables. Safe to run on every startup."""
    async with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            for schema in sorted(mapping.known_schemas):
                await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{schema}"'))

        await conn.run_sync(build_metadata(mapping).create_all)
        if mapping.enabled:
            await conn.run_sync(build_metadata(mapping, mirror=True).create_all)
