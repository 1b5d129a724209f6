"""
Shared fixtures.

The database is SQLite (aiosqlite): the primary schema is the ``main``
database and every domain schema is an attached database file, so
schema-qualified SQL behaves the way it does on PostgreSQL.
"""
from types import SimpleNamespace

import httpx
import pytest
from sqlalchemy import event

from services.order_service import models as order_models  # noqa: F401
from services.order_service.repository import OrderRepository
from services.user_service import models as user_models  # noqa: F401
from services.user_service.repository import UserRepository
from shared.config.database import build_engine, build_session_factory, create_schema_objects
from shared.config.settings import MONOLITH, SchemaMapping, Settings
from shared.db.schema_router import SchemaRouter
from shared.security.jwt_handler import TokenService
from shared.security.passwords import PasswordHasher

JWT_SECRET = "test-secret"
USER_SERVICE_URL = "http://users.local"


def make_settings(tmp_path, enabled=False, topology=MONOLITH, **overrides) -> Settings:
    options = dict(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'main.db'}",
        jwt_secret=JWT_SECRET,
        bcrypt_rounds=4,
        schema=SchemaMapping(enabled=enabled, default_schema="main"),
        topology=topology,
        user_service_url=USER_SERVICE_URL,
        service_name="test",
        metrics_enabled=False,
        rate_limit_enabled=False,
    )
    options.update(overrides)
    return Settings(**options)


def attach_schemas(engine, tmp_path, mapping: SchemaMapping):
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        for schema in (mapping.users_schema, mapping.orders_schema):
            cursor.execute(f"ATTACH DATABASE '{tmp_path / schema}.db' AS {schema}")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def dual_settings(tmp_path):
    return make_settings(tmp_path, enabled=True)


@pytest.fixture
async def make_engine(tmp_path):
    engines = []

    def factory(settings):
        engine = build_engine(settings)
        attach_schemas(engine, tmp_path, settings.schema)
        engines.append(engine)
        return engine

    yield factory
    for engine in engines:
        await engine.dispose()


@pytest.fixture
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture
def tokens():
    return TokenService(JWT_SECRET, expires_minutes=5)


async def build_repos(settings, engine, create_mapping=None):
    await create_schema_objects(engine, create_mapping or settings.schema)
    sessions = build_session_factory(engine)
    router = SchemaRouter(settings.schema)
    return SimpleNamespace(
        engine=engine,
        router=router,
        users=UserRepository(sessions, router),
        orders=OrderRepository(sessions, router),
    )


@pytest.fixture
async def repos(settings, make_engine):
    return await build_repos(settings, make_engine(settings))


@pytest.fixture
async def dual_repos(dual_settings, make_engine):
    return await build_repos(dual_settings, make_engine(dual_settings))


@pytest.fixture
def new_user(hasher):
    counter = {"n": 0}

    async def factory(users: UserRepository, role="customer", password="secret-pass", **fields):
        counter["n"] += 1
        data = {
            "name": f"User {counter['n']}",
            "email": f"user{counter['n']}@shop.io",
            "password": hasher.hash(password),
            "role": role,
        }
        data.update(fields)
        return await users.create(data)

    return factory


def record_reports(monkeypatch, repo):
    """Capture every MirrorResult a repository reports."""
    results = []
    original = repo.report

    def report(result):
        results.append(result)
        return original(result)

    monkeypatch.setattr(repo, "report", report)
    return results


@pytest.fixture
async def upstream_client():
    """An httpx client whose transport is swapped per test via ``handler``."""
    state = SimpleNamespace(handler=None, requests=[])

    def dispatch(request: httpx.Request):
        state.requests.append(request)
        return state.handler(request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(dispatch))
    state.client = client
    yield state
    await client.aclose()
