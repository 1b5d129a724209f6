"""
Standalone user service: registration, login and user CRUD.

The same routers are mounted in-process by the gateway when it runs as a
monolith; this app is what the gateway proxies to in the split topology.
"""
from dataclasses import replace
from typing import Optional

import structlog
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncEngine

from shared.bootstrap import bootstrap_app
from shared.config.database import create_schema_objects
from shared.config.settings import Settings, get_settings

from . import models  # noqa: F401 registers the users table with Base
from .repository import UserRepository
from .router import auth_router, public_router, router

logger = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None, engine: Optional[AsyncEngine] = None) -> FastAPI:
    settings = settings or replace(get_settings(), service_name="user_service")

    app = FastAPI(
        title="User Service",
        version="1.0.0",
        description="User accounts and JWT authentication.",
    )
    bootstrap_app(app, settings, engine)
    app.state.user_repository = UserRepository(app.state.sessions, app.state.schema_router)

    app.include_router(public_router)
    app.include_router(auth_router)
    app.include_router(router)

    @app.on_event("startup")
    async def startup_event() -> None:
        await create_schema_objects(app.state.engine, settings.schema)
        logger.info("user_service_started", dual_write=settings.schema.enabled)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await app.state.engine.dispose()

    return app
