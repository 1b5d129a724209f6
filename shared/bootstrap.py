"""
Wiring every service app shares: observability, error handlers, rate
limiting and the process-wide resources kept on ``app.state``.
"""
from typing import Optional

from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded
from sqlalchemy.ext.asyncio import AsyncEngine

from shared.config.database import build_engine, build_session_factory
from shared.config.settings import Settings
from shared.db.schema_router import SchemaRouter
from shared.errors import register_exception_handlers
from shared.observability.setup import setup_observability
from shared.security.jwt_handler import TokenService
from shared.security.passwords import PasswordHasher
from shared.security.rate_limiter import limiter, rate_limit_exceeded_handler


def bootstrap_app(app: FastAPI, settings: Settings, engine: Optional[AsyncEngine] = None) -> FastAPI:
    setup_observability(
        app,
        settings.service_name,
        log_level=settings.log_level,
        otlp_endpoint=settings.otlp_endpoint,
        metrics_enabled=settings.metrics_enabled,
    )
    register_exception_handlers(app)

    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    engine = engine if engine is not None else build_engine(settings)
    app.state.settings = settings
    app.state.engine = engine
    app.state.sessions = build_session_factory(engine)
    app.state.schema_router = SchemaRouter(settings.schema)
    app.state.tokens = TokenService(settings.jwt_secret, settings.jwt_expiration_minutes)
    app.state.hasher = PasswordHasher(settings.bcrypt_rounds)
    return app
