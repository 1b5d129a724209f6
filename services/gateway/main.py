"""
Gateway: the public entry point of the order management system.

Orders are always served in-process. Users and auth are either mounted
in-process too (monolith) or forwarded to the standalone user service
(microservices), depending on ``TOPOLOGY``.
"""
from typing import Optional

import httpx
import structlog
from fastapi import FastAPI, Request
from sqlalchemy.ext.asyncio import AsyncEngine

from services.order_service import models as order_models  # noqa: F401 registers orders tables
from services.order_service.repository import OrderRepository
from services.order_service.router import router as order_router
from services.order_service.router import user_orders_router
from services.order_service.service import OrderService
from services.order_service.user_resolver import LocalUserResolver, RemoteUserResolver
from services.user_service import models as user_models  # noqa: F401 orders reference users
from services.user_service.repository import UserRepository
from services.user_service.router import auth_router
from services.user_service.router import router as user_router
from shared.bootstrap import bootstrap_app
from shared.config.database import create_schema_objects
from shared.config.settings import Settings, get_settings

from .proxy import ProxyRoute, ServiceProxy
from .seed import seed_demo_data

logger = structlog.get_logger(__name__)

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"]


def proxy_routes(settings: Settings):
    return [
        ProxyRoute(
            prefix="/api/users",
            upstream_url=settings.user_service_url,
            upstream_prefix="/api/users",
            unavailable_message="User service is currently unavailable",
        ),
        ProxyRoute(
            prefix="/api/auth",
            upstream_url=settings.user_service_url,
            upstream_prefix="/api/auth",
            unavailable_message="Authentication service is currently unavailable",
            upstream="auth_service",
        ),
    ]


async def forward(request: Request):
    return await request.app.state.proxy.route(request)


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="Order Management Gateway",
        version="1.0.0",
        description="Orders, plus users/auth either in-process or proxied to the user service.",
    )
    bootstrap_app(app, settings, engine)

    owns_client = http_client is None
    client = http_client or httpx.AsyncClient(timeout=settings.upstream_timeout_seconds)
    app.state.http_client = client

    @app.get("/health", include_in_schema=False)
    async def health_check():
        return {"status": "success", "message": "Service is healthy"}

    orders = OrderRepository(app.state.sessions, app.state.schema_router)

    # Declared before any /api/users handler or proxy so it is matched first
    app.include_router(user_orders_router)
    app.include_router(order_router)

    if settings.is_microservices:
        app.state.proxy = ServiceProxy(proxy_routes(settings), client)
        app.state.order_service = OrderService(orders, RemoteUserResolver(client, settings.user_service_url))
        for route in app.state.proxy.routes:
            app.add_api_route(route.prefix, forward, methods=PROXY_METHODS, include_in_schema=False)
            app.add_api_route(f"{route.prefix}/{{path:path}}", forward, methods=PROXY_METHODS, include_in_schema=False)
    else:
        app.state.user_repository = UserRepository(app.state.sessions, app.state.schema_router)
        app.state.order_service = OrderService(orders, LocalUserResolver(app.state.user_repository))
        app.include_router(auth_router)
        app.include_router(user_router)

    @app.on_event("startup")
    async def startup_event() -> None:
        await create_schema_objects(app.state.engine, settings.schema)
        if settings.seed_demo_data and not settings.is_production:
            # the users table is shared, so the gateway can seed it in either topology
            users = UserRepository(app.state.sessions, app.state.schema_router)
            await seed_demo_data(users, orders, app.state.hasher)
        logger.info(
            "gateway_started",
            topology=settings.topology,
            dual_write=settings.schema.enabled,
            user_service_url=settings.user_service_url if settings.is_microservices else None,
        )

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        if owns_client:
            await client.aclose()
        await app.state.engine.dispose()

    return app
