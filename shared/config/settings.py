"""
Process-wide configuration.

Everything is read from the environment exactly once (``get_settings`` is
cached) and frozen afterwards. Components receive the values they need
through their constructors instead of calling ``os.getenv`` themselves.
"""
import os
import warnings
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Optional

from dotenv import load_dotenv

USERS_DOMAIN = "users"
ORDERS_DOMAIN = "orders"

# Physical table name -> logical domain
TABLE_DOMAINS: Dict[str, str] = {
    "users": USERS_DOMAIN,
    "orders": ORDERS_DOMAIN,
    "order_items": ORDERS_DOMAIN,
}

MONOLITH = "monolith"
MICROSERVICES = "microservices"


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class SchemaMapping:
    """Which physical schema each domain lives in, selected by ``enabled``."""

    enabled: bool = False
    default_schema: str = "public"
    users_schema: str = "users_schema"
    orders_schema: str = "orders_schema"
    table_domains: Dict[str, str] = field(default_factory=lambda: dict(TABLE_DOMAINS))

    def domain_schema(self, domain: str) -> str:
        """The dedicated schema of a domain, regardless of the flag."""
        if domain == USERS_DOMAIN:
            return self.users_schema
        if domain == ORDERS_DOMAIN:
            return self.orders_schema
        return self.default_schema

    def domain_of(self, table: str) -> Optional[str]:
        return self.table_domains.get(table)

    @property
    def known_schemas(self) -> frozenset:
        return frozenset({self.default_schema, self.users_schema, self.orders_schema})


@dataclass(frozen=True)
class Settings:
    database_url: str
    db_pool_size: int = 5
    db_max_overflow: int = 5
    db_echo: bool = False

    jwt_secret: str = "insecure-default-change-me"
    jwt_expiration_minutes: int = 60
    bcrypt_rounds: int = 10

    schema: SchemaMapping = field(default_factory=SchemaMapping)

    topology: str = MONOLITH
    user_service_url: str = "http://localhost:3030"
    upstream_timeout_seconds: float = 10.0

    service_name: str = "order_gateway"
    log_level: str = "INFO"
    otlp_endpoint: Optional[str] = None
    metrics_enabled: bool = True
    rate_limit_enabled: bool = True

    environment: str = "development"
    seed_demo_data: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_microservices(self) -> bool:
        return self.topology == MICROSERVICES

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()

        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            user = os.getenv("DB_USER", "postgres")
            password = os.getenv("DB_PASSWORD", "postgres")
            host = os.getenv("DB_HOST", "localhost")
            port = os.getenv("DB_PORT", "5432")
            name = os.getenv("DB_NAME", "order_management")
            database_url = f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"

        jwt_secret = os.getenv("JWT_SECRET", "")
        if not jwt_secret:
            warnings.warn(
                "JWT_SECRET is not set. Using an insecure default. "
                "Set this env var in production!",
                stacklevel=2,
            )
            jwt_secret = "insecure-default-change-me"

        topology = os.getenv("TOPOLOGY", MONOLITH).strip().lower()
        if topology not in (MONOLITH, MICROSERVICES):
            raise ValueError(f"TOPOLOGY must be '{MONOLITH}' or '{MICROSERVICES}', got {topology!r}")

        return cls(
            database_url=database_url,
            db_pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
            db_max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "5")),
            db_echo=_env_bool("DB_ECHO"),
            jwt_secret=jwt_secret,
            jwt_expiration_minutes=int(os.getenv("JWT_EXPIRATION_MINUTES", "60")),
            bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "10")),
            schema=SchemaMapping(
                enabled=_env_bool("USE_NEW_SCHEMA"),
                default_schema=os.getenv("DEFAULT_SCHEMA", "public"),
                users_schema=os.getenv("USERS_SCHEMA", "users_schema"),
                orders_schema=os.getenv("ORDERS_SCHEMA", "orders_schema"),
            ),
            topology=topology,
            user_service_url=os.getenv("USER_SERVICE_URL", "http://localhost:3030").rstrip("/"),
            upstream_timeout_seconds=float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "10")),
            service_name=os.getenv("SERVICE_NAME", "order_gateway"),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            otlp_endpoint=os.getenv("OTLP_ENDPOINT") or None,
            metrics_enabled=_env_bool("METRICS_ENABLED", True),
            rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", True),
            environment=os.getenv("APP_ENV", "development").strip().lower(),
            seed_demo_data=_env_bool("SEED_DEMO_DATA"),
        )


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
