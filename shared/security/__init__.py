from .jwt_handler import TokenClaims, TokenService
from .passwords import PasswordHasher
from .dependencies import get_auth_header, get_current_user, get_token_service, require_role
from .rate_limiter import AUTH_RATE_LIMIT, limiter, rate_limit_exceeded_handler, user_id_or_ip

__all__ = [
    "TokenClaims",
    "TokenService",
    "PasswordHasher",
    "get_auth_header",
    "get_current_user",
    "get_token_service",
    "require_role",
    "AUTH_RATE_LIMIT",
    "limiter",
    "rate_limit_exceeded_handler",
    "user_id_or_ip",
]
