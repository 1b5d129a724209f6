from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shared.errors import AuthenticationError, AuthorizationError

from .jwt_handler import TokenClaims, TokenService

# Defines the expected header format (Bearer <token>)
bearer_scheme = HTTPBearer(auto_error=False)


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
) -> TokenClaims:
    """Validate the bearer token; its claims (not the DB) are authoritative for roles."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Not authenticated. Please log in.")

    claims = tokens.verify(credentials.credentials)

    # Store in request state for downstream use (rate limiting, forwarding)
    request.state.user_id = claims.id
    return claims


def get_auth_header(request: Request) -> Optional[str]:
    """The caller's Authorization header, forwarded verbatim to the user service."""
    return request.headers.get("Authorization")


def require_role(*roles: str):
    async def checker(user: TokenClaims = Depends(get_current_user)) -> TokenClaims:
        if user.role not in roles:
            raise AuthorizationError("You do not have permission to perform this action")
        return user

    return checker
