from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from shared.errors import error_body

# Applied to the unauthenticated auth endpoints (register / login)
AUTH_RATE_LIMIT = "20/minute"


def user_id_or_ip(request: Request) -> str:
    """
    Key function for SlowAPI.
    Uses the authenticated user id when get_current_user already ran,
    otherwise falls back to the client's IP address.
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id is not None:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


# Initialize the Limiter with our custom key function
limiter = Limiter(key_func=user_id_or_ip)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(status_code=429, content=error_body(429, f"Rate limit exceeded: {exc.detail}"))
