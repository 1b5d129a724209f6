"""
Error taxonomy and the FastAPI handlers that render it.

Services raise ``ApiError`` subclasses; the handlers turn them into the
``{"status": ..., "message": ...}`` envelope. Anything that is not an
``ApiError`` is logged in full and rendered as a generic 500.
"""
import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = structlog.get_logger(__name__)


class ApiError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Something went wrong!"

    def __init__(self, message: str = None, status_code: int = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class ValidationError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthenticationError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated. Please log in."


class AuthorizationError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have permission to perform this action"


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class ConflictError(ApiError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Duplicate key value violates unique constraint"


class UpstreamError(ApiError):
    """An upstream service answered with a non-2xx status we pass through."""

    default_message = "Error from upstream service"


class UpstreamUnavailableError(ApiError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Upstream service unavailable"


class InternalError(ApiError):
    pass


def error_body(status_code: int, message: str) -> dict:
    return {"status": "fail" if 400 <= status_code < 500 else "error", "message": message}


def _render(status_code: int, message: str, headers: dict = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_body(status_code, message), headers=headers)


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("api_error", status_code=exc.status_code, message=exc.message, path=request.url.path)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return _render(exc.status_code, exc.message, headers)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if not errors:
        return _render(status.HTTP_400_BAD_REQUEST, "Invalid request")
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    return _render(status.HTTP_400_BAD_REQUEST, message)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Routing errors (unknown path, wrong method) in the same envelope
    return _render(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("integrity_error", error=str(exc.orig), path=request.url.path)
    return _render(status.HTTP_409_CONFLICT, ConflictError.default_message)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Programming or other unknown error: don't leak details
    logger.exception("unhandled_error", path=request.url.path, method=request.method)
    return _render(status.HTTP_500_INTERNAL_SERVER_ERROR, InternalError.default_message)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
