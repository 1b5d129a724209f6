from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

from shared.errors import AuthorizationError, ValidationError
from shared.responses import success
from shared.security.dependencies import get_current_user, get_token_service, require_role
from shared.security.jwt_handler import TokenClaims, TokenService
from shared.security.passwords import PasswordHasher
from shared.security.rate_limiter import AUTH_RATE_LIMIT, limiter

from .dependencies import get_password_hasher, get_user_repository
from .repository import UserRepository
from .schemas import (
    AuthPayload,
    LoginRequest,
    PasswordUpdate,
    RegisterRequest,
    UserCreate,
    UserResponse,
    UserUpdate,
)
from .service import AuthService, UserService

auth_router = APIRouter(prefix="/api/auth", tags=["Authentication"])
router = APIRouter(prefix="/api/users", tags=["Users"])
public_router = APIRouter()  # For any public endpoints (e.g. health check)


@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"status": "success", "message": "Service is healthy"}


def _user(row: dict) -> UserResponse:
    return UserResponse.model_validate(row)


# -- auth -----------------------------------------------------------------


@auth_router.post(
    "/register",
    status_code=status.HTTP_201_CREATED,
    summary="Register a new customer account",
)
@limiter.limit(AUTH_RATE_LIMIT)
async def register(
    request: Request,
    payload: RegisterRequest,
    repo: UserRepository = Depends(get_user_repository),
    hasher: PasswordHasher = Depends(get_password_hasher),
    tokens: TokenService = Depends(get_token_service),
):
    result = await AuthService.register(repo, hasher, tokens, payload.model_dump())
    return success(AuthPayload(user=_user(result["user"]), token=result["token"]))


@auth_router.post("/login", summary="Authenticate and receive a JWT access token")
@limiter.limit(AUTH_RATE_LIMIT)
async def login(
    request: Request,
    payload: LoginRequest,
    repo: UserRepository = Depends(get_user_repository),
    hasher: PasswordHasher = Depends(get_password_hasher),
    tokens: TokenService = Depends(get_token_service),
):
    result = await AuthService.login(repo, hasher, tokens, payload.email, payload.password)
    return success(AuthPayload(user=_user(result["user"]), token=result["token"]))


# -- users ----------------------------------------------------------------
# /me and /batch are declared before /{user_id} so they are matched first.


@router.get("/me", summary="Get the current authenticated user's profile")
async def get_me(
    user: TokenClaims = Depends(get_current_user),
    repo: UserRepository = Depends(get_user_repository),
):
    return success({"user": _user(await UserService.get_user_by_id(repo, user.id))})


@router.patch("/me", summary="Update the current user's profile")
async def update_me(
    payload: UserUpdate,
    user: TokenClaims = Depends(get_current_user),
    repo: UserRepository = Depends(get_user_repository),
):
    fields = payload.model_dump(exclude_unset=True)
    if fields.get("role") and not user.is_admin and fields["role"] != user.role:
        raise AuthorizationError("You are not authorized to update roles")

    updated = await UserService.update_user(repo, user.id, fields)
    return success({"user": _user(updated)})


@router.get("", summary="List users (admin)")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    _: TokenClaims = Depends(require_role("admin")),
    repo: UserRepository = Depends(get_user_repository),
):
    result = await UserService.get_all_users(repo, page, limit)
    return success([_user(row) for row in result["users"]], pagination=result["pagination"])


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create a user (admin)")
async def create_user(
    payload: UserCreate,
    _: TokenClaims = Depends(require_role("admin")),
    repo: UserRepository = Depends(get_user_repository),
    hasher: PasswordHasher = Depends(get_password_hasher),
):
    user = await UserService.create_user(repo, hasher, payload.model_dump())
    return success({"user": _user(user)})


@router.get("/batch", summary="Look up several users at once (admin)")
async def get_users_by_ids(
    ids: Optional[str] = Query(None),
    _: TokenClaims = Depends(require_role("admin")),
    repo: UserRepository = Depends(get_user_repository),
):
    if not ids:
        raise ValidationError("User IDs are required")
    try:
        user_ids = [int(part) for part in ids.split(",") if part.strip()]
    except ValueError:
        raise ValidationError("User IDs must be integers")

    users = await UserService.get_users_by_ids(repo, user_ids)
    return success([_user(row) for row in users])


@router.get("/{user_id}", summary="Get a user by id")
async def get_user(
    user_id: int,
    _: TokenClaims = Depends(get_current_user),
    repo: UserRepository = Depends(get_user_repository),
):
    return success({"user": _user(await UserService.get_user_by_id(repo, user_id))})


@router.patch("/{user_id}", summary="Update a user (admin or self)")
async def update_user(
    user_id: int,
    payload: UserUpdate,
    user: TokenClaims = Depends(get_current_user),
    repo: UserRepository = Depends(get_user_repository),
):
    if not user.is_admin and user.id != user_id:
        raise AuthorizationError("You are not authorized to update this user")

    fields = payload.model_dump(exclude_unset=True)
    if fields.get("role") and not user.is_admin:
        raise AuthorizationError("You are not authorized to update roles")

    updated = await UserService.update_user(repo, user_id, fields)
    return success({"user": _user(updated)})


@router.patch("/{user_id}/password", summary="Change a user's own password")
async def update_password(
    user_id: int,
    payload: PasswordUpdate,
    user: TokenClaims = Depends(get_current_user),
    repo: UserRepository = Depends(get_user_repository),
    hasher: PasswordHasher = Depends(get_password_hasher),
):
    if user.id != user_id:
        raise AuthorizationError("You are not authorized to update this user's password")

    await UserService.update_password(repo, hasher, user_id, payload.current_password, payload.new_password)
    return success(message="Password updated successfully")


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a user (admin or self)")
async def delete_user(
    user_id: int,
    user: TokenClaims = Depends(get_current_user),
    repo: UserRepository = Depends(get_user_repository),
):
    if not user.is_admin and user.id != user_id:
        raise AuthorizationError("You are not authorized to delete this user")

    await UserService.delete_user(repo, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
