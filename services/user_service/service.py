from typing import Dict, List

import structlog

from shared.errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from shared.responses import offset_for, paginate
from shared.security.jwt_handler import TokenService
from shared.security.passwords import PasswordHasher

from .repository import UserRepository, public_view

logger = structlog.get_logger(__name__)


class UserService:

    @staticmethod
    async def create_user(repo: UserRepository, hasher: PasswordHasher, data: Dict) -> dict:
        if await repo.find_by_email(data["email"]):
            raise ConflictError("Email is already in use")

        user = await repo.create({**data, "password": hasher.hash(data["password"])})
        logger.info("user_created", user_id=user["id"], role=user["role"])
        return user

    @staticmethod
    async def get_user_by_id(repo: UserRepository, user_id: int) -> dict:
        user = await repo.find_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    async def get_users_by_ids(repo: UserRepository, user_ids: List[int]) -> List[dict]:
        return await repo.find_by_ids(user_ids)

    @staticmethod
    async def get_all_users(repo: UserRepository, page: int = 1, limit: int = 10) -> dict:
        users = await repo.find_all(limit=limit, offset=offset_for(page, limit))
        total = await repo.count()
        return {"users": users, "pagination": paginate(page, limit, total)}

    @staticmethod
    async def update_user(repo: UserRepository, user_id: int, fields: Dict) -> dict:
        existing = await repo.find_by_id(user_id)
        if not existing:
            raise NotFoundError("User not found")

        email = fields.get("email")
        if email and email != existing["email"] and await repo.find_by_email(email):
            raise ConflictError("Email is already in use")

        user = await repo.update(user_id, fields)
        if not user:
            # Deleted between the lookup and the update
            raise NotFoundError("User not found")
        return user

    @staticmethod
    async def update_password(
        repo: UserRepository,
        hasher: PasswordHasher,
        user_id: int,
        current_password: str,
        new_password: str,
    ) -> bool:
        if not current_password or not new_password:
            raise ValidationError("Current password and new password are required")

        user = await repo.find_credentials_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")

        if not hasher.verify(current_password, user["password"]):
            raise AuthenticationError("Current password is incorrect")

        if not await repo.update_password(user_id, hasher.hash(new_password)):
            raise NotFoundError("User not found")
        logger.info("password_updated", user_id=user_id)
        return True

    @staticmethod
    async def delete_user(repo: UserRepository, user_id: int) -> bool:
        if not await repo.remove(user_id):
            raise NotFoundError("User not found")
        logger.info("user_deleted", user_id=user_id)
        return True


class AuthService:

    @staticmethod
    async def register(repo: UserRepository, hasher: PasswordHasher, tokens: TokenService, data: Dict) -> dict:
        # Self-registration always creates customers
        user = await UserService.create_user(repo, hasher, {**data, "role": "customer"})
        return {"user": user, "token": tokens.issue(user)}

    @staticmethod
    async def login(
        repo: UserRepository, hasher: PasswordHasher, tokens: TokenService, email: str, password: str
    ) -> dict:
        # Unknown email and wrong password are indistinguishable to the caller
        user = await repo.find_by_email(email)
        if not user or not hasher.verify(password, user["password"]):
            logger.info("login_failed", email=email)
            raise AuthenticationError("Invalid credentials")

        return {"user": public_view(user), "token": tokens.issue(user)}
