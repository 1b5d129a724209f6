from fastapi import Request

from shared.security.passwords import PasswordHasher

from .repository import UserRepository


def get_user_repository(request: Request) -> UserRepository:
    return request.app.state.user_repository


def get_password_hasher(request: Request) -> PasswordHasher:
    return request.app.state.hasher
