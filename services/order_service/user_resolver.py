"""
How the order service learns about users.

In the monolith the users table is next door and is read directly. Once
the user service is split out, the same questions are asked over HTTP,
forwarding the caller's bearer token.
"""
from typing import Dict, Iterable, Optional

import httpx
import structlog

from services.user_service.repository import UserRepository
from shared.errors import ApiError, NotFoundError, UpstreamError, UpstreamUnavailableError
from shared.observability.metrics import upstream_request_failures_total

logger = structlog.get_logger(__name__)


class UserResolver:
    async def get_user(self, user_id: int, auth_token: Optional[str] = None) -> dict:
        """Return the user or raise ``NotFoundError("User not found")``."""
        raise NotImplementedError

    async def get_users(self, user_ids: Iterable[int], auth_token: Optional[str] = None) -> Dict[int, dict]:
        """Best-effort lookup keyed by id; unknown ids are simply absent."""
        raise NotImplementedError


class LocalUserResolver(UserResolver):
    def __init__(self, users: UserRepository):
        self.users = users

    async def get_user(self, user_id, auth_token=None):
        user = await self.users.find_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def get_users(self, user_ids, auth_token=None):
        unique = list(dict.fromkeys(user_ids))
        return {user["id"]: user for user in await self.users.find_by_ids(unique)}


def _upstream_message(response: httpx.Response) -> str:
    try:
        return response.json().get("message") or "Error from user service"
    except (ValueError, AttributeError):
        return "Error from user service"


class RemoteUserResolver(UserResolver):
    upstream = "user_service"

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    def _headers(self, auth_token: Optional[str]) -> dict:
        return {"Authorization": auth_token} if auth_token else {}

    async def get_user(self, user_id, auth_token=None):
        url = f"{self.base_url}/api/users/{user_id}"
        try:
            response = await self.client.get(url, headers=self._headers(auth_token))
        except httpx.RequestError as e:
            upstream_request_failures_total.labels(upstream=self.upstream).inc()
            logger.error("user_service_unreachable", url=url, error=repr(e))
            raise UpstreamUnavailableError("User service unavailable")

        if response.status_code == 404:
            raise NotFoundError("User not found")
        if not response.is_success:
            raise UpstreamError(_upstream_message(response), status_code=response.status_code)
        return response.json()["data"]["user"]

    async def get_users(self, user_ids, auth_token=None):
        unique = list(dict.fromkeys(user_ids))
        if not unique:
            return {}

        try:
            response = await self.client.get(
                f"{self.base_url}/api/users/batch",
                params={"ids": ",".join(str(user_id) for user_id in unique)},
                headers=self._headers(auth_token),
            )
            response.raise_for_status()
            return {user["id"]: user for user in response.json()["data"]}
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.warning("user_batch_lookup_failed", count=len(unique), error=repr(e))

        # Fall back to one request per user, keeping whatever succeeds
        users = {}
        for user_id in unique:
            try:
                users[user_id] = await self.get_user(user_id, auth_token)
            except ApiError as e:
                logger.warning("user_lookup_failed", user_id=user_id, error=e.message)
        return users
