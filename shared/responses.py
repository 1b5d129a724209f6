"""Success envelopes shared by every service: {"status": "success", ...}."""
import math
from typing import Any

from pydantic import BaseModel


class Pagination(BaseModel):
    page: int
    limit: int
    totalItems: int
    totalPages: int


def paginate(page: int, limit: int, total: int) -> Pagination:
    return Pagination(page=page, limit=limit, totalItems=total, totalPages=math.ceil(total / limit) if limit else 0)


def offset_for(page: int, limit: int) -> int:
    return (page - 1) * limit


def success(data: Any = None, **extra) -> dict:
    body = {"status": "success"}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body
