"""
Path-prefix reverse proxy used by the gateway once users/auth are split out.

Requests are forwarded as-is (method, query, headers including
Authorization, body) and the upstream answer is relayed unchanged. When
the upstream cannot be reached the client gets a fixed 502 envelope; the
network error itself is only logged.
"""
from dataclasses import dataclass
from typing import List, Optional

import httpx
import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse

from shared.errors import error_body
from shared.observability.metrics import upstream_request_failures_total

logger = structlog.get_logger(__name__)

# Connection-scoped headers that must not be forwarded (RFC 7230 6.1)
HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
})


def _forwardable(headers, drop=()) -> dict:
    return {
        name: value
        for name, value in headers.items()
        if name.lower() not in HOP_BY_HOP_HEADERS and name.lower() not in drop
    }


@dataclass(frozen=True)
class ProxyRoute:
    prefix: str
    upstream_url: str
    upstream_prefix: str
    unavailable_message: str
    upstream: str = "user_service"

    def matches(self, path: str) -> bool:
        return path == self.prefix or path.startswith(self.prefix.rstrip("/") + "/")

    def target(self, path: str) -> str:
        remainder = path[len(self.prefix.rstrip("/")):]
        return f"{self.upstream_url.rstrip('/')}{self.upstream_prefix.rstrip('/')}{remainder}"


class ServiceProxy:
    def __init__(self, routes: List[ProxyRoute], client: httpx.AsyncClient):
        self.routes = routes
        self.client = client

    def match(self, path: str) -> Optional[ProxyRoute]:
        return next((route for route in self.routes if route.matches(path)), None)

    async def route(self, request: Request, proxy_route: Optional[ProxyRoute] = None) -> Response:
        proxy_route = proxy_route or self.match(request.url.path)
        if proxy_route is None:
            return JSONResponse(status_code=404, content=error_body(404, "Not found"))

        url = proxy_route.target(request.url.path)
        upstream_request = self.client.build_request(
            request.method,
            url,
            params=request.query_params.multi_items(),
            headers=_forwardable(request.headers, drop=("host", "content-length")),
            content=await request.body(),
        )
        try:
            upstream_response = await self.client.send(upstream_request)
        except httpx.RequestError as e:
            upstream_request_failures_total.labels(upstream=proxy_route.upstream).inc()
            logger.error(
                "proxy_upstream_unavailable",
                upstream=proxy_route.upstream,
                method=request.method,
                url=url,
                error=repr(e),
            )
            return JSONResponse(status_code=502, content=error_body(502, proxy_route.unavailable_message))

        # httpx already decoded the body, so its encoding/length headers no longer apply
        headers = _forwardable(upstream_response.headers, drop=("content-encoding", "content-length"))
        return Response(
            content=upstream_response.content,
            status_code=upstream_response.status_code,
            headers=headers,
        )
