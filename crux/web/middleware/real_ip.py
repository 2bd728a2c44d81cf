"""ASGI middleware resolving the real client IP behind proxies."""

from __future__ import annotations

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Receive, Scope, Send

from crux.core.logging import log_context
from crux.core.net.client_ip import format_peer, resolve_client_ip, strip_port


class RealIPMiddleware:
    """Rewrites the request client to the resolved IP.

    The resolved address is stored in ``scope["state"]["client_ip"]`` and
    replaces the host in ``scope["client"]``. It must wrap
    :class:`RateLimitMiddleware` so both agree on the client identity.

    Downstream log records carry the resolved ``client_ip`` and a trace id
    taken from ``X-Request-ID`` when the caller sends one.
    """

    def __init__(self, app: ASGIApp, *, trust_forwarded_headers: bool = True) -> None:
        self.app = app
        self.trust_forwarded_headers = trust_forwarded_headers

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        client = scope.get("client")
        peer = format_peer(client)
        if self.trust_forwarded_headers:
            ip = resolve_client_ip(peer, headers.get("x-forwarded-for"), headers.get("x-real-ip"))
        else:
            ip = strip_port(peer)

        scope.setdefault("state", {})["client_ip"] = ip
        scope["client"] = (ip, client[1] if client else 0)

        with log_context(trace_id=headers.get("x-request-id"), client_ip=ip):
            await self.app(scope, receive, send)
