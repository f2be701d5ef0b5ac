from __future__ import annotations

from typing import Iterable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

STATIC_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Appends security headers to every response.

    API responses carry per-user data and organization settings, so they are
    marked ``Cache-Control: no-store``. Streamed assistant replies also opt out
    of reverse-proxy buffering, otherwise the text arrives in one burst.
    """

    def __init__(
        self,
        app,
        *,
        csp: str,
        hsts_max_age: int,
        enable_hsts: bool,
        no_store_prefix: str = "/api/",
        stream_prefixes: Iterable[str] = ("/api/chat/",),
    ) -> None:
        super().__init__(app)
        self.csp = csp
        self.hsts_max_age = hsts_max_age
        self.enable_hsts = enable_hsts
        self.no_store_prefix = no_store_prefix
        self.stream_prefixes = tuple(stream_prefixes)

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        path = request.url.path

        if self.enable_hsts:
            response.headers.setdefault(
                "Strict-Transport-Security",
                f"max-age={self.hsts_max_age}; includeSubDomains; preload",
            )
        for name, value in STATIC_HEADERS.items():
            response.headers.setdefault(name, value)
        if self.csp:
            response.headers.setdefault("Content-Security-Policy", self.csp)

        if self.no_store_prefix and path.startswith(self.no_store_prefix):
            response.headers.setdefault("Cache-Control", "no-store")
        if self.stream_prefixes and path.startswith(self.stream_prefixes):
            response.headers.setdefault("X-Accel-Buffering", "no")

        return response
