"""
=============================================================================
CORS MIDDLEWARE
=============================================================================

Lets pages served from another origin (a dev server on :5173, a file://
page) fetch assets from this server.

    Simple request                      Preflight
    ──────────────                      ─────────
    GET /data.json                      OPTIONS /data.json
    Origin: http://localhost:5173       Origin: http://localhost:5173
                                        Access-Control-Request-Method: GET
           │                                   │
           ▼                                   ▼
    200 + Access-Control-Allow-Origin   204 + Allow-Origin, Allow-Methods,
                                              Allow-Headers, Max-Age

The defaults match a read-only file server: only GET/HEAD/OPTIONS, and only
the request headers the static pipeline understands (conditional requests,
content negotiation, ranges).
=============================================================================
"""

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import List, Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder


@dataclass
class CORSConfig:
    allow_origins: List[str] = field(default_factory=lambda: ["*"])
    allow_methods: List[str] = field(default_factory=lambda: ["GET", "HEAD", "OPTIONS"])
    allow_headers: List[str] = field(default_factory=lambda: [
        "Range", "Accept-Encoding", "If-None-Match", "If-Modified-Since",
    ])
    expose_headers: List[str] = field(default_factory=lambda: [
        "ETag", "Content-Length", "Content-Encoding", "X-Compression-Ratio",
    ])
    allow_credentials: bool = False
    max_age: int = 86400


class CORSMiddleware(Middleware):
    def __init__(self, config: Optional[CORSConfig] = None):
        self.config = config or CORSConfig()

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        origin = request.headers.get("origin", "")

        if request.method == "OPTIONS":
            return self._preflight(request, origin)

        response = next(request)
        self._add_cors_headers(response, origin)
        return response

    def _preflight(self, request: HTTPRequest, origin: str) -> HTTPResponse:
        response = (ResponseBuilder()
            .status(HTTPStatus.NO_CONTENT)
            .header("Allow", ", ".join(self.config.allow_methods))
            .build())
        self._add_cors_headers(response, origin)
        response.headers["Access-Control-Allow-Methods"] = ", ".join(self.config.allow_methods)
        response.headers["Access-Control-Allow-Headers"] = ", ".join(self.config.allow_headers)
        response.headers["Access-Control-Max-Age"] = str(self.config.max_age)
        return response

    def _allowed_origin(self, origin: str) -> Optional[str]:
        if "*" in self.config.allow_origins:
            # Credentials forbid the wildcard; echo the origin instead
            if self.config.allow_credentials and origin:
                return origin
            return "*"
        if origin in self.config.allow_origins:
            return origin
        return None

    def _add_cors_headers(self, response: HTTPResponse, origin: str):
        allowed = self._allowed_origin(origin)
        if allowed is None:
            return

        response.headers["Access-Control-Allow-Origin"] = allowed
        if self.config.allow_credentials:
            response.headers["Access-Control-Allow-Credentials"] = "true"
        if self.config.expose_headers:
            response.headers["Access-Control-Expose-Headers"] = ", ".join(self.config.expose_headers)
        if allowed != "*":
            response.add_vary("Origin")
