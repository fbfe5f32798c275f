"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

One log line per request on the "gzipstatic.access" logger, either as text:

    127.0.0.1 "GET /app.js" 200 4211B gzip 1.84ms

or as JSON (for log shippers):

    {"request_id": "3f2a9c1b", "method": "GET", "path": "/app.js",
     "status_code": 200, "content_length": 4211, "encoding": "gzip", ...}

Status codes pick the level: 5xx → ERROR, 4xx → WARNING (except 404, which
browsers trigger constantly for favicons and source maps), rest → INFO.
=============================================================================
"""

import json
import logging
import time
import uuid
from dataclasses import asdict, dataclass

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

logger = logging.getLogger("gzipstatic.access")


@dataclass
class RequestLog:
    request_id: str
    method: str
    path: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    encoding: str
    duration_ms: float

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        return (
            f'{self.client_ip} "{self.method} {self.path}" {self.status_code} '
            f'{self.content_length}B {self.encoding} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
    ):
        self.log_format = log_format
        self.include_request_id = include_request_id

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = uuid.uuid4().hex[:8]
        start = time.perf_counter()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.error(
                f"{request.method} {request.path} failed: "
                f"{type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000

        if self.include_request_id:
            response.headers["X-Request-ID"] = request_id

        entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            client_ip=request.client_address[0] or "-",
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=response.content_length if response.has_body else 0,
            encoding=response.headers.get("Content-Encoding", "identity"),
            duration_ms=duration_ms,
        )

        message = json.dumps(entry.to_dict()) if self.log_format == "json" else entry.to_text()
        logger.log(self._level_for(entry.status_code), message)
        return response

    @staticmethod
    def _level_for(status_code: int) -> int:
        if status_code >= 500:
            return logging.ERROR
        if status_code >= 400 and status_code != 404:
            return logging.WARNING
        return logging.INFO
