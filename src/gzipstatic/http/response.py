"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

Turns status + headers + body into the bytes written to the socket.

=============================================================================
RESPONSE FORMAT (RFC 7230)
=============================================================================

    ┌──────────────────────────────────────────────────────────────────┐
    │ HTTP/1.1 200 OK\r\n                          ← status line       │
    │ Content-Type: text/html; charset=utf-8\r\n   ← headers           │
    │ Content-Encoding: gzip\r\n                                       │
    │ Content-Length: 412\r\n                                          │
    │ ETag: "2048-1718000000000"\r\n                                   │
    │ \r\n                                         ← blank line        │
    │ <412 gzip bytes>                             ← body              │
    └──────────────────────────────────────────────────────────────────┘

=============================================================================
CONTENT-LENGTH RULES
=============================================================================

to_bytes() fills in Content-Length from the body only when the handler did
not set it. That matters for two cases in static serving:

    HEAD  → handler sets Content-Length to what GET would send,
            body is empty. The explicit header must survive.
    304   → no Content-Length at all (RFC 7232 §4.1); a 304 never has a
            body and "Content-Length: 0" would describe a different
            representation.

Statuses that cannot carry a body (1xx, 204, 304) never get an automatic
Content-Length.
=============================================================================
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Dict, Iterable, Optional, Union

DEFAULT_SERVER_NAME = "Gzip-Static-Server/1.0.0"

# Responses to these statuses never carry a body
BODYLESS_STATUSES = frozenset({
    HTTPStatus.NO_CONTENT,
    HTTPStatus.NOT_MODIFIED,
})


@dataclass
class HTTPResponse:
    """
    A complete HTTP response.

    Headers keep the case they were set with; lookups in this codebase use
    the canonical casing ("Content-Length", "ETag", ...).
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        return f"{self.version} {self.status.value} {self.status.phrase}"

    @property
    def has_body(self) -> bool:
        return self.status >= 200 and self.status not in BODYLESS_STATUSES

    @property
    def content_length(self) -> int:
        """Length the client will be told about (header wins over body)."""
        try:
            return int(self.headers["Content-Length"])
        except (KeyError, ValueError):
            return len(self.body)

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def add_vary(self, header_name: str) -> "HTTPResponse":
        """Append a header name to Vary without duplicating it."""
        vary = self.headers.get("Vary", "")
        names = [v.strip() for v in vary.split(",") if v.strip()]
        if header_name.lower() not in (n.lower() for n in names):
            names.append(header_name)
        self.headers["Vary"] = ", ".join(names)
        return self

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """Serialize. Adds Content-Length, Date and Server when missing."""
        response_headers = dict(self.headers)

        if self.has_body:
            response_headers.setdefault("Content-Length", str(len(self.body)))
        else:
            response_headers.pop("Content-Length", None)

        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)

        lines = [self.status_line]
        lines.extend(f"{name}: {value}" for name, value in response_headers.items())
        lines.append("")
        header_bytes = "\r\n".join(lines).encode("latin-1") + b"\r\n"

        body = self.body if self.has_body else b""
        return header_bytes + body


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

    Example:
        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type("text/css")
            .cache(3600)
            .body(css_bytes)
            .build())
    """

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: Union[HTTPStatus, int]) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        self._headers.update(headers)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def json(self, data: Any) -> "ResponseBuilder":
        self._body = json.dumps(data, ensure_ascii=False).encode("utf-8")
        self._headers["Content-Type"] = "application/json; charset=utf-8"
        return self

    def cache(self, max_age: int = 3600) -> "ResponseBuilder":
        self._headers["Cache-Control"] = f"public, max-age={max_age}"
        return self

    def no_cache(self) -> "ResponseBuilder":
        self._headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
        return self

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(status=self._status, headers=dict(self._headers), body=self._body)


# =============================================================================
# HTTP DATE
# =============================================================================

_DAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an IMF-fixdate: "Sun, 06 Nov 1994 08:49:37 GMT".

    Naive datetimes are taken to be UTC. English day/month names are
    hard-coded because strftime follows the process locale.
    """
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE RESPONSES
# =============================================================================
# Error bodies are generic JSON. Internal detail goes to the log only.

def error_response(status: HTTPStatus, message: Optional[str] = None) -> HTTPResponse:
    return (ResponseBuilder()
        .status(status)
        .no_cache()
        .json({"error": message or status.phrase})
        .build())


def no_content(headers: Optional[Dict[str, str]] = None) -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.NO_CONTENT).headers(headers or {}).build()


def not_modified(headers: Optional[Dict[str, str]] = None) -> HTTPResponse:
    return ResponseBuilder().status(HTTPStatus.NOT_MODIFIED).headers(headers or {}).build()


def bad_request(message: str = "Bad Request") -> HTTPResponse:
    return error_response(HTTPStatus.BAD_REQUEST, message)


def not_found() -> HTTPResponse:
    return error_response(HTTPStatus.NOT_FOUND)


def method_not_allowed(allowed_methods: Iterable[str]) -> HTTPResponse:
    response = error_response(HTTPStatus.METHOD_NOT_ALLOWED)
    response.headers["Allow"] = ", ".join(allowed_methods)
    return response


def internal_error() -> HTTPResponse:
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR)
