"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Parses the raw bytes of an HTTP/1.x request into an HTTPRequest.

=============================================================================
REQUEST ANATOMY
=============================================================================

    ┌──────────────────────────────────────────────────────────────────┐
    │ GET /docs/a%20b.html?v=3 HTTP/1.1\r\n        ← request line      │
    │ Host: localhost:3000\r\n                     ← headers           │
    │ Accept-Encoding: gzip, br\r\n                                    │
    │ If-None-Match: "2048-1718000000000"\r\n                          │
    │ \r\n                                         ← end of headers    │
    └──────────────────────────────────────────────────────────────────┘

    target = "/docs/a%20b.html?v=3"   exactly as received
    path   = "/docs/a b.html"         decoded, for logs and display

=============================================================================
WHY KEEP THE RAW TARGET?
=============================================================================

The static handler does its own decoding, strictly: invalid UTF-8 in a
percent-escape is a 404, not a best-effort replacement character. It also
does traversal checks AFTER resolving the path on disk, which catches
"%2e%2e/", doubled encodings and symlinks alike. A string check for ".."
here would only catch the easy cases, so the parser no longer tries.
=============================================================================
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import parse_qs, unquote, urlsplit


class HTTPParseError(Exception):
    """
    Raised for malformed requests.

    status_code is the response to send: 400 Bad Request by default,
    413 for oversized requests, 505 for unknown HTTP versions.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """A parsed HTTP request. Header names are stored lowercase."""

    method: str
    target: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    client_address: tuple[str, int] = ("", 0)

    @property
    def path(self) -> str:
        """Decoded path without query string. Lenient, for display only."""
        return unquote(urlsplit(self.target).path, errors="replace") or "/"

    @property
    def query_string(self) -> str:
        return urlsplit(self.target).query

    @property
    def query_params(self) -> Dict[str, list[str]]:
        return parse_qs(self.query_string, keep_blank_values=True)

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        HTTP/1.1 keeps the connection unless "Connection: close".
        HTTP/1.0 closes unless "Connection: keep-alive".
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses raw request bytes.

    The connection layer has already framed the request (headers up to the
    blank line plus Content-Length body bytes), so parse() gets exactly one
    request.
    """

    VALID_METHODS = {
        "GET", "HEAD", "POST", "PUT", "DELETE",
        "PATCH", "OPTIONS", "TRACE", "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: tuple[str, int] = ("", 0)) -> HTTPRequest:
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        # latin-1 maps every byte to a code point, so decoding cannot fail
        # and percent-escapes in the target stay untouched
        header_section = data[:header_end].decode("latin-1")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, target, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError("Invalid Content-Length header")
        if content_length < 0:
            raise HTTPParseError("Invalid Content-Length header")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            target=target,
            version=version,
            headers=headers,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> tuple[str, str, str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line[:100]!r}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=501)
        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        # Absolute-form targets ("http://host/path") are reduced to the path
        if not target.startswith("/"):
            parts = urlsplit(target)
            if not parts.scheme:
                raise HTTPParseError(f"Invalid request target: {target[:100]!r}")
            target = (parts.path or "/") + (f"?{parts.query}" if parts.query else "")

        return method, target, version

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a lowercase-keyed dict.

        Repeated headers are joined with ", " (RFC 7230 §3.2.2).
        Obsolete line folding is unfolded into the previous header.
        """
        headers: Dict[str, str] = {}
        current_name: Optional[str] = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # lenient: skip malformed header lines

            name = match.group(1).strip().lower()
            value = match.group(2).strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: tuple[str, int] = ("", 0),
    max_size: int = 10 * 1024 * 1024,
) -> HTTPRequest:
    """One-shot helper around RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
