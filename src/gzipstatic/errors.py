"""
=============================================================================
ERROR TYPES
=============================================================================

Every failure the static pipeline can produce is an exception that knows
which HTTP status it maps to, the same way HTTPParseError carries a status
for malformed requests:

    StaticServerError (500)
    ├── NotFoundError (404)          missing file, non-regular file,
    │                                 sandbox escape, undecodable path
    ├── BadRequestError (400)        malformed upload body
    ├── MethodNotAllowedError (405)  anything other than GET/HEAD/OPTIONS
    ├── CompressionError             never reaches the client, the
    │                                 pipeline falls back to raw bytes
    └── ConfigError                  bad configuration, CLI exits 1

The message is for the log. Clients see the generic status phrase, except
for upload 400s, which say what was wrong with the body they sent.
=============================================================================
"""

from typing import Iterable, Tuple


class StaticServerError(Exception):
    """Base class for all gzipstatic errors."""

    status_code: int = 500

    def __init__(self, message: str = "", status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(StaticServerError):
    status_code = 404


class MethodNotAllowedError(StaticServerError):
    status_code = 405

    def __init__(self, method: str, allowed: Iterable[str]):
        super().__init__(f"Method {method} not allowed")
        self.method = method
        self.allowed: Tuple[str, ...] = tuple(allowed)


class CompressionError(StaticServerError):
    """Raised by the compressor. Callers serve the uncompressed bytes instead."""


class ConfigError(StaticServerError):
    """Invalid or unreadable configuration."""


class BadRequestError(StaticServerError):
    """A request body the upload API cannot use."""

    status_code = 400
