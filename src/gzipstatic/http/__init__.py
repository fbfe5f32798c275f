"""
HTTP protocol layer: request parsing, response building and the
content-type / compressibility table.
"""

from http import HTTPStatus

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    format_http_date,
    error_response,
    no_content,          # 204 No Content
    not_modified,        # 304 Not Modified
    bad_request,         # 400 Bad Request
    not_found,           # 404 Not Found
    method_not_allowed,  # 405 Method Not Allowed
    internal_error,      # 500 Internal Server Error
)
from .mime_types import (
    Compressibility,
    ContentClass,
    classify,
    get_mime_type,
    get_content_type,
)

__all__ = [
    "HTTPStatus",
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",
    "HTTPResponse",
    "ResponseBuilder",
    "format_http_date",
    "error_response",
    "no_content",
    "not_modified",
    "bad_request",
    "not_found",
    "method_not_allowed",
    "internal_error",
    "Compressibility",
    "ContentClass",
    "classify",
    "get_mime_type",
    "get_content_type",
]
