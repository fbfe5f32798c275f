"""
Security headers added to every response, including errors and 304s.

    X-Content-Type-Options: nosniff    trust our Content-Type, don't sniff
    X-Frame-Options: DENY              no framing (clickjacking)
    X-XSS-Protection: 1; mode=block    legacy browser XSS filter
"""

from typing import Dict, Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

DEFAULT_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}


class SecurityHeadersMiddleware(Middleware):
    def __init__(self, headers: Optional[Dict[str, str]] = None):
        self.headers = dict(DEFAULT_SECURITY_HEADERS if headers is None else headers)

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        response = next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        return response
