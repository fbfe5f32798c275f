"""
Middleware wrapped around the static handler.

    base.py      Middleware ABC and MiddlewarePipeline
    logging.py   access log (text or JSON)
    security.py  nosniff / frame / XSS headers
    cors.py      cross-origin headers and preflight
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import LoggingMiddleware, RequestLog
from .security import SecurityHeadersMiddleware
from .cors import CORSMiddleware, CORSConfig

__all__ = [
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",
    "LoggingMiddleware",
    "RequestLog",
    "SecurityHeadersMiddleware",
    "CORSMiddleware",
    "CORSConfig",
]
