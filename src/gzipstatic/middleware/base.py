"""
=============================================================================
MIDDLEWARE PIPELINE
=============================================================================

Chain of Responsibility: every middleware gets the request and a `next`
callable, and can act before, after, or instead of the rest of the chain.

    pipeline.add(LoggingMiddleware())
    pipeline.add(SecurityHeadersMiddleware())
    pipeline.add(CORSMiddleware())
    handler = pipeline.wrap(static_handler.serve)

    request ─► Logging ─► Security ─► CORS ─► StaticFileHandler.serve
    response ◄─────────◄───────────◄───────◄──────────┘

The first middleware added is the outermost.
=============================================================================
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Iterator, List

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

logger = logging.getLogger(__name__)

NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        """Process the request; call next(request) to continue the chain."""

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """Compose all middleware around `handler`, outermost first."""
        current = handler
        for middleware in reversed(self._middleware):
            current = self._bind(middleware, current)
        return current

    @staticmethod
    def _bind(middleware: Middleware, next_handler: NextHandler) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self._middleware)
