"""
=============================================================================
GZIP STATIC SERVER
=============================================================================

Wires the pieces together:

    ┌──────────────────────────────────────────────────────────────────────┐
    │                         GzipStaticServer                             │
    │                                                                      │
    │  SocketServer ──accept──► ThreadPool ──► _process_connection         │
    │                                              │                       │
    │                                  Connection.read_request()           │
    │                                  RequestParser.parse()               │
    │                                              │                       │
    │                          ┌───────────────────▼──────────────────┐    │
    │                          │ LoggingMiddleware                    │    │
    │                          │  SecurityHeadersMiddleware           │    │
    │                          │   CORSMiddleware (optional)          │    │
    │                          │    _dispatch                         │    │
    │                          │     /api/* → UploadHandler (opt.)    │    │
    │                          │     else   → StaticFileHandler ◄─────┼──┐ │
    │                          └──────────────────────────────────────┘  │ │
    │                                                       MemoryCache ─┤ │
    │  FileWatcher (optional) ── on_file_changed ────────────────────────┘ │
    └──────────────────────────────────────────────────────────────────────┘

=============================================================================
LIFECYCLE
=============================================================================

    server = GzipStaticServer(config)
    server.run()            # blocks; Ctrl+C / SIGTERM → graceful stop

    # or, from another thread (tests, embedding):
    thread = threading.Thread(target=server.run); thread.start()
    server.wait_until_ready(5)
    ...
    server.shutdown(); thread.join()
=============================================================================
"""

import logging
import webbrowser
from http import HTTPStatus
from typing import Any, Callable, Dict, Optional

from .config import ServerConfig
from .core import Connection, ConnectionState, FileEvent, FileWatcher, MemoryCache, SocketServer, ThreadPool
from .handlers import StaticFileHandler, UploadHandler
from .http import HTTPParseError, HTTPRequest, HTTPResponse, RequestParser, error_response
from .middleware import (
    CORSConfig, CORSMiddleware, LoggingMiddleware,
    MiddlewarePipeline, SecurityHeadersMiddleware,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
UPLOAD_FRAMING_SLACK = 64 * 1024


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    logging.getLogger("gzipstatic").setLevel(level)


class GzipStaticServer:
    def __init__(self, config: Optional[ServerConfig] = None, configure_logging: bool = True):
        self.config = config or ServerConfig()
        self.config.validate()
        self.configure_logging = configure_logging

        self.cache = MemoryCache(max_size=self.config.cache_max_size)
        self.static_handler = StaticFileHandler(
            root_dir=self.config.root_dir,
            cache=self.cache,
            index_file=self.config.index_file,
            gzip_enabled=self.config.gzip,
            gzip_level=self.config.gzip_level,
            gzip_threshold=self.config.gzip_threshold,
            cache_enabled=self.config.cache,
            cache_max_age=self.config.cache_max_age,
        )

        self.upload_handler: Optional[UploadHandler] = None
        max_request_size = self.config.max_request_size
        if self.config.upload_dir is not None:
            self.upload_handler = UploadHandler(
                upload_dir=self.config.upload_dir,
                gzip_level=self.config.gzip_level,
                max_upload_size=self.config.upload_max_size,
            )
            # Room for the multipart framing around a maximum-size file
            max_request_size = max(max_request_size, self.config.upload_max_size + UPLOAD_FRAMING_SLACK)

        self._socket_server = SocketServer(
            host=self.config.host,
            port=self.config.port,
            backlog=self.config.backlog,
            buffer_size=self.config.buffer_size,
            timeout=self.config.timeout,
            keep_alive_timeout=self.config.keep_alive_timeout,
            max_request_size=max_request_size,
        )
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
        )
        self._parser = RequestParser(max_request_size=max_request_size)

        self._middleware = MiddlewarePipeline()
        self._middleware.add(LoggingMiddleware(log_format=self.config.log_format))
        self._middleware.add(SecurityHeadersMiddleware())
        if self.config.cors:
            cors = CORSConfig()
            if self.upload_handler is not None:
                cors.allow_methods.insert(2, "POST")
                cors.allow_headers.append("Content-Type")
            self._middleware.add(CORSMiddleware(cors))

        self._handler: Optional[Callable[[HTTPRequest], HTTPResponse]] = None
        self._watcher: Optional[FileWatcher] = None
        self._running = False

    # ─────────────────────────────────────────────────────────────────────
    # PUBLIC API
    # ─────────────────────────────────────────────────────────────────────

    @property
    def url(self) -> str:
        host, port = self._socket_server.address
        if host in ("0.0.0.0", "::"):
            host = "localhost"
        return f"http://{host}:{port}"

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def get_stats(self) -> Dict[str, Any]:
        stats = self.static_handler.get_stats()
        stats["workers"] = self._thread_pool.stats
        return stats

    def clear_cache(self) -> None:
        self.static_handler.clear_cache()
        logger.info("Cache cleared")

    def run(self):
        """Start serving. Blocks until shutdown."""
        if self.configure_logging:
            setup_logging(self.config.log_level_value)

        self._running = True
        self._handler = self._middleware.wrap(self._dispatch)
        self._thread_pool.start()

        if self.config.watch:
            self._watcher = FileWatcher(
                self.static_handler.root_dir,
                self._on_file_event,
                interval=self.config.watch_interval,
            )
            self._watcher.start()

        logger.info(
            f"Serving {self.static_handler.root_dir} on "
            f"{self.config.host}:{self.config.port} "
            f"(gzip={'on' if self.config.gzip else 'off'}, "
            f"cache={'on' if self.config.cache else 'off'}, "
            f"watch={'on' if self.config.watch else 'off'}, "
            f"uploads={self.upload_handler.upload_dir if self.upload_handler else 'off'})"
        )

        try:
            self._socket_server.start(self._handle_connection, on_ready=self._on_ready)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Ask a running server to stop. Safe to call from any thread."""
        self._socket_server.shutdown()

    # ─────────────────────────────────────────────────────────────────────
    # INTERNALS
    # ─────────────────────────────────────────────────────────────────────

    def _on_ready(self):
        if self.config.open_browser:
            logger.info(f"Opening {self.url}")
            webbrowser.open(self.url)

    def _dispatch(self, request: HTTPRequest) -> HTTPResponse:
        """/api/ goes to the upload API when it is enabled, everything else is static."""
        if self.upload_handler is not None and self.upload_handler.handles(request):
            return self.upload_handler.handle(request)
        return self.static_handler.serve(request)

    def _on_file_event(self, event: FileEvent):
        self.static_handler.on_file_changed(event.path, is_directory=event.is_directory)

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None
        self._thread_pool.shutdown(wait=True, timeout=30.0)

        stats = self.static_handler.get_stats()
        logger.info(
            f"Served {stats['requests']} requests, "
            f"{stats['bytes_transferred']} bytes sent, "
            f"{stats['bytes_saved']} bytes saved by gzip, "
            f"{stats['cache_hits']} cache hits / {stats['cache_misses']} misses"
        )
        logger.info("Server stopped")

    def _handle_connection(self, conn: Connection):
        submitted = self._thread_pool.submit(
            self._process_connection,
            args=(conn,),
            timeout=self.config.timeout,
            on_drop=lambda: self._reject(conn, "waited too long in the queue"),
        )
        if not submitted:
            self._reject(conn, "thread pool full")

    def _reject(self, conn: Connection, reason: str):
        """503 and close. The connection never reaches a worker's keep-alive loop."""
        logger.warning(f"[{conn.id}] Rejecting connection: {reason}")
        self._send_error(conn, HTTPStatus.SERVICE_UNAVAILABLE)
        conn.close()

    def _process_connection(self, conn: Connection):
        """Keep-alive loop: read, parse, handle, respond, repeat."""
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    logger.debug(f"[{conn.id}] Bad request: {e}")
                    self._send_error(conn, HTTPStatus(e.status_code))
                    break
                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
                    break

                conn.state = ConnectionState.PROCESSING
                try:
                    response = self._handler(request)
                except Exception as e:
                    logger.exception(f"[{conn.id}] Handler error: {e}")
                    response = error_response(HTTPStatus.INTERNAL_SERVER_ERROR)

                # HEAD gets the headers GET would get, never a body
                if request.method == "HEAD" and response.body:
                    response.headers.setdefault("Content-Length", str(len(response.body)))
                    response.body = b""

                keep_alive = request.is_keep_alive and self.config.keep_alive and self._running
                if keep_alive:
                    response.headers.setdefault("Connection", "keep-alive")
                    response.headers.setdefault(
                        "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                    )
                else:
                    response.headers["Connection"] = "close"

                if not conn.send_response(response.to_bytes(self.config.server_name)):
                    break
                if not keep_alive:
                    break
                conn.set_keep_alive()

    def _send_error(self, conn: Connection, status: HTTPStatus):
        response = error_response(status)
        response.headers["Connection"] = "close"
        conn.send_response(response.to_bytes(self.config.server_name))

