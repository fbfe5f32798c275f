"""
=============================================================================
SOCKET SERVER - The Accept Loop
=============================================================================

    socket() → setsockopt() → bind() → listen() → accept() loop
                                                      │
                                          Connection ─┴─► handler(conn)

accept() runs with a 1 second timeout so the loop notices shutdown()
promptly without needing a wake-up connection.

=============================================================================
SIGNALS
=============================================================================

SIGINT / SIGTERM trigger shutdown(). Python only allows signal.signal() on
the main thread, so when the server runs in a background thread (tests,
embedding) signal handling is skipped and shutdown() must be called
explicitly.
=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Optional, Tuple

from .connection import Connection

logger = logging.getLogger(__name__)


class SocketServer:
    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 3000,
        backlog: int = 128,
        buffer_size: int = 8192,
        timeout: Optional[float] = 30.0,
        keep_alive_timeout: float = 5.0,
        max_request_size: int = 10 * 1024 * 1024,
    ):
        self.host = host
        self.port = port
        self.backlog = backlog
        self.buffer_size = buffer_size
        self.timeout = timeout
        self.keep_alive_timeout = keep_alive_timeout
        self.max_request_size = max_request_size

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._ready = threading.Event()
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """Bound address. After start() the real port is reported even for port 0."""
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.host, self.port)

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._ready.wait(timeout)

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(1.0)
        return sock

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not on main thread, skipping signal handlers")
            return

        def shutdown_handler(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, shutting down...")
            self.shutdown()

        for sig in (signal.SIGINT, signal.SIGTERM):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(
        self,
        connection_handler: Callable[[Connection], None],
        on_ready: Optional[Callable[[], None]] = None,
    ):
        """Bind, listen and run the accept loop until shutdown(). Blocks."""
        self._socket = self._create_socket()
        try:
            self._socket.bind((self.host, self.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.host}:{self.port}: {e}")
            self._socket.close()
            self._socket = None
            raise
        self._socket.listen(self.backlog)

        self._running = True
        self._setup_signals()
        host, port = self.address
        logger.info(f"Listening on {host}:{port}")
        self._ready.set()

        try:
            if on_ready is not None:
                on_ready()
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.buffer_size,
                timeout=self.timeout,
                keep_alive_timeout=self.keep_alive_timeout,
                max_request_size=self.max_request_size,
            )
            connection_handler(conn)

    def shutdown(self):
        self._running = False

    def _cleanup(self):
        self._restore_signals()
        self._ready.clear()
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        logger.info("Socket server stopped")
