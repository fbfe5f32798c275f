"""
=============================================================================
CONNECTION
=============================================================================

Wraps one accepted client socket: frames requests out of the byte stream,
writes responses, and closes cleanly.

=============================================================================
FRAMING
=============================================================================

TCP is a byte stream. recv() may return half a request, or one and a half
requests on a keep-alive connection. The connection keeps a buffer:

    _buffer: b"GET /a.css HTTP/1.1\r\n...\r\n\r\nGET /b.js HTT"
              └──────── request 1 ─────────────┘└─ start of 2 ─┘

read_request() returns exactly one request (headers through the blank line,
plus Content-Length body bytes) and leaves the rest buffered.

=============================================================================
TIMEOUTS
=============================================================================

    first request        → `timeout`             slow client → 408
    later (keep-alive)   → `keep_alive_timeout`  idle client → quiet close
=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..http.request import HTTPParseError

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSED = "closed"


@dataclass
class Connection:
    socket: socket.socket
    address: tuple[str, int]
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 10 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete request.

        Returns:
            The request bytes, or None if the client closed the connection
            (or went idle on keep-alive).

        Raises:
            TimeoutError: the first request did not arrive in time.
            HTTPParseError: the request exceeds max_request_size (413).
        """
        self.state = ConnectionState.READING
        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                if not self._fill():
                    return None

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            while len(self._buffer) - body_start < content_length:
                if not self._fill():
                    break  # client closed mid-body; parser reports it

            request_end = body_start + content_length
            data, self._buffer = self._buffer[:request_end], self._buffer[request_end:]
            self.requests_handled += 1
            return data

        except socket.timeout:
            if self.requests_handled > 0:
                logger.debug(f"[{self.id}] Keep-alive idle timeout")
                return None
            raise TimeoutError("Request read timeout")
        finally:
            self.socket.settimeout(self.timeout)

    def _fill(self) -> bool:
        try:
            chunk = self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return False
        if not chunk:
            return False
        self._buffer += chunk
        if len(self._buffer) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(self._buffer)} bytes", status_code=413)
        return True

    @staticmethod
    def _parse_content_length(headers: bytes) -> int:
        for line in headers.split(b"\r\n")[1:]:
            name, _, value = line.partition(b":")
            if name.strip().lower() == b"content-length":
                try:
                    return max(int(value.strip()), 0)
                except ValueError:
                    return 0
        return 0

    def send_response(self, data: bytes) -> bool:
        """sendall() the response. Returns False if the client went away."""
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return False

    def set_keep_alive(self):
        self.state = ConnectionState.KEEP_ALIVE

    def close(self):
        """Half-close, drain briefly, close. Draining avoids a TCP RST eating the response."""
        if self.state is ConnectionState.CLOSED:
            return
        try:
            self.socket.shutdown(socket.SHUT_WR)
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass  # peer already gone
        finally:
            self.socket.close()
            self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
