"""
Low-level components: the TCP accept loop, per-connection I/O, the worker
pool, the shared memory cache and the polling file watcher.
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .thread_pool import ThreadPool
from .memory_cache import MemoryCache, CacheEntry, make_etag
from .watcher import FileWatcher, FileEvent

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "ThreadPool",
    "MemoryCache",
    "CacheEntry",
    "make_etag",
    "FileWatcher",
    "FileEvent",
]
