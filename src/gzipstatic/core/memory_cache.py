"""
=============================================================================
MEMORY CACHE - Byte-Bounded LRU For File Contents
=============================================================================

Keeps the bytes of recently served files (and their gzip form) in memory so
repeated requests skip the disk read and the compression step.

=============================================================================
STRUCTURE
=============================================================================

    ┌──────────────────────────────────────────────────────────────────────┐
    │  MemoryCache                                                         │
    │                                                                      │
    │   _lock ──────── one threading.Lock guards everything below          │
    │                                                                      │
    │   _entries: OrderedDict[path → CacheEntry]                           │
    │                                                                      │
    │     oldest ◄───────────────────────────────────────► newest          │
    │     /srv/a.css   /srv/app.js   /srv/logo.svg   /srv/index.html       │
    │        ▲                                             ▲               │
    │        └── evicted first                              └── last touch │
    │                                                                      │
    │   _current_size = Σ len(raw) + len(compressed)   (always exact)      │
    │   _max_size     = byte budget                                       │
    └──────────────────────────────────────────────────────────────────────┘

get() and put() both count as a "touch" and move the key to the newest end
(OrderedDict.move_to_end). Eviction pops from the oldest end
(OrderedDict.popitem(last=False)), one entry at a time, until the pending
entry fits.

=============================================================================
INVARIANTS
=============================================================================

    1. _current_size == sum of entry sizes, after every operation
    2. _current_size <= _max_size, after every operation
    3. An entry bigger than _max_size on its own is never admitted
    4. The cache never touches the filesystem. Modification times and
       validators come in as arguments.

=============================================================================
LOCKING
=============================================================================

The lock is held only for dictionary work. Reading files and running gzip
happen in the caller BEFORE put(), so a slow disk never blocks a request for
a different file. Two concurrent misses for one path may both fill it; the
last put() wins, which is harmless because the entries are identical.

=============================================================================
INTERVIEW QUESTIONS
=============================================================================

Q: "Why OrderedDict instead of a hand-written doubly linked list?"
A: "OrderedDict IS a dict plus a doubly linked list, implemented in C.
   move_to_end and popitem(last=False) are both O(1)."

Q: "Why a byte budget instead of an entry count?"
A: "Static files range from 200 bytes to 20 MB. Counting entries says
   nothing about memory use."

=============================================================================
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from ..http.response import format_http_date

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 100 * 1024 * 1024  # 100 MiB


# =============================================================================
# CACHE ENTRY
# =============================================================================

def make_etag(size: int, mtime_ns: int) -> str:
    """Strong validator in the form "<size>-<mtimeMillis>"."""
    return f'"{size}-{mtime_ns // 1_000_000}"'


def make_last_modified(mtime_ns: int) -> str:
    return format_http_date(datetime.fromtimestamp(mtime_ns / 1e9, tz=timezone.utc))


@dataclass(frozen=True)
class CacheEntry:
    """
    One file's bytes plus the validators needed to answer conditional
    requests. Frozen: a request can hold on to an entry while another thread
    replaces it in the cache.
    """

    raw_content: bytes
    mime_type: str
    etag: str
    last_modified: str
    mtime_ns: int
    compressed_content: Optional[bytes] = None
    created_at: float = field(default_factory=time.time, compare=False)

    @classmethod
    def create(
        cls,
        raw_content: bytes,
        mime_type: str,
        mtime_ns: int,
        compressed_content: Optional[bytes] = None,
    ) -> "CacheEntry":
        """Build an entry, deriving ETag and Last-Modified from size and mtime."""
        return cls(
            raw_content=raw_content,
            mime_type=mime_type,
            etag=make_etag(len(raw_content), mtime_ns),
            last_modified=make_last_modified(mtime_ns),
            mtime_ns=mtime_ns,
            compressed_content=compressed_content,
        )

    @property
    def size(self) -> int:
        """Bytes this entry charges against the cache budget."""
        compressed = len(self.compressed_content) if self.compressed_content is not None else 0
        return len(self.raw_content) + compressed

    @property
    def is_compressed(self) -> bool:
        return self.compressed_content is not None

    @property
    def mtime(self) -> float:
        """Modification time as epoch seconds."""
        return self.mtime_ns / 1e9

    def is_stale(self, current_mtime_ns: int) -> bool:
        return self.mtime_ns != current_mtime_ns


# =============================================================================
# MEMORY CACHE
# =============================================================================

class MemoryCache:
    """
    Thread-safe, byte-bounded LRU cache keyed by absolute file path.

    Example:
        cache = MemoryCache(max_size=50 * 1024 * 1024)
        cache.put("/srv/index.html", raw, "text/html", gz, mtime_ns=st.st_mtime_ns)
        entry = cache.get("/srv/index.html")
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE):
        if max_size <= 0:
            raise ValueError(f"max_size must be > 0, got {max_size}")
        self._max_size = max_size
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._current_size = 0
        self._lock = threading.Lock()

        # Counters for diagnostics
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    # ─────────────────────────────────────────────────────────────────────
    # READ
    # ─────────────────────────────────────────────────────────────────────

    def get(self, path: str, mtime_ns: Optional[int] = None) -> Optional[CacheEntry]:
        """
        Return the entry for `path`, marking it most recently used.

        With `mtime_ns`, an entry filled from a different mtime counts as a
        miss and is returned as None without being promoted.
        """
        with self._lock:
            entry = self._entries.get(path)
            if entry is None or (mtime_ns is not None and entry.is_stale(mtime_ns)):
                self._misses += 1
                return None
            self._entries.move_to_end(path)
            self._hits += 1
            return entry

    def is_stale(self, path: str, current_mtime_ns: int) -> bool:
        """True when there is no entry, or it was filled from a different mtime."""
        with self._lock:
            entry = self._entries.get(path)
            return entry is None or entry.is_stale(current_mtime_ns)

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def current_size(self) -> int:
        with self._lock:
            return self._current_size

    @property
    def max_size(self) -> int:
        return self._max_size

    # ─────────────────────────────────────────────────────────────────────
    # WRITE
    # ─────────────────────────────────────────────────────────────────────

    def put(
        self,
        path: str,
        raw_content: bytes,
        mime_type: str,
        compressed_content: Optional[bytes] = None,
        mtime_ns: int = 0,
    ) -> Optional[CacheEntry]:
        """
        Build an entry and store it.

        Returns the stored entry, or None if it was too big to admit.
        """
        entry = CacheEntry.create(raw_content, mime_type, mtime_ns, compressed_content)
        return entry if self.store(path, entry) else None

    def store(self, path: str, entry: CacheEntry) -> bool:
        """
        Insert or overwrite `path` with a prebuilt entry.

        Algorithm:
            1. Oversized entry → skip, cache untouched
            2. Existing entry for path → drop it, subtract its size
            3. Evict oldest entries until the new one fits
            4. Insert as newest, add its size
        """
        new_size = entry.size
        if new_size > self._max_size:
            logger.debug(
                f"Not caching {path}: {new_size} bytes exceeds limit {self._max_size}"
            )
            return False

        with self._lock:
            old = self._entries.pop(path, None)
            if old is not None:
                self._current_size -= old.size

            while self._entries and self._current_size + new_size > self._max_size:
                evicted_path, evicted = self._entries.popitem(last=False)
                self._current_size -= evicted.size
                self._evictions += 1
                logger.debug(f"Evicted {evicted_path} ({evicted.size} bytes)")

            self._entries[path] = entry
            self._current_size += new_size

        logger.debug(f"Cached {path} ({new_size} bytes)")
        return True

    def invalidate(self, path: str) -> bool:
        """Remove `path` if present. Returns True if something was removed."""
        with self._lock:
            entry = self._entries.pop(path, None)
            if entry is None:
                return False
            self._current_size -= entry.size
        logger.debug(f"Invalidated {path}")
        return True

    def clear(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._current_size = 0
        logger.debug(f"Cache cleared ({count} entries)")

    # ─────────────────────────────────────────────────────────────────────
    # DIAGNOSTICS
    # ─────────────────────────────────────────────────────────────────────

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "byte_size": self._current_size,
                "entry_count": len(self._entries),
                "max_size": self._max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def keys(self) -> list[str]:
        """Cached paths, least recently used first."""
        with self._lock:
            return list(self._entries.keys())


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# MemoryCache is the only shared mutable state in the request path:
#
# - OrderedDict gives O(1) LRU touch and eviction
# - A single lock makes size accounting and ordering atomic
# - Entries are frozen, so readers never see a half-updated entry
# - The cache is pure data: validators are computed from arguments,
#   never from os.stat(), which keeps it testable without a filesystem
# =============================================================================
