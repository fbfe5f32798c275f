"""
=============================================================================
STATIC FILE PIPELINE
=============================================================================

Turns a GET/HEAD request into a file response, with sandboxing, an
in-memory content cache, conditional requests and gzip.

=============================================================================
REQUEST FLOW
=============================================================================

    GET /css/site.css?v=3
    Accept-Encoding: gzip
           │
           ▼
    ┌───────────────────────┐
    │ resolve_request_path  │  strip query, strict percent-decode,
    │                       │  "/" → "/index.html"
    └──────────┬────────────┘
               ▼
    ┌───────────────────────┐
    │ resolve_file          │  join under root, resolve symlinks and "..",
    │                       │  must stay inside root, must be a regular file
    └──────────┬────────────┘        │
               │                     └── anything else → 404
               ▼
    ┌───────────────────────┐
    │ cache lookup          │  hit if cached mtime == current mtime
    └──────────┬────────────┘
          miss │ / stale
               ▼
    ┌───────────────────────┐
    │ read + gzip + store   │  no lock held while reading or compressing
    └──────────┬────────────┘
               ▼
    ┌───────────────────────┐
    │ conditional check     │  If-None-Match / If-Modified-Since → 304
    └──────────┬────────────┘
               ▼
    ┌───────────────────────┐
    │ encoding negotiation  │  gzip form exists and client accepts it?
    └──────────┬────────────┘
               ▼
        200 + headers + body (body dropped for HEAD)

=============================================================================
SANDBOXING
=============================================================================

Checking the URL string for ".." is not enough:

    /..%2f..%2fetc/passwd        decodes to a traversal
    /%2e%2e/%2e%2e/etc/passwd    so does this
    /link-to-etc/passwd          a symlink inside root pointing out

So the check runs on the RESOLVED filesystem path:

    (root / requested).resolve(strict=True).is_relative_to(root)

Every escape looks exactly like a missing file to the client: 404, no
detail. The attempt is logged at WARNING.

=============================================================================
INTERVIEW QUESTIONS
=============================================================================

Q: "Why 404 and not 403 for a traversal attempt?"
A: "403 confirms the path exists outside the root. 404 tells an attacker
   nothing."

Q: "Two requests miss on the same file at once. What happens?"
A: "Both read and compress it, both store it, the last store wins. The
   entries are identical, so that's wasted work, not a bug. Holding the
   cache lock during disk I/O would serialize every request behind the
   slowest read."

Q: "Why compare mtime on every hit?"
A: "The watcher is optional and asynchronous. The stat() on every request
   is the guarantee that a changed file is never served from a stale
   entry."
=============================================================================
"""

import logging
import stat
import threading
import time
from dataclasses import dataclass, field
from http import HTTPStatus
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import unquote_to_bytes

from ..core.memory_cache import CacheEntry, MemoryCache
from ..errors import CompressionError, MethodNotAllowedError, NotFoundError
from ..http.mime_types import ContentClass, classify, get_content_type_for
from ..http.request import HTTPRequest
from ..http.response import (
    HTTPResponse, ResponseBuilder,
    internal_error, method_not_allowed, no_content, not_found, not_modified,
)
from .compression import accepts_gzip, compress, compression_ratio
from .conditional import Validators, is_not_modified

logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET", "HEAD", "OPTIONS")


# =============================================================================
# FILE INFO
# =============================================================================

@dataclass(frozen=True)
class FileInfo:
    """Per-request view of a file on disk. Recomputed on every request."""

    path: Path
    size: int
    mtime_ns: int
    content: ContentClass

    @property
    def key(self) -> str:
        """Cache key: the absolute, resolved path."""
        return str(self.path)

    @property
    def mime_type(self) -> str:
        return self.content.mime_type


# =============================================================================
# PATH RESOLUTION
# =============================================================================

def resolve_request_path(raw_target: str, index_name: str = "index.html") -> str:
    """
    Turn a raw request-target into a decoded path starting with "/".

        "/css/a%20b.css?v=1"  → "/css/a b.css"
        "/"                   → "/index.html"
        "/caf%C3%A9.txt"      → "/café.txt"
        "/%FF.txt"            → NotFoundError (not UTF-8)

    Raises:
        NotFoundError: the path cannot be decoded or contains NUL.
    """
    path = raw_target.split("?", 1)[0].split("#", 1)[0]

    # The parser decodes the request line as latin-1, so encoding back to
    # latin-1 recovers the original bytes
    try:
        raw_bytes = path.encode("latin-1")
    except UnicodeEncodeError:
        raw_bytes = path.encode("utf-8")

    try:
        decoded = unquote_to_bytes(raw_bytes).decode("utf-8")
    except UnicodeDecodeError:
        raise NotFoundError(f"Undecodable request path: {raw_target!r}")

    if "\x00" in decoded:
        raise NotFoundError("NUL byte in request path")

    if not decoded.startswith("/"):
        decoded = "/" + decoded
    if decoded == "/":
        decoded = "/" + index_name
    return decoded


def resolve_file(root_dir: Path | str, sanitized_path: str) -> FileInfo:
    """
    Locate a sanitized request path under `root_dir`.

    The containment check runs after the filesystem has resolved symlinks
    and "..", so nothing that decodes or links its way out of root passes.

    Raises:
        NotFoundError: missing, not a regular file, or outside root.
    """
    root = Path(root_dir).resolve()
    candidate = root.joinpath(sanitized_path.lstrip("/"))

    try:
        resolved = candidate.resolve(strict=True)
    except (OSError, RuntimeError, ValueError):
        raise NotFoundError(f"No such file: {sanitized_path}")

    if not resolved.is_relative_to(root):
        logger.warning(f"Blocked path outside root: {sanitized_path!r} -> {resolved}")
        raise NotFoundError(f"Outside root: {sanitized_path}")

    try:
        st = resolved.stat()
    except OSError:
        raise NotFoundError(f"Cannot stat: {sanitized_path}")

    if not stat.S_ISREG(st.st_mode):
        raise NotFoundError(f"Not a regular file: {sanitized_path}")

    return FileInfo(
        path=resolved,
        size=st.st_size,
        mtime_ns=st.st_mtime_ns,
        content=classify(candidate),
    )


# =============================================================================
# STATISTICS
# =============================================================================

@dataclass
class ServeStats:
    """Counters for what the pipeline has done. Updated under a lock."""

    requests: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    not_modified: int = 0
    bytes_transferred: int = 0
    bytes_saved: int = 0
    errors: int = 0
    started_at: float = field(default_factory=time.time)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def incr(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def snapshot(self) -> Dict[str, float]:
        with self._lock:
            return {
                "requests": self.requests,
                "cache_hits": self.cache_hits,
                "cache_misses": self.cache_misses,
                "not_modified": self.not_modified,
                "bytes_transferred": self.bytes_transferred,
                "bytes_saved": self.bytes_saved,
                "errors": self.errors,
                "uptime_seconds": round(time.time() - self.started_at, 3),
            }


# =============================================================================
# STATIC FILE HANDLER
# =============================================================================

class StaticFileHandler:
    """
    Serves files from `root_dir` through a shared MemoryCache.

    Example:
        handler = StaticFileHandler("./public", gzip_level=9)
        response = handler.serve(request)

    The cache is injected so the server (and its file watcher) can share it,
    and so tests can inspect it.
    """

    def __init__(
        self,
        root_dir: Path | str,
        cache: Optional[MemoryCache] = None,
        index_file: str = "index.html",
        gzip_enabled: bool = True,
        gzip_level: int = 6,
        gzip_threshold: int = 1024,
        cache_enabled: bool = True,
        cache_max_age: int = 3600,
    ):
        self.root_dir = Path(root_dir).resolve()
        if not self.root_dir.is_dir():
            raise ValueError(f"Static root directory does not exist: {root_dir}")

        self.cache = cache if cache is not None else MemoryCache()
        self.index_file = index_file
        self.gzip_enabled = gzip_enabled
        self.gzip_level = gzip_level
        self.gzip_threshold = gzip_threshold
        self.cache_enabled = cache_enabled
        self.cache_max_age = cache_max_age
        self.stats = ServeStats()

    # ─────────────────────────────────────────────────────────────────────
    # ENTRY POINT
    # ─────────────────────────────────────────────────────────────────────

    def serve(self, request: HTTPRequest) -> HTTPResponse:
        """Serve one request. Never raises: every failure becomes a response."""
        self.stats.incr("requests")

        if request.method == "OPTIONS":
            return no_content({"Allow": ", ".join(ALLOWED_METHODS)})

        try:
            if request.method not in ("GET", "HEAD"):
                raise MethodNotAllowedError(request.method, ALLOWED_METHODS)
            return self._serve_file(request)
        except NotFoundError as e:
            logger.debug(f"404 {request.path}: {e}")
            return not_found()
        except MethodNotAllowedError as e:
            logger.debug(f"405 {request.path}: {e}")
            return method_not_allowed(e.allowed)
        except OSError as e:
            self.stats.incr("errors")
            logger.error(f"Filesystem error serving {request.path}: {e}")
            return internal_error()
        except Exception as e:
            self.stats.incr("errors")
            logger.exception(f"Unexpected error serving {request.path}: {e}")
            return internal_error()

    __call__ = serve

    def _serve_file(self, request: HTTPRequest) -> HTTPResponse:
        sanitized = resolve_request_path(request.target, self.index_file)
        info = resolve_file(self.root_dir, sanitized)

        entry = self._lookup(info)
        if entry is None:
            entry = self._fill(info)

        validators = Validators(
            etag=entry.etag,
            last_modified=entry.last_modified,
            mtime=entry.mtime,
        )
        if is_not_modified(
            validators,
            if_none_match=request.get_header("if-none-match") or None,
            if_modified_since=request.get_header("if-modified-since") or None,
        ):
            self.stats.incr("not_modified")
            return not_modified(self._validator_headers(entry))

        return self._build_response(request, entry)

    # ─────────────────────────────────────────────────────────────────────
    # CACHE LOOKUP AND FILL
    # ─────────────────────────────────────────────────────────────────────

    def _lookup(self, info: FileInfo) -> Optional[CacheEntry]:
        """Return a fresh cached entry, or None on miss / stale / disabled."""
        if not self.cache_enabled:
            self.stats.incr("cache_misses")
            return None

        entry = self.cache.get(info.key, mtime_ns=info.mtime_ns)
        if entry is None:
            self.stats.incr("cache_misses")
            return None

        self.stats.incr("cache_hits")
        return entry

    def _fill(self, info: FileInfo) -> CacheEntry:
        """
        Read the file, compress if worthwhile, store in the cache.

        Runs without any lock. If the entry does not fit in the cache it is
        still returned and served, just not retained.
        """
        raw = info.path.read_bytes()

        compressed: Optional[bytes] = None
        if self.gzip_enabled and info.content.should_compress(len(raw), self.gzip_threshold):
            try:
                gz = compress(raw, self.gzip_level)
            except CompressionError as e:
                logger.warning(f"Compression failed for {info.key}, serving uncompressed: {e}")
            else:
                # gzip adds ~20 bytes of framing; keep it only if it wins
                if len(gz) < len(raw):
                    compressed = gz

        entry = CacheEntry.create(
            raw_content=raw,
            mime_type=info.mime_type,
            mtime_ns=info.mtime_ns,
            compressed_content=compressed,
        )
        if self.cache_enabled:
            self.cache.store(info.key, entry)
        return entry

    # ─────────────────────────────────────────────────────────────────────
    # RESPONSE
    # ─────────────────────────────────────────────────────────────────────

    def _validator_headers(self, entry: CacheEntry) -> Dict[str, str]:
        headers = {
            "ETag": entry.etag,
            "Last-Modified": entry.last_modified,
            "Cache-Control": f"public, max-age={self.cache_max_age}",
        }
        if entry.is_compressed:
            headers["Vary"] = "Accept-Encoding"
        return headers

    def _build_response(self, request: HTTPRequest, entry: CacheEntry) -> HTTPResponse:
        use_gzip = entry.is_compressed and accepts_gzip(request.get_header("accept-encoding"))
        body = entry.compressed_content if use_gzip else entry.raw_content

        builder = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type(get_content_type_for(entry.mime_type))
            .headers(self._validator_headers(entry))
            .header("Content-Length", str(len(body))))

        if use_gzip:
            builder.header("Content-Encoding", "gzip")
            builder.header("X-Compression-Ratio", compression_ratio(len(entry.raw_content), len(body)))
        else:
            builder.header("X-Compression", "none")

        if request.method == "HEAD":
            return builder.build()

        self.stats.incr("bytes_transferred", len(body))
        if use_gzip:
            self.stats.incr("bytes_saved", len(entry.raw_content) - len(body))
        return builder.body(body).build()

    # ─────────────────────────────────────────────────────────────────────
    # INVALIDATION
    # ─────────────────────────────────────────────────────────────────────

    def on_file_changed(self, path: Path | str, is_directory: bool = False) -> None:
        """
        Change notification from a file watcher.

        A file drops its own entry. A directory-level change drops everything,
        since any number of cached files may have lived under it.
        """
        if is_directory:
            logger.info(f"Directory changed, clearing cache: {path}")
            self.cache.clear()
            return

        key = str(Path(path).resolve())
        if self.cache.invalidate(key):
            logger.info(f"File changed, invalidated: {key}")

    def clear_cache(self) -> None:
        self.cache.clear()

    def get_stats(self) -> Dict[str, object]:
        stats: Dict[str, object] = dict(self.stats.snapshot())
        stats["cache"] = self.cache.stats()
        return stats


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# resolve_request_path  raw target → decoded "/path" (strict, fails closed)
# resolve_file          "/path" → FileInfo, sandboxed after resolution
# StaticFileHandler     cache lookup/fill, 304, gzip negotiation, HEAD
#
# Status mapping:
#   NotFoundError → 404   OSError → 500   anything else → 500 (logged)
#   non-GET/HEAD → 405 with Allow: GET, HEAD, OPTIONS
# =============================================================================
