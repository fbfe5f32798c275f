"""
=============================================================================
GZIP COMPRESSION
=============================================================================

Compression for the static pipeline. Unlike a response-compressing
middleware, this runs once per cache fill: the gzip bytes are stored next to
the raw bytes, and every later request that accepts gzip is served straight
from memory.

=============================================================================
DETERMINISM
=============================================================================

A gzip member header contains a timestamp. gzip.compress() writes the
current time there by default, so compressing the same file twice gives
different bytes (and different bytes for the same ETag). Passing mtime=0
makes the output a pure function of (input, level).

    compress(data, 6) == compress(data, 6)     always

=============================================================================
FAILURE
=============================================================================

zlib errors and MemoryError are reported as CompressionError. The pipeline
logs a warning and serves the raw bytes, so a failed compression never fails
a request.
=============================================================================
"""

import gzip
import logging
import zlib

from ..errors import CompressionError

logger = logging.getLogger(__name__)

DEFAULT_LEVEL = 6
DEFAULT_THRESHOLD = 1024


def compress(data: bytes, level: int = DEFAULT_LEVEL) -> bytes:
    """
    Gzip-encode `data` at `level` (1 fastest .. 9 smallest).

    Raises:
        CompressionError: invalid level or zlib/memory failure.
    """
    if not 1 <= level <= 9:
        raise CompressionError(f"Invalid gzip level: {level}")
    try:
        return gzip.compress(data, compresslevel=level, mtime=0)
    except (zlib.error, MemoryError, OverflowError) as e:
        raise CompressionError(f"gzip failed on {len(data)} bytes: {e}") from e


def accepts_gzip(accept_encoding: str) -> bool:
    """
    True if an Accept-Encoding header value allows gzip.

        "gzip, deflate, br"   → True
        "br;q=1.0, gzip;q=0"  → False (explicitly refused)
        "*"                   → True
        ""                    → False
    """
    wildcard = False
    for part in accept_encoding.lower().split(","):
        coding, _, params = part.strip().partition(";")
        coding = coding.strip()
        if coding not in ("gzip", "x-gzip", "*"):
            continue
        refused = _q_value(params) == 0
        if coding == "*":
            wildcard = not refused
            continue
        return not refused
    return wildcard


def _q_value(params: str) -> float:
    for param in params.split(";"):
        name, _, value = param.strip().partition("=")
        if name.strip() == "q":
            try:
                return float(value)
            except ValueError:
                return 1.0
    return 1.0


def compression_ratio(original_size: int, compressed_size: int) -> str:
    """Percentage saved, two decimals: 2048 → 512 gives "75.00%"."""
    if original_size <= 0:
        return "0.00%"
    return f"{(1 - compressed_size / original_size) * 100:.2f}%"
