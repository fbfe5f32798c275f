"""
=============================================================================
CONTENT-TYPE RESOLVER
=============================================================================

Maps a file path to two things the static pipeline needs:

    1. The MIME type to send in Content-Type
    2. A compressibility class that decides whether gzip is worth trying

=============================================================================
COMPRESSIBILITY CLASSES
=============================================================================

    ┌───────────────┬──────────────────────────────────────────────────────┐
    │ Class         │ Meaning                                              │
    ├───────────────┼──────────────────────────────────────────────────────┤
    │ COMPRESSIBLE  │ Text-like content. Gzip once size > threshold.       │
    │ NEVER         │ Already compressed (JPEG, MP4, ZIP...). Never gzip.  │
    │ NEUTRAL       │ Unknown / binary. Served as-is.                      │
    └───────────────┴──────────────────────────────────────────────────────┘

=============================================================================
RULE PRECEDENCE
=============================================================================

The obvious implementation scans prefixes: "image/ → never compress".
That wrongly catches SVG, which is XML text and shrinks 60-80% with gzip:

    image/svg+xml
    ▲
    └── matches "image/" prefix → NEVER   (wrong!)

So exact-type rules are consulted first, prefix rules second:

    1. exact compressible type   (image/svg+xml, application/json, ...)
    2. exact non-compressible    (application/zip, application/pdf, ...)
    3. non-compressible prefix   (image/, video/, audio/)
    4. compressible prefix       (text/)
    5. otherwise NEUTRAL

The most specific applicable rule always wins.
=============================================================================
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


# =============================================================================
# EXTENSION → MIME TYPE TABLE
# =============================================================================
# Keys are lowercase extensions including the dot. Unknown extensions fall
# back to application/octet-stream.

MIME_TYPES = {
    # Documents
    ".html": "text/html",
    ".htm": "text/html",
    ".xhtml": "application/xhtml+xml",
    ".css": "text/css",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".csv": "text/csv",
    ".xml": "application/xml",

    # Scripts and data
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".cjs": "application/javascript",
    ".json": "application/json",
    ".map": "application/json",
    ".webmanifest": "application/manifest+json",
    ".wasm": "application/wasm",
    ".ts": "text/plain",
    ".yaml": "text/yaml",
    ".yml": "text/yaml",

    # Images
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".bmp": "image/bmp",

    # Fonts (woff/woff2 are already compressed, ttf/otf are not)
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
    ".otf": "font/otf",

    # Audio / video
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",

    # Archives and binary documents
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".gz": "application/gzip",
    ".tgz": "application/gzip",
    ".tar": "application/x-tar",
    ".7z": "application/x-7z-compressed",
}

DEFAULT_MIME_TYPE = "application/octet-stream"


# =============================================================================
# COMPRESSIBILITY RULES
# =============================================================================

COMPRESSIBLE_TYPES = frozenset({
    "application/javascript",
    "application/x-javascript",
    "application/json",
    "application/manifest+json",
    "application/xml",
    "application/xhtml+xml",
    "application/wasm",
    "image/svg+xml",
    "font/ttf",
    "font/otf",
})

NON_COMPRESSIBLE_TYPES = frozenset({
    "application/pdf",
    "application/zip",
    "application/gzip",
    "application/x-gzip",
    "application/x-7z-compressed",
    "font/woff",
    "font/woff2",
})

COMPRESSIBLE_PREFIXES = ("text/",)
NON_COMPRESSIBLE_PREFIXES = ("image/", "video/", "audio/")


class Compressibility(Enum):
    COMPRESSIBLE = "compressible"
    NEVER = "never"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class ContentClass:
    """Result of classify(): what to call the file and whether to gzip it."""

    mime_type: str
    compressibility: Compressibility

    @property
    def content_type(self) -> str:
        """Content-Type header value, with charset for text-like types."""
        return get_content_type_for(self.mime_type)

    def should_compress(self, size: int, threshold: int) -> bool:
        """
        True when gzip is worth attempting for a file of `size` bytes.

        Only COMPRESSIBLE content strictly above the threshold qualifies.
        NEVER means never, regardless of size.
        """
        return self.compressibility is Compressibility.COMPRESSIBLE and size > threshold


# =============================================================================
# LOOKUP FUNCTIONS
# =============================================================================

def get_mime_type(path: str | Path, default: Optional[str] = None) -> str:
    """
    Resolve a MIME type from a file extension.

    Example:
        get_mime_type("app.JS")        → "application/javascript"
        get_mime_type("data.unknown")  → "application/octet-stream"
    """
    if isinstance(path, str):
        path = Path(path)
    return MIME_TYPES.get(path.suffix.lower(), default or DEFAULT_MIME_TYPE)


def compressibility_of(mime_type: str) -> Compressibility:
    """Apply the precedence rules from the module docstring to one type."""
    base = mime_type.split(";")[0].strip().lower()

    if base in COMPRESSIBLE_TYPES:
        return Compressibility.COMPRESSIBLE
    if base in NON_COMPRESSIBLE_TYPES:
        return Compressibility.NEVER
    if base.startswith(NON_COMPRESSIBLE_PREFIXES):
        return Compressibility.NEVER
    if base.startswith(COMPRESSIBLE_PREFIXES):
        return Compressibility.COMPRESSIBLE
    return Compressibility.NEUTRAL


def classify(path: str | Path) -> ContentClass:
    """Map a path to its MIME type and compressibility class."""
    mime_type = get_mime_type(path)
    return ContentClass(mime_type=mime_type, compressibility=compressibility_of(mime_type))


def is_text_type(mime_type: str) -> bool:
    if mime_type.startswith("text/"):
        return True
    return mime_type in {
        "application/javascript",
        "application/json",
        "application/manifest+json",
        "application/xml",
        "application/xhtml+xml",
        "image/svg+xml",
    }


def get_content_type_for(mime_type: str, charset: str = "utf-8") -> str:
    if is_text_type(mime_type):
        return f"{mime_type}; charset={charset}"
    return mime_type


def get_content_type(path: str | Path, charset: str = "utf-8") -> str:
    """Content-Type header value for a path (MIME type plus charset for text)."""
    return get_content_type_for(get_mime_type(path), charset)
