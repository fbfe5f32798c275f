"""
Request handlers.

    static.py       the static file pipeline (StaticFileHandler)
    conditional.py  ETag / Last-Modified negotiation
    compression.py  gzip encoding and Accept-Encoding parsing
    upload.py       the /api/ upload and listing endpoints (UploadHandler)
"""

from .static import (
    StaticFileHandler,
    FileInfo,
    ServeStats,
    ALLOWED_METHODS,
    resolve_request_path,
    resolve_file,
)
from .conditional import Validators, is_not_modified, etag_matches, parse_http_date
from .compression import compress, accepts_gzip, compression_ratio
from .upload import UploadHandler, parse_multipart, safe_filename

__all__ = [
    "StaticFileHandler",
    "FileInfo",
    "ServeStats",
    "ALLOWED_METHODS",
    "resolve_request_path",
    "resolve_file",
    "Validators",
    "is_not_modified",
    "etag_matches",
    "parse_http_date",
    "compress",
    "accepts_gzip",
    "compression_ratio",
    "UploadHandler",
    "parse_multipart",
    "safe_filename",
]
