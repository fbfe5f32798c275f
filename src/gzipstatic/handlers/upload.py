"""
=============================================================================
UPLOAD API
=============================================================================

A small JSON API next to the static files, enabled by setting upload_dir:

    POST /api/upload     multipart/form-data, one or more file parts
    GET  /api/files      what has been uploaded, newest first
    OPTIONS /api/*       204 with CORS headers
    anything else        JSON 404 (unknown endpoint) or 405 (wrong method)

Every upload is written to upload_dir under its own name, and a gzip copy
is written beside it as "<name>.gz":

    uploads/
    ├── report.csv
    ├── report.csv.gz
    ├── report_1.csv          second upload of report.csv
    └── report_1.csv.gz

The API never touches the static MemoryCache. Files land in upload_dir
only, so the static pipeline's lock is not involved.

=============================================================================
MULTIPART PARSING
=============================================================================

A multipart/form-data body is a MIME document. The stdlib email parser
already understands boundaries, part headers and RFC 2231 filenames, so the
body is handed to it with the request's Content-Type prepended as a header:

    Content-Type: multipart/form-data; boundary=XyZ
                                                       ← blank line
    --XyZ
    Content-Disposition: form-data; name="files"; filename="a.txt"

    <bytes>
    --XyZ--

Parts without a filename are ordinary form fields and are ignored.
=============================================================================
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from email import policy
from email.parser import BytesParser
from email.utils import collapse_rfc2231_value
from http import HTTPStatus
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import BadRequestError, CompressionError
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, error_response, method_not_allowed, no_content
from .compression import DEFAULT_LEVEL, compress

logger = logging.getLogger(__name__)

API_PREFIX = "/api/"
UPLOAD_PATH = "/api/upload"
FILES_PATH = "/api/files"
DEFAULT_MAX_UPLOAD_SIZE = 100 * 1024 * 1024

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@dataclass
class UploadedFile:
    field_name: str
    filename: str
    data: bytes


def parse_multipart(content_type: str, body: bytes) -> List[UploadedFile]:
    """
    Extract the file parts of a multipart/form-data body.

    Raises:
        BadRequestError: not multipart/form-data, or no boundary found.
    """
    if not content_type.lower().startswith("multipart/form-data"):
        raise BadRequestError(f"Expected multipart/form-data, got {content_type!r}")

    document = b"Content-Type: " + content_type.encode("latin-1") + b"\r\n\r\n" + body
    message = BytesParser(policy=policy.HTTP).parsebytes(document)
    if not message.is_multipart():
        raise BadRequestError("Multipart body has no parts (missing or wrong boundary)")

    files = []
    for part in message.iter_parts():
        filename = part.get_filename()
        if filename is None:
            continue
        files.append(UploadedFile(
            field_name=collapse_rfc2231_value(part.get_param("name", "", header="content-disposition")),
            filename=filename,
            data=part.get_payload(decode=True) or b"",
        ))
    return files


def safe_filename(name: str) -> str:
    """
    Reduce a client-supplied filename to a bare name inside the upload dir.

        "../../etc/passwd"        → "passwd"
        "C:\\Users\\me\\a.txt"    → "a.txt"
        ".." / "" / "a\\x00b"     → BadRequestError
    """
    base = name.replace("\\", "/").rsplit("/", 1)[-1].strip()
    if base in ("", ".", "..") or "\x00" in base:
        raise BadRequestError(f"Unusable filename: {name!r}")
    return base


def compression_percent(original_size: int, compressed_size: int) -> int:
    """Whole percent saved by gzip; 0 for empty files."""
    if original_size <= 0:
        return 0
    return round((1 - compressed_size / original_size) * 100)


class UploadHandler:
    """Serves the /api/ endpoints. Thread-safe: each upload opens its own file."""

    def __init__(
        self,
        upload_dir: Path | str,
        gzip_level: int = DEFAULT_LEVEL,
        max_upload_size: int = DEFAULT_MAX_UPLOAD_SIZE,
    ):
        self.upload_dir = Path(upload_dir).resolve()
        self.gzip_level = gzip_level
        self.max_upload_size = max_upload_size

        if not self.upload_dir.is_dir():
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created upload directory: {self.upload_dir}")

    # ─────────────────────────────────────────────────────────────────────
    # ROUTING
    # ─────────────────────────────────────────────────────────────────────

    @staticmethod
    def handles(request: HTTPRequest) -> bool:
        return request.path.startswith(API_PREFIX)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """Route one /api/ request. Never raises."""
        try:
            response = self._route(request)
        except Exception as e:
            logger.exception(f"API request {request.method} {request.path} failed: {e}")
            response = error_response(HTTPStatus.INTERNAL_SERVER_ERROR)

        for name, value in CORS_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    def _route(self, request: HTTPRequest) -> HTTPResponse:
        if request.method == "OPTIONS":
            return no_content()

        if request.path == UPLOAD_PATH:
            if request.method != "POST":
                return method_not_allowed(["POST", "OPTIONS"])
            return self.handle_upload(request)

        if request.path == FILES_PATH:
            if request.method not in ("GET", "HEAD"):
                return method_not_allowed(["GET", "HEAD", "OPTIONS"])
            return self.handle_file_list()

        return error_response(HTTPStatus.NOT_FOUND, "API endpoint not found")

    # ─────────────────────────────────────────────────────────────────────
    # POST /api/upload
    # ─────────────────────────────────────────────────────────────────────

    def handle_upload(self, request: HTTPRequest) -> HTTPResponse:
        if len(request.body) > self.max_upload_size:
            logger.warning(
                f"Upload of {len(request.body)} bytes exceeds limit {self.max_upload_size}"
            )
            return error_response(HTTPStatus.REQUEST_ENTITY_TOO_LARGE)

        try:
            files = parse_multipart(request.get_header("content-type"), request.body)
        except BadRequestError as e:
            logger.debug(f"Rejected upload: {e}")
            return error_response(HTTPStatus.BAD_REQUEST, e.message)

        if not files:
            return error_response(HTTPStatus.BAD_REQUEST, "No files in upload")

        results = [self._save(uploaded) for uploaded in files]
        succeeded = sum(1 for r in results if r["success"])

        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .no_cache()
            .json({
                "success": succeeded > 0,
                "message": f"{succeeded}/{len(results)} files uploaded successfully",
                "results": results,
            })
            .build())

    def _save(self, uploaded: UploadedFile) -> Dict[str, Any]:
        failure = {
            "success": False,
            "filename": "",
            "originalName": uploaded.filename,
            "size": 0,
        }
        try:
            path = self._create_unique(safe_filename(uploaded.filename), uploaded.data)
        except BadRequestError as e:
            logger.warning(f"Rejected upload: {e}")
            return {**failure, "message": e.message}
        except OSError as e:
            logger.error(f"Upload of {uploaded.filename!r} failed: {e}")
            return {**failure, "message": "Could not save file"}

        size = len(uploaded.data)
        gzip_size = self._write_gzip_copy(path, uploaded.data)
        ratio = compression_percent(size, gzip_size) if gzip_size else 0
        logger.info(
            f"Uploaded {path.name}: {size} bytes -> {gzip_size} bytes gzip ({ratio}% saved)"
        )
        return {
            "success": True,
            "filename": path.name,
            "originalName": uploaded.filename,
            "size": size,
            "gzipSize": gzip_size,
            "compressionRatio": ratio,
        }

    def _create_unique(self, name: str, data: bytes) -> Path:
        """
        Write `data` under `name`, or name_1.ext, name_2.ext ... if taken.
        Exclusive create, so two concurrent uploads never share a file.
        """
        stem, suffix = os.path.splitext(name)
        candidate = name
        counter = 0
        while True:
            path = self.upload_dir / candidate
            try:
                with path.open("xb") as f:
                    f.write(data)
                return path
            except FileExistsError:
                counter += 1
                candidate = f"{stem}_{counter}{suffix}"

    def _write_gzip_copy(self, path: Path, data: bytes) -> int:
        """Write path.gz. Returns its size, or 0 if it could not be made."""
        gz_path = path.with_name(path.name + ".gz")
        try:
            gz = compress(data, self.gzip_level)
            gz_path.write_bytes(gz)
        except (CompressionError, OSError) as e:
            logger.warning(f"No gzip copy for {path.name}: {e}")
            return 0
        return len(gz)

    # ─────────────────────────────────────────────────────────────────────
    # GET /api/files
    # ─────────────────────────────────────────────────────────────────────

    def handle_file_list(self) -> HTTPResponse:
        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .no_cache()
            .json({"files": self.list_files()})
            .build())

    def list_files(self) -> List[Dict[str, Any]]:
        """Uploaded files (gzip copies excluded), most recent first."""
        found = []
        with os.scandir(self.upload_dir) as entries:
            for entry in entries:
                if entry.name.endswith(".gz") or not entry.is_file():
                    continue
                try:
                    st = entry.stat()
                except OSError as e:
                    logger.warning(f"Cannot stat {entry.name}: {e}")
                    continue
                found.append((st.st_mtime_ns, entry.name, st))

        found.sort(key=lambda item: item[0], reverse=True)
        listing = []
        for _, name, st in found:
            gzip_size = self._gzip_size(self.upload_dir / name)
            listing.append({
                "filename": name,
                "originalName": name,
                "size": st.st_size,
                "gzipSize": gzip_size or 0,
                "compressionRatio": compression_percent(st.st_size, gzip_size) if gzip_size else 0,
                "uploadTime": _iso_timestamp(st.st_mtime),
            })
        return listing

    @staticmethod
    def _gzip_size(path: Path) -> Optional[int]:
        try:
            return path.with_name(path.name + ".gz").stat().st_size
        except OSError:
            return None


def _iso_timestamp(epoch: float) -> str:
    """2024-05-01T12:00:00.000Z"""
    dt = datetime.fromtimestamp(epoch, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
