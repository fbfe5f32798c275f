"""
Unit tests for the upload API: multipart parsing, filename handling,
storage with gzip copies, the file listing and /api/ routing.
"""

import gzip
import json
import os
from http import HTTPStatus

import pytest

from gzipstatic import GzipStaticServer, ServerConfig
from gzipstatic.errors import BadRequestError
from gzipstatic.handlers.upload import (
    UploadHandler,
    compression_percent,
    parse_multipart,
    safe_filename,
)

from conftest import multipart_body

CSV = b"id,name,score\n" + b"1,alice,99\n" * 300
BINARY = bytes(range(256)) + b"\r\n--not-a-boundary\r\n\x00\xff\r"


@pytest.fixture
def uploads(tmp_path):
    return UploadHandler(tmp_path / "uploads")


@pytest.fixture
def post_files(uploads, make_request):
    def _post(files, fields=None):
        content_type, body = multipart_body(files, fields)
        return uploads.handle(make_request(
            "/api/upload", method="POST", headers={"Content-Type": content_type}, body=body,
        ))
    return _post


class TestParseMultipart:
    def test_files_extracted(self):
        content_type, body = multipart_body([("a.csv", CSV), ("b.bin", BINARY)])

        files = parse_multipart(content_type, body)

        assert [f.filename for f in files] == ["a.csv", "b.bin"]
        assert files[0].field_name == "files"
        assert files[0].data == CSV

    def test_binary_bytes_preserved(self):
        content_type, body = multipart_body([("b.bin", BINARY)])
        assert parse_multipart(content_type, body)[0].data == BINARY

    def test_plain_fields_ignored(self):
        content_type, body = multipart_body([("a.csv", CSV)], fields={"note": "hello"})
        assert [f.filename for f in parse_multipart(content_type, body)] == ["a.csv"]

    def test_not_multipart(self):
        with pytest.raises(BadRequestError):
            parse_multipart("application/json", b"{}")

    def test_wrong_boundary(self):
        _, body = multipart_body([("a.csv", CSV)])
        with pytest.raises(BadRequestError):
            parse_multipart("multipart/form-data; boundary=somethingelse", body)


class TestFilenames:
    @pytest.mark.parametrize("raw,expected", [
        ("report.csv", "report.csv"),
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\me\\a.txt", "a.txt"),
        ("  spaced.txt ", "spaced.txt"),
    ])
    def test_reduced_to_basename(self, raw, expected):
        assert safe_filename(raw) == expected

    @pytest.mark.parametrize("raw", ["", ".", "..", "dir/", "a\x00b"])
    def test_unusable(self, raw):
        with pytest.raises(BadRequestError):
            safe_filename(raw)

    def test_compression_percent(self):
        assert compression_percent(1000, 250) == 75
        assert compression_percent(0, 20) == 0


class TestUpload:
    def test_saves_file_and_gzip_copy(self, uploads, post_files):
        response = post_files([("report.csv", CSV)])

        assert response.status == HTTPStatus.OK
        payload = json.loads(response.body)
        assert payload["success"] is True
        assert payload["message"] == "1/1 files uploaded successfully"

        result = payload["results"][0]
        assert result["filename"] == "report.csv"
        assert result["originalName"] == "report.csv"
        assert result["size"] == len(CSV)
        assert 0 < result["gzipSize"] < len(CSV)
        assert result["compressionRatio"] > 50

        stored = uploads.upload_dir / "report.csv"
        assert stored.read_bytes() == CSV
        assert gzip.decompress((uploads.upload_dir / "report.csv.gz").read_bytes()) == CSV

    def test_name_clash_gets_counter(self, uploads, post_files):
        post_files([("report.csv", b"first")])
        response = post_files([("report.csv", b"second"), ("report.csv", b"third")])

        names = [r["filename"] for r in json.loads(response.body)["results"]]
        assert names == ["report_1.csv", "report_2.csv"]
        assert (uploads.upload_dir / "report.csv").read_bytes() == b"first"
        assert (uploads.upload_dir / "report_2.csv").read_bytes() == b"third"

    def test_traversal_filename_stays_in_upload_dir(self, uploads, post_files, tmp_path):
        post_files([("../../escape.txt", b"nope")])

        assert (uploads.upload_dir / "escape.txt").read_bytes() == b"nope"
        assert not (tmp_path / "escape.txt").exists()

    def test_unusable_name_reported_per_file(self, post_files):
        response = post_files([("..", b"x"), ("ok.txt", b"fine")])

        payload = json.loads(response.body)
        assert response.status == HTTPStatus.OK
        assert payload["success"] is True
        assert payload["message"] == "1/2 files uploaded successfully"
        assert payload["results"][0]["success"] is False
        assert "message" in payload["results"][0]

    def test_no_files(self, post_files):
        response = post_files([], fields={"note": "no attachment"})
        assert response.status == HTTPStatus.BAD_REQUEST

    def test_not_multipart(self, uploads, make_request):
        response = uploads.handle(make_request(
            "/api/upload", method="POST", headers={"Content-Type": "text/plain"}, body=b"hi",
        ))
        assert response.status == HTTPStatus.BAD_REQUEST

    def test_too_large(self, tmp_path, make_request):
        small = UploadHandler(tmp_path / "small", max_upload_size=100)
        content_type, body = multipart_body([("big.csv", CSV)])

        response = small.handle(make_request(
            "/api/upload", method="POST", headers={"Content-Type": content_type}, body=body,
        ))

        assert response.status == HTTPStatus.REQUEST_ENTITY_TOO_LARGE
        assert list(small.upload_dir.iterdir()) == []

    def test_creates_upload_dir(self, tmp_path):
        handler = UploadHandler(tmp_path / "a" / "b")
        assert handler.upload_dir.is_dir()


class TestFileList:
    def test_lists_newest_first_without_gzip_copies(self, uploads, post_files, make_request):
        post_files([("old.csv", CSV)])
        post_files([("new.txt", b"tiny")])
        old = uploads.upload_dir / "old.csv"
        st = old.stat()
        os.utime(old, ns=(st.st_atime_ns, st.st_mtime_ns - 60_000_000_000))

        response = uploads.handle(make_request("/api/files"))

        files = json.loads(response.body)["files"]
        assert [f["filename"] for f in files] == ["new.txt", "old.csv"]
        assert files[1]["size"] == len(CSV)
        assert files[1]["gzipSize"] == (uploads.upload_dir / "old.csv.gz").stat().st_size
        assert files[1]["compressionRatio"] > 50
        assert files[0]["uploadTime"].endswith("Z")

    def test_missing_gzip_copy(self, uploads):
        (uploads.upload_dir / "manual.txt").write_bytes(b"placed by hand")

        [entry] = uploads.list_files()
        assert entry["gzipSize"] == 0
        assert entry["compressionRatio"] == 0

    def test_empty(self, uploads):
        assert uploads.list_files() == []


class TestRouting:
    def test_handles_api_prefix_only(self, make_request):
        assert UploadHandler.handles(make_request("/api/files"))
        assert not UploadHandler.handles(make_request("/apiary.html"))

    def test_wrong_method_on_upload(self, uploads, make_request):
        response = uploads.handle(make_request("/api/upload"))

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "POST, OPTIONS"

    def test_wrong_method_on_files(self, uploads, make_request):
        response = uploads.handle(make_request("/api/files", method="POST"))

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, HEAD, OPTIONS"

    def test_unknown_endpoint(self, uploads, make_request):
        response = uploads.handle(make_request("/api/nope"))

        assert response.status == HTTPStatus.NOT_FOUND
        assert json.loads(response.body) == {"error": "API endpoint not found"}

    def test_options_and_cors_headers(self, uploads, make_request):
        response = uploads.handle(make_request("/api/upload", method="OPTIONS"))

        assert response.status == HTTPStatus.NO_CONTENT
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert response.headers["Access-Control-Allow-Methods"] == "GET, POST, OPTIONS"

    def test_unexpected_failure_is_500(self, uploads, make_request, monkeypatch):
        def broken():
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(uploads, "list_files", broken)
        response = uploads.handle(make_request("/api/files"))

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert b"disk on fire" not in response.body
        assert response.headers["Access-Control-Allow-Origin"] == "*"


class TestServerWiring:
    def test_cors_preflight_allows_post_when_uploads_enabled(self, site_root, tmp_path, make_request):
        server = GzipStaticServer(
            ServerConfig(root_dir=str(site_root), upload_dir=str(tmp_path / "up"), cors=True),
            configure_logging=False,
        )
        handler = server._middleware.wrap(server._dispatch)

        response = handler(make_request(
            "/api/upload", method="OPTIONS", headers={"Origin": "http://localhost:5173"},
        ))

        assert "POST" in response.headers["Access-Control-Allow-Methods"]
        assert "Content-Type" in response.headers["Access-Control-Allow-Headers"]

    def test_api_paths_are_static_without_upload_dir(self, site_root, make_request):
        server = GzipStaticServer(ServerConfig(root_dir=str(site_root)), configure_logging=False)

        response = server._dispatch(make_request("/api/files"))

        assert server.upload_handler is None
        assert response.status == HTTPStatus.NOT_FOUND
        assert json.loads(response.body) == {"error": "Not Found"}
