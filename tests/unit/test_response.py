"""
Unit tests for HTTP response building.
"""

import json
from datetime import datetime, timezone

from gzipstatic.http.response import (
    HTTPResponse,
    ResponseBuilder,
    HTTPStatus,
    not_found,
    not_modified,
    no_content,
    bad_request,
    internal_error,
    method_not_allowed,
    format_http_date,
)


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        """Test status line generation."""
        response = HTTPResponse(status=HTTPStatus.OK)
        assert response.status_line == "HTTP/1.1 200 OK"

        response = HTTPResponse(status=HTTPStatus.NOT_MODIFIED)
        assert response.status_line == "HTTP/1.1 304 Not Modified"

    def test_to_bytes_includes_headers(self):
        """Test that to_bytes includes all headers."""
        response = HTTPResponse(
            status=HTTPStatus.OK,
            headers={"X-Custom": "value"},
            body=b"test",
        )

        result = response.to_bytes()

        assert b"HTTP/1.1 200 OK\r\n" in result
        assert b"X-Custom: value\r\n" in result
        assert b"Content-Length: 4\r\n" in result
        assert b"Date: " in result
        assert b"Server: Gzip-Static-Server/1.0.0\r\n" in result
        assert result.endswith(b"\r\n\r\ntest")

    def test_to_bytes_sets_content_length(self):
        """Test that Content-Length is auto-set."""
        result = HTTPResponse(body=b"hello world").to_bytes()
        assert b"Content-Length: 11\r\n" in result

    def test_explicit_content_length_kept(self):
        """HEAD responses carry the GET length with an empty body."""
        response = HTTPResponse(headers={"Content-Length": "512"})

        result = response.to_bytes()
        assert b"Content-Length: 512\r\n" in result
        assert result.endswith(b"\r\n\r\n")
        assert response.content_length == 512

    def test_not_modified_has_no_length_or_body(self):
        response = HTTPResponse(
            status=HTTPStatus.NOT_MODIFIED,
            headers={"ETag": '"1-1"', "Content-Length": "10"},
            body=b"ignored",
        )

        result = response.to_bytes()
        assert b"Content-Length" not in result
        assert b'ETag: "1-1"\r\n' in result
        assert result.endswith(b"\r\n\r\n")

    def test_custom_server_name(self):
        assert b"Server: test/0\r\n" in HTTPResponse().to_bytes(server_name="test/0")

    def test_set_header_chaining(self):
        """Test method chaining for headers."""
        response = (HTTPResponse()
            .set_header("X-One", "1")
            .set_header("X-Two", "2"))

        assert response.headers == {"X-One": "1", "X-Two": "2"}

    def test_add_vary_deduplicates(self):
        response = HTTPResponse(headers={"Vary": "Accept-Encoding"})
        response.add_vary("Origin").add_vary("accept-encoding")

        assert response.headers["Vary"] == "Accept-Encoding, Origin"


class TestResponseBuilder:
    """Tests for ResponseBuilder class."""

    def test_status(self):
        response = ResponseBuilder().status(404).build()
        assert response.status == HTTPStatus.NOT_FOUND

    def test_json_body(self):
        response = ResponseBuilder().json({"ok": True}).build()

        assert response.headers["Content-Type"] == "application/json; charset=utf-8"
        assert json.loads(response.body) == {"ok": True}

    def test_str_body_is_utf8(self):
        response = ResponseBuilder().body("héllo").build()

        assert response.body == "héllo".encode("utf-8")

    def test_cache_headers(self):
        assert ResponseBuilder().cache(60).build().headers["Cache-Control"] == "public, max-age=60"
        assert "no-store" in ResponseBuilder().no_cache().build().headers["Cache-Control"]

    def test_close_connection(self):
        assert ResponseBuilder().close_connection().build().headers["Connection"] == "close"

    def test_method_chaining(self):
        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type("text/css")
            .header("ETag", '"3-0"')
            .body(b"a{}")
            .build())

        assert response.headers["Content-Type"] == "text/css"
        assert response.headers["ETag"] == '"3-0"'
        assert response.body == b"a{}"


class TestConvenienceFunctions:
    """Tests for convenience response functions."""

    def test_not_found(self):
        response = not_found()

        assert response.status == HTTPStatus.NOT_FOUND
        assert json.loads(response.body) == {"error": "Not Found"}

    def test_bad_request(self):
        response = bad_request("Invalid input")

        assert response.status == HTTPStatus.BAD_REQUEST
        assert json.loads(response.body) == {"error": "Invalid input"}

    def test_internal_error_hides_detail(self):
        response = internal_error()

        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert json.loads(response.body) == {"error": "Internal Server Error"}

    def test_method_not_allowed(self):
        response = method_not_allowed(["GET", "HEAD"])

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, HEAD"

    def test_not_modified(self):
        response = not_modified({"ETag": '"1-2"'})

        assert response.status == HTTPStatus.NOT_MODIFIED
        assert response.headers["ETag"] == '"1-2"'
        assert not response.has_body

    def test_no_content(self):
        assert no_content().status == HTTPStatus.NO_CONTENT


class TestFormatHTTPDate:
    """Tests for HTTP date formatting."""

    def test_format(self):
        dt = datetime(2026, 1, 15, 12, 30, 45, tzinfo=timezone.utc)
        assert format_http_date(dt) == "Thu, 15 Jan 2026 12:30:45 GMT"

    def test_rfc_example(self):
        dt = datetime.fromtimestamp(784111777, tz=timezone.utc)
        assert format_http_date(dt) == "Sun, 06 Nov 1994 08:49:37 GMT"
