"""
Unit tests for the fixed response.
"""

from oauthlistener.http.response import (
    FIXED_RESPONSE,
    HTTPResponse,
    build_fixed_response,
)


class TestFixedResponse:
    """The one response the listener ever sends."""

    def test_status_line(self):
        assert FIXED_RESPONSE.startswith(b"HTTP/1.1 200 OK\r\n")

    def test_body_is_true(self):
        head, body = FIXED_RESPONSE.split(b"\r\n\r\n", 1)
        assert body == b"true"

    def test_content_length_matches_body(self):
        assert b"Content-Length: 4\r\n" in FIXED_RESPONSE

    def test_cors_headers(self):
        assert b"Access-Control-Allow-Origin: *\r\n" in FIXED_RESPONSE
        assert b"Access-Control-Allow-Headers: *\r\n" in FIXED_RESPONSE
        assert b"Access-Control-Allow-Methods: POST, GET, OPTIONS\r\n" in FIXED_RESPONSE
        assert b"Access-Control-Allow-Credentials: true\r\n" in FIXED_RESPONSE

    def test_content_type_and_cache(self):
        assert b"Content-Type: application/json; charset=utf-8\r\n" in FIXED_RESPONSE
        assert b"cache-control: max-age=0, private, must-revalidate\r\n" in FIXED_RESPONSE

    def test_exact_wire_format(self):
        assert FIXED_RESPONSE == (
            b"HTTP/1.1 200 OK\r\n"
            b"Content-Length: 4\r\n"
            b"Access-Control-Allow-Headers: *\r\n"
            b"Access-Control-Allow-Methods: POST, GET, OPTIONS\r\n"
            b"Access-Control-Allow-Credentials: true\r\n"
            b"Access-Control-Allow-Origin: *\r\n"
            b"Content-Type: application/json; charset=utf-8\r\n"
            b"cache-control: max-age=0, private, must-revalidate\r\n"
            b"\r\n"
            b"true"
        )

    def test_build_matches_cached_bytes(self):
        assert build_fixed_response().to_bytes() == FIXED_RESPONSE


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_content_length_is_computed(self):
        response = HTTPResponse().set_body("hello world")
        assert b"Content-Length: 11\r\n" in response.to_bytes()

    def test_explicit_content_length_is_not_duplicated(self):
        response = HTTPResponse(headers={"Content-Length": "999"}, body=b"abc")
        result = response.to_bytes()

        assert result.count(b"Content-Length") == 1
        assert b"Content-Length: 3\r\n" in result

    def test_unicode_body_length_in_bytes(self):
        response = HTTPResponse().set_body("é")
        assert b"Content-Length: 2\r\n" in response.to_bytes()

    def test_set_header_chaining(self):
        response = (HTTPResponse()
            .set_header("X-One", "1")
            .set_header("X-Two", "2"))

        assert response.headers == {"X-One": "1", "X-Two": "2"}
