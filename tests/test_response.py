import re
from email.utils import parsedate_to_datetime

import pytest

from webserv.response import (
    HttpResponse,
    generate_error_page,
    handle_parsing_error,
    http_date,
)
from webserv.status import HttpError, HttpStatus


class _FakeServer:
    def __init__(self, root, pages):
        self.root = root
        self.pages = pages

    def error_page_by_code(self, code):
        if code not in self.pages:
            raise KeyError(code)
        return self.pages[code]


def test_default_headers():
    response = HttpResponse()
    assert response.status == HttpStatus.OK
    assert response.header("Server") == "Webserv/1.0"
    assert response.header("connection") == "keep-alive"
    assert response.body == b""


def test_header_lookup_is_case_insensitive():
    response = HttpResponse()
    response.set_header("X-Session-Update", "value")
    assert response.header("x-session-update") == "value"
    assert response.header("missing") == ""


def test_set_body_updates_content_length():
    response = HttpResponse()
    response.set_body("hello")
    assert response.body == b"hello"
    assert response.header("Content-Length") == str(len(b"hello"))


def test_append_to_body_updates_content_length():
    response = HttpResponse()
    response.set_body("a")
    response.append_to_body(b"bc")
    assert response.body == b"abc"
    assert response.header("Content-Length") == str(len(response.body))


def test_status_line():
    response = HttpResponse(HttpStatus.NOT_FOUND)
    assert response.build_status_line() == "HTTP/1.1 404 Not Found\r\n"


def test_status_line_unknown_code():
    response = HttpResponse(299)
    assert response.build_status_line().endswith("Unknown\r\n")


def test_to_bytes_layout():
    response = HttpResponse(HttpStatus.CREATED)
    response.set_header("Content-Type", "text/plain")
    response.set_body(b"payload")
    raw = response.to_bytes()
    head, _, body = raw.partition(b"\r\n\r\n")
    assert body == b"payload"
    lines = head.decode().split("\r\n")
    assert lines[0] == "HTTP/1.1 201 Created"
    names = [line.split(":", 1)[0] for line in lines[1:]]
    assert names == sorted(names)
    assert "Content-Type" in names
    assert "Date" in names
    assert response.header("Date")


def test_clear_resets_response():
    response = HttpResponse(HttpStatus.BAD_REQUEST)
    response.set_header("Connection", "close")
    response.set_header("X-Extra", "1")
    response.set_body("x")
    response.clear()
    assert response.status == HttpStatus.OK
    assert response.body == b""
    assert response.headers == {"server": "Webserv/1.0", "connection": "keep-alive"}


def test_format_log_contains_status_and_headers():
    response = HttpResponse(HttpStatus.FOUND)
    response.set_header("Location", "/new")
    log = response.format_log()
    assert "HTTP/1.1 302 Found\r\n" in log
    assert "Location: /new\r\n" in log
    assert "=== HTTP RESPONSE BEGIN ===" in log
    assert "=== HTTP RESPONSE END ===" in log


def test_http_date_format():
    value = http_date()
    assert value.endswith(" GMT")
    assert re.fullmatch(r"\w{3}, \d\d \w{3} \d{4} \d\d:\d\d:\d\d GMT", value)
    assert parsedate_to_datetime(value).utcoffset().total_seconds() == 0


def test_generate_error_page():
    page = generate_error_page(404, "Not Found")
    assert page.startswith("<!DOCTYPE html>\n")
    assert "<title>404 Not Found</title>" in page
    assert "<h1>404 Not Found</h1>" in page
    assert page.endswith("</html>\n")


def test_parsing_error_uses_configured_page(tmp_path):
    page = tmp_path / "404.html"
    page.write_bytes(b"<p>custom</p>")
    server = _FakeServer(str(tmp_path), {404: "/404.html"})
    response = HttpResponse()
    handle_parsing_error(HttpError(HttpStatus.NOT_FOUND, "nope"), response, server)
    assert response.status == HttpStatus.NOT_FOUND
    assert response.body == b"<p>custom</p>"
    assert response.header("Content-Type") == "text/html"
    assert response.header("Connection") == "close"


def test_parsing_error_falls_back_to_generated_page(tmp_path):
    server = _FakeServer(str(tmp_path), {})
    response = HttpResponse()
    error = HttpError(HttpStatus.METHOD_NOT_ALLOWED, "Method not allowed")
    handle_parsing_error(error, response, server)
    assert response.status == HttpStatus.METHOD_NOT_ALLOWED
    assert response.body == generate_error_page(405, "Method Not Allowed").encode()
    assert response.header("Content-Type") == "text/html"
    assert response.header("Connection") == "close"


def test_parsing_error_missing_page_file(tmp_path):
    server = _FakeServer(str(tmp_path), {400: "/absent.html"})
    response = HttpResponse()
    handle_parsing_error(HttpError(HttpStatus.BAD_REQUEST, "bad"), response, server)
    assert b"400 Bad Request" in response.body


@pytest.mark.parametrize("status", list(HttpStatus))
def test_serialised_length_matches_header(status):
    response = HttpResponse(status)
    response.set_body("body text")
    raw = response.to_bytes()
    body = raw.partition(b"\r\n\r\n")[2]
    assert len(body) == int(response.header("Content-Length"))