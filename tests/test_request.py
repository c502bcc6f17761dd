import pytest

from webserv.request import HttpRequest, is_valid_header_value, is_valid_token
from webserv.status import HttpError, HttpStatus


def parse(head: str) -> HttpRequest:
    request = HttpRequest()
    request.parse_request_line(head)
    request.parse_header_lines(head)
    return request


def status_of(head: str) -> int:
    with pytest.raises(HttpError) as info:
        parse(head)
    return info.value.status


def test_request_line_fields():
    request = parse("GET /index.html HTTP/1.1\r\nHost: localhost:8080")
    assert request.method == "GET"
    assert request.uri == "/index.html"
    assert request.version == "HTTP/1.1"
    assert request.query_string == ""
    assert request.header_parsed is True


def test_query_string_is_split_off():
    request = parse("GET /cgi/run.py?name=a&x=1 HTTP/1.1\r\nHost: localhost")
    assert request.uri == "/cgi/run.py"
    assert request.query_string == "name=a&x=1"


def test_lines_without_carriage_return_are_accepted():
    request = parse("POST /upload HTTP/1.1\nHost: localhost\nContent-Length: 5")
    assert request.method == "POST"
    assert request.header("content-length") == "5"


def test_leading_blank_lines_are_skipped():
    request = HttpRequest()
    request.parse_request_line("\r\n\r\nDELETE /x HTTP/1.1")
    assert request.method == "DELETE"
    assert request.uri == "/x"


@pytest.mark.parametrize("head", ["", "\r\n", "\n\n"])
def test_missing_request_line(head):
    request = HttpRequest()
    with pytest.raises(HttpError) as info:
        request.parse_request_line(head)
    assert info.value.status == HttpStatus.BAD_REQUEST
    assert str(info.value) == "Missing request line"


def test_too_few_elements():
    request = HttpRequest()
    with pytest.raises(HttpError, match="Bad request line format") as info:
        request.parse_request_line("GET /")
    assert info.value.status == HttpStatus.BAD_REQUEST


def test_too_many_elements():
    request = HttpRequest()
    with pytest.raises(HttpError, match="Too many elements") as info:
        request.parse_request_line("GET / HTTP/1.1 extra")
    assert info.value.status == HttpStatus.BAD_REQUEST


def test_target_must_start_with_slash():
    request = HttpRequest()
    with pytest.raises(HttpError, match="Invalid request-target") as info:
        request.parse_request_line("GET index.html HTTP/1.1")
    assert info.value.status == HttpStatus.BAD_REQUEST


@pytest.mark.parametrize("method", ["PUT", "HEAD", "get"])
def test_unsupported_method(method):
    request = HttpRequest()
    with pytest.raises(HttpError) as info:
        request.parse_request_line(f"{method} / HTTP/1.1")
    assert info.value.status == HttpStatus.METHOD_NOT_ALLOWED


@pytest.mark.parametrize("version", ["HTTP/1.0", "HTTP/2", "http/1.1"])
def test_unsupported_version(version):
    request = HttpRequest()
    with pytest.raises(HttpError) as info:
        request.parse_request_line(f"GET / {version}")
    assert info.value.status == HttpStatus.VERSION_NOT_SUPPORTED


def test_header_names_lowered_and_leading_spaces_removed():
    request = parse("GET / HTTP/1.1\r\nHOST:   example.com\r\nX-Thing:value ")
    assert request.headers == {"host": "example.com", "x-thing": "value "}
    assert request.has_header("Host")
    assert request.header("X-THING") == "value "


def test_missing_header_is_empty_string():
    request = parse("GET / HTTP/1.1\r\nHost: localhost")
    assert request.header("Cookie") == ""
    assert not request.has_header("Cookie")


def test_duplicate_header_case_insensitive():
    assert status_of("GET / HTTP/1.1\r\nHost: a\r\nhost: b") == HttpStatus.BAD_REQUEST


def test_invalid_header_name():
    assert status_of("GET / HTTP/1.1\r\nHost: a\r\nBad Name: x") == HttpStatus.BAD_REQUEST


def test_invalid_header_value():
    assert status_of("GET / HTTP/1.1\r\nHost: a\r\nX-A: a\x01b") == HttpStatus.BAD_REQUEST


@pytest.mark.parametrize("method", ["GET", "DELETE"])
@pytest.mark.parametrize("header", ["Content-Length: 3", "Transfer-Encoding: chunked"])
def test_body_headers_rejected_for_bodyless_methods(method, header):
    head = f"{method} / HTTP/1.1\r\nHost: a\r\n{header}"
    assert status_of(head) == HttpStatus.BAD_REQUEST


def test_missing_host():
    with pytest.raises(HttpError, match="Missing Host header"):
        parse("GET / HTTP/1.1\r\nAccept: */*")


def test_non_numeric_content_length():
    with pytest.raises(HttpError, match="Invalid content length"):
        parse("POST / HTTP/1.1\r\nHost: a\r\nContent-Length: 12a")


def test_post_with_chunked_encoding_is_accepted():
    request = parse("POST /up HTTP/1.1\r\nHost: a\r\nTransfer-Encoding: chunked")
    assert request.header("transfer-encoding") == "chunked"


def test_set_header_lowercases():
    request = HttpRequest()
    request.set_header("Content-Type", "text/plain")
    assert request.headers == {"content-type": "text/plain"}


def test_clear_keeps_session_id():
    request = parse("GET /a?b=c HTTP/1.1\r\nHost: a")
    request.session_id = "abc"
    request.body = b"data"
    request.clear()
    assert request.method == "" and request.uri == "" and request.version == ""
    assert request.headers == {}
    assert request.body == b""
    assert request.query_string == ""
    assert request.header_parsed is False
    assert request.session_id == "abc"


def test_extract_query_string_without_mark_clears_it():
    request = HttpRequest()
    request.uri = "/plain"
    request.query_string = "stale"
    request.extract_query_string()
    assert request.uri == "/plain"
    assert request.query_string == ""


def test_format_log_lists_headers_in_title_case():
    request = parse("GET /p?q=1 HTTP/1.1\r\nhost: localhost\r\ncontent-type: text/html")
    log = request.format_log()
    assert "[Host]" in log
    assert "[Content-Type]" in log
    assert '"localhost"' in log
    assert "QueryString" in log
    assert log.index("[Content-Type]") < log.index("[Host]")


def test_format_log_omits_empty_query_string():
    request = parse("GET /p HTTP/1.1\r\nHost: localhost")
    assert "QueryString" not in request.format_log()


@pytest.mark.parametrize("token", ["Host", "X-Custom_1", "a!#$%&'*+-.^_`|~z"])
def test_valid_tokens(token):
    assert is_valid_token(token) is True


@pytest.mark.parametrize("token", ["", "Bad Name", "a:b", "caf\u00e9", "a\tb"])
def test_invalid_tokens(token):
    assert is_valid_token(token) is False


@pytest.mark.parametrize("value", ["", " plain text", "tab\there", "\u00e9t\u00e9"])
def test_valid_header_values(value):
    assert is_valid_header_value(value) is True


@pytest.mark.parametrize("value", ["a\x00", "\x7f", "line\nbreak", "x\x1fy"])
def test_invalid_header_values(value):
    assert is_valid_header_value(value) is False