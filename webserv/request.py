"""Parsing and holding an HTTP/1.1 request head."""

from __future__ import annotations

import re
from collections.abc import Iterator

from webserv.status import HttpError, HttpStatus
from webserv.utils import (
    BLUE,
    BOLD,
    GREEN,
    MAGENTA,
    RESET,
    YELLOW,
    info_time,
    is_digits_only,
    to_title_case,
)

_TCHAR_SYMBOLS = frozenset("!#$%&'*+-.^_`|~")
_WORD = re.compile(r"[^ \t\n\v\f\r]+")
_SUPPORTED_METHODS = frozenset({"GET", "POST", "DELETE"})
_BODYLESS_METHODS = frozenset({"GET", "DELETE"})


def _is_tchar(ch: str) -> bool:
    return (ch.isascii() and ch.isalnum()) or ch in _TCHAR_SYMBOLS


def is_valid_token(token: str) -> bool:
    """True when ``token`` is a non-empty RFC 9110 token (a header field name)."""
    return bool(token) and all(_is_tchar(ch) for ch in token)


def is_valid_header_value(value: str) -> bool:
    """True when ``value`` holds only tab, visible ASCII or non-ASCII characters."""
    for ch in value:
        code = ord(ch)
        if code == 9 or 32 <= code <= 126 or code >= 128:
            continue
        return False
    return True


def _lines(header: str) -> Iterator[str]:
    """Non-empty lines of ``header``, with a trailing carriage return removed."""
    for line in header.split("\n"):
        if line.endswith("\r"):
            line = line[:-1]
        if line:
            yield line


class HttpRequest:
    """Request line, lower-cased headers and body of one request."""

    def __init__(self) -> None:
        self.header_parsed = False
        self.body_parsed = False
        self.method = ""
        self.uri = ""
        self.version = ""
        self.headers: dict[str, str] = {}
        self.body: bytes = b""
        self.query_string = ""
        self.session_id = ""

    def parse_request_line(self, header: str) -> None:
        """Parse the first non-empty line of ``header`` as the request line."""
        self.header_parsed = True
        for line in _lines(header):
            parts = _WORD.findall(line)
            if len(parts) < 3:
                raise HttpError(HttpStatus.BAD_REQUEST, "Bad request line format")
            if len(parts) > 3:
                raise HttpError(HttpStatus.BAD_REQUEST, "Too many elements in request line")
            self.method, self.uri, self.version = parts
            if not self.uri.startswith("/"):
                raise HttpError(HttpStatus.BAD_REQUEST, "Invalid request-target")
            if self.method not in _SUPPORTED_METHODS:
                raise HttpError(HttpStatus.METHOD_NOT_ALLOWED, "Method not allowed")
            if self.version != "HTTP/1.1":
                raise HttpError(HttpStatus.VERSION_NOT_SUPPORTED, "Only HTTP/1.1 supported")
            self.extract_query_string()
            return
        raise HttpError(HttpStatus.BAD_REQUEST, "Missing request line")

    def parse_header_lines(self, header: str) -> None:
        """Parse every ``name: value`` line of ``header`` and validate the result."""
        for line in _lines(header):
            name, colon, value = line.partition(":")
            if not colon:
                continue
            if not is_valid_token(name):
                raise HttpError(HttpStatus.BAD_REQUEST, "Invalid token as header field")
            key = name.lower()
            if not is_valid_header_value(value):
                raise HttpError(HttpStatus.BAD_REQUEST, "Invalid header value")
            value = value.lstrip(" ")
            if key in self.headers:
                raise HttpError(HttpStatus.BAD_REQUEST, "Duplicate header")
            self.headers[key] = value

        if self.method in _BODYLESS_METHODS and (
            self.has_header("Content-Length") or self.has_header("Transfer-Encoding")
        ):
            raise HttpError(HttpStatus.BAD_REQUEST, "No body expected for this method")
        if not self.has_header("Host"):
            raise HttpError(HttpStatus.BAD_REQUEST, "Missing Host header")
        if self.has_header("Content-Length") and not is_digits_only(
            self.header("Content-Length")
        ):
            raise HttpError(HttpStatus.BAD_REQUEST, "Invalid content length")
        self.header_parsed = True

    def extract_query_string(self) -> None:
        """Split the text after ``?`` off the URI into ``query_string``."""
        path, mark, query = self.uri.partition("?")
        if mark:
            self.uri = path
            self.query_string = query
        else:
            self.query_string = ""

    def clear(self) -> None:
        """Forget everything parsed so far; the session id is kept."""
        self.header_parsed = False
        self.body_parsed = False
        self.method = ""
        self.uri = ""
        self.version = ""
        self.headers.clear()
        self.body = b""
        self.query_string = ""

    def has_header(self, name: str) -> bool:
        return name.lower() in self.headers

    def header(self, name: str) -> str:
        """Value of a header, or an empty string when it is absent."""
        return self.headers.get(name.lower(), "")

    def set_header(self, name: str, value: str) -> None:
        self.headers[name.lower()] = value

    def format_log(self) -> str:
        """Human-readable, coloured summary of the request for the log."""
        prefix = info_time()
        lines = [f"{prefix}{BOLD}{GREEN}=== HTTP REQUEST BEGIN ==={RESET}\n"]
        lines.append(f"{prefix}{BOLD}Method      : {RESET}{YELLOW}{self.method}{RESET}\n")
        lines.append(f"{prefix}{BOLD}URI         : {RESET}{YELLOW}{self.uri}{RESET}\n")
        if self.query_string:
            lines.append(
                f"{prefix}{BOLD}QueryString : {RESET}{YELLOW}{self.query_string}{RESET}\n"
            )
        lines.append(f"{prefix}{BOLD}SessionID   : {RESET}{YELLOW}{self.session_id}{RESET}\n")
        lines.append(f"{prefix}{BOLD}Version     : {RESET}{YELLOW}{self.version}{RESET}\n")
        if self.headers:
            lines.append(f"{prefix}{BOLD}{BLUE}--- Headers ---{RESET}\n")
            for name, value in sorted(self.headers.items()):
                lines.append(
                    f'{prefix}[{to_title_case(name)}]{RESET} = {MAGENTA}"{value}"{RESET}\n'
                )
        lines.append(f"{prefix}{BOLD}{GREEN}=== HTTP REQUEST END ==={RESET}\n\n")
        return "".join(lines)

    def __repr__(self) -> str:
        return f"HttpRequest(method={self.method!r}, uri={self.uri!r}, headers={self.headers!r})"