"""HTTP response building, serialisation and error pages."""

from __future__ import annotations

import sys
from email.utils import formatdate
from typing import Any, Union

from webserv.status import HttpError, HttpStatus, reason_phrase
from webserv.utils import (
    BOLD,
    ORANGE,
    RED,
    RESET,
    get_mime_type,
    info_time,
    read_file,
    to_title_case,
)

BodyData = Union[str, bytes]

SERVER_NAME = "Webserv/1.0"


def _as_bytes(data: BodyData) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


def http_date() -> str:
    """Current time in the HTTP date format, e.g. ``Tue, 15 Nov 1994 08:12:31 GMT``."""
    return formatdate(usegmt=True)


class HttpResponse:
    """A response under construction: status, lower-cased headers and a byte body."""

    def __init__(self, status: int = HttpStatus.OK) -> None:
        self.status: int = status
        self.headers: dict[str, str] = {}
        self.body: bytes = b""
        self._set_default_headers()

    def _set_default_headers(self) -> None:
        self.set_header("Server", SERVER_NAME)
        self.set_header("Connection", "keep-alive")

    def set_header(self, name: str, value: str) -> None:
        self.headers[name.lower()] = value

    def header(self, name: str) -> str:
        """Value of a header, or an empty string when it is not set."""
        return self.headers.get(name.lower(), "")

    def set_body(self, data: BodyData) -> None:
        self.body = _as_bytes(data)
        self.set_header("Content-Length", str(len(self.body)))

    def append_to_body(self, data: BodyData) -> None:
        self.body += _as_bytes(data)
        self.set_header("Content-Length", str(len(self.body)))

    def build_status_line(self) -> str:
        return f"HTTP/1.1 {int(self.status)} {reason_phrase(self.status)}\r\n"

    def clear(self) -> None:
        """Reset to a fresh 200 response with the default headers."""
        self.status = HttpStatus.OK
        self.headers.clear()
        self._set_default_headers()
        self.body = b""

    def _header_lines(self) -> list[str]:
        return [
            f"{to_title_case(name)}: {value}\r\n"
            for name, value in sorted(self.headers.items())
        ]

    def to_bytes(self) -> bytes:
        """Serialise the response, stamping a fresh ``Date`` header."""
        self.set_header("Date", http_date())
        head = self.build_status_line() + "".join(self._header_lines()) + "\r\n"
        return head.encode("utf-8") + self.body

    def format_log(self) -> str:
        """Status line and headers, each prefixed for the log."""
        lines = [f"{info_time()}{BOLD}{ORANGE}=== HTTP RESPONSE BEGIN ==={RESET}\n"]
        lines.append(info_time() + self.build_status_line())
        lines.extend(info_time() + line for line in self._header_lines())
        lines.append(f"{info_time()}{BOLD}{ORANGE}=== HTTP RESPONSE END ==={RESET}\n")
        return "".join(lines)

    def __repr__(self) -> str:
        return f"HttpResponse(status={int(self.status)}, headers={self.headers!r})"


def generate_error_page(status_code: int, reason: str) -> str:
    """Built-in HTML page used when no configured error page is available."""
    title = f"{int(status_code)} {reason}"
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '    <meta charset="UTF-8">\n'
        f"    <title>{title}</title>\n"
        "    <style>\n"
        "        body {\n"
        "            display: flex;\n"
        "            flex-direction: column;\n"
        "            align-items: center;\n"
        "            justify-content: center;\n"
        "            height: 100vh;\n"
        "            margin: 0;\n"
        "            font-family: sans-serif;\n"
        "        }\n"
        "        h1 {\n"
        "            font-size: 36px;\n"
        "            margin-bottom: 10px;\n"
        "        }\n"
        "        p {\n"
        "            font-size: 14px;\n"
        "        }\n"
        "    </style>\n"
        "</head>\n"
        "<body>\n"
        f"    <h1>{title}</h1>\n"
        "    <p>webserv</p>\n"
        "</body>\n"
        "</html>\n"
    )


def handle_parsing_error(error: HttpError, response: HttpResponse, server: Any) -> None:
    """Turn ``error`` into an error response that closes the connection.

    The server's configured error page is used when it can be read;
    otherwise a generated page is sent.
    """
    status = error.status
    print(
        f"{info_time()}{RED}HTTP Error: {int(status)} - {error.message}\n{RESET}",
        end="",
        file=sys.stderr,
    )
    response.status = status
    response.set_header("Connection", "close")
    try:
        full_path = server.root + server.error_page_by_code(int(status))
        contents = read_file(full_path)
    except Exception:
        response.set_header("Content-Type", "text/html")
        response.set_body(generate_error_page(status, reason_phrase(status)))
    else:
        response.set_header("Content-Type", get_mime_type(full_path))
        response.set_body(contents)