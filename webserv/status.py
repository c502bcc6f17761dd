"""HTTP status codes and the exception that carries one."""

from __future__ import annotations

from enum import IntEnum


class HttpStatus(IntEnum):
    """Status codes the server produces."""

    OK = 200
    CREATED = 201
    NO_CONTENT = 204
    MOVED_PERMANENTLY = 301
    FOUND = 302
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    METHOD_NOT_ALLOWED = 405
    PAYLOAD_TOO_LARGE = 413
    INTERNAL_ERROR = 500
    NOT_IMPLEMENTED = 501
    GATEWAY_TIMEOUT = 504
    VERSION_NOT_SUPPORTED = 505


_REASONS = {
    HttpStatus.OK: "OK",
    HttpStatus.CREATED: "Created",
    HttpStatus.NO_CONTENT: "No Content",
    HttpStatus.MOVED_PERMANENTLY: "Moved Permanently",
    HttpStatus.FOUND: "Found",
    HttpStatus.BAD_REQUEST: "Bad Request",
    HttpStatus.UNAUTHORIZED: "Unauthorized",
    HttpStatus.FORBIDDEN: "Forbidden",
    HttpStatus.NOT_FOUND: "Not Found",
    HttpStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HttpStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HttpStatus.INTERNAL_ERROR: "Internal Server Error",
    HttpStatus.NOT_IMPLEMENTED: "Not Implemented",
    HttpStatus.VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
    HttpStatus.GATEWAY_TIMEOUT: "Gateway Timeout",
}


def reason_phrase(code: int) -> str:
    """Return the reason phrase for a status code, or "Unknown"."""
    try:
        return _REASONS[HttpStatus(int(code))]
    except ValueError:
        return "Unknown"


class HttpError(Exception):
    """An error that should be answered with the given HTTP status."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message

    def __str__(self) -> str:
        return self.message