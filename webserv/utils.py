"""Small helpers shared across the server: paths, MIME types, log prefixes."""

from __future__ import annotations

import os
import stat
import time

from webserv.status import HttpError, HttpStatus

RESET = "\033[0m"
BOLD = "\033[1m"
CYAN = "\033[36m"
GREEN = "\033[32m"
RED = "\033[31m"
GREY = "\033[90m"
BLUE = "\033[34m"
YELLOW = "\033[33m"
MAGENTA = "\033[35m"
WHITE = "\033[37m"
ORANGE = "\033[0;38;5;166m"

_DIGITS = frozenset("0123456789")

_MIME_TYPES = {
    "html": "text/html",
    "htm": "text/html",
    "css": "text/css",
    "js": "application/javascript",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "txt": "text/plain",
    "json": "text/plain",
    "cgi": "text/plain",
    "py": "text/plain",
}
_DEFAULT_MIME = "application/octet-stream"


def is_digits_only(text: str) -> bool:
    """True when every character is an ASCII digit (an empty string qualifies)."""
    return all(ch in _DIGITS for ch in text)


def get_full_path(file: str) -> str:
    """Prefix the current working directory to ``file`` verbatim."""
    return os.getcwd() + file


def info_time() -> str:
    """Coloured ``[ HH:MM:SS ]`` prefix for log lines."""
    return f"{BOLD}{CYAN}[ {time.strftime('%H:%M:%S')} ] {RESET}"


def to_title_case(text: str) -> str:
    """Capitalise each dash-separated word, lowering the rest."""
    result = []
    capitalize_next = True
    for ch in text:
        if ch == "-":
            result.append(ch)
            capitalize_next = True
        elif capitalize_next:
            result.append(ch.upper())
            capitalize_next = False
        else:
            result.append(ch.lower())
    return "".join(result)


def get_mime_type(path: str) -> str:
    """Guess a content type from the text after the last dot of ``path``."""
    dot = path.rfind(".")
    if dot == -1:
        return _DEFAULT_MIME
    return _MIME_TYPES.get(path[dot + 1:], _DEFAULT_MIME)


def read_file(filepath: str) -> bytes:
    """Read a regular file whole; raise ``HttpError(NOT_FOUND)`` otherwise."""
    try:
        info = os.stat(filepath)
    except OSError:
        info = None
    if info is None or not stat.S_ISREG(info.st_mode):
        raise HttpError(HttpStatus.NOT_FOUND, "File does not exist or is not regular")
    try:
        with open(filepath, "rb") as handle:
            return handle.read()
    except OSError as exc:
        raise HttpError(HttpStatus.NOT_FOUND, "File cannot be open") from exc