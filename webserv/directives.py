"""Low-level parsing and validation of configuration-file directives."""

from __future__ import annotations

import re
from enum import Enum, auto

_SPACE = " \t\n\r\f\v"
_WORD = re.compile(r"[^ \t\n\r\f\v]+")
_INT = re.compile(r"[+-]?[0-9]+")
_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1
_TIME_MIN = -(2**63)
_TIME_MAX = 2**63 - 1
_VALID_METHODS = frozenset({"GET", "POST", "DELETE", "PUT"})


class ConfigError(Exception):
    """The configuration file is malformed."""


class Directive(Enum):
    LISTEN = auto()
    SERVERNAME = auto()
    ROOT = auto()
    ALLOWED_METHOD = auto()
    CLIENT_MAX_BODY_SIZE = auto()
    CLIENT_BODY_BUFFER_SIZE = auto()
    CLIENT_HEADER_BUFFER_SIZE = auto()
    CLIENT_TIMEOUT = auto()
    ERROR_PAGE = auto()
    LOCATION = auto()
    LOCATION_PATH = auto()
    INDEX = auto()
    ALIAS = auto()
    RETURN_PATH = auto()
    AUTO_INDEX = auto()
    ALLOW_UPLOAD = auto()
    CGI_PATH = auto()
    UNKNOWN = auto()


_KEYWORDS = {
    "listen": Directive.LISTEN,
    "server_name": Directive.SERVERNAME,
    "root": Directive.ROOT,
    "allowed_method": Directive.ALLOWED_METHOD,
    "client_max_body_size": Directive.CLIENT_MAX_BODY_SIZE,
    "client_body_buffer_size": Directive.CLIENT_BODY_BUFFER_SIZE,
    "client_header_buffer_size": Directive.CLIENT_HEADER_BUFFER_SIZE,
    "client_timeout": Directive.CLIENT_TIMEOUT,
    "error_page": Directive.ERROR_PAGE,
    "location": Directive.LOCATION,
    "location_path": Directive.LOCATION_PATH,
    "index": Directive.INDEX,
    "alias": Directive.ALIAS,
    "return": Directive.RETURN_PATH,
    "autoindex": Directive.AUTO_INDEX,
    "allow_upload": Directive.ALLOW_UPLOAD,
    "cgi_path": Directive.CGI_PATH,
}

_ON_OFF_DIRECTIVES = frozenset(
    {Directive.AUTO_INDEX, Directive.ALLOW_UPLOAD, Directive.CGI_PATH}
)


class _Scanner:
    """Reads whitespace-separated words and integers from a line."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def _skip_space(self) -> None:
        while self._pos < len(self._text) and self._text[self._pos] in _SPACE:
            self._pos += 1

    def word(self) -> str | None:
        self._skip_space()
        match = _WORD.match(self._text, self._pos)
        if match is None:
            return None
        self._pos = match.end()
        return match.group()

    def integer(self) -> int | None:
        self._skip_space()
        match = _INT.match(self._text, self._pos)
        if match is None:
            return None
        self._pos = match.end()
        value = int(match.group())
        return value if _INT_MIN <= value <= _INT_MAX else None

    def rest(self) -> str:
        text = self._text[self._pos:]
        self._pos = len(self._text)
        return text


def trim(text: str) -> str:
    """Strip leading and trailing whitespace."""
    return text.strip(_SPACE)


def strip_comment(line: str) -> str:
    """The part of ``line`` before the first ``#``."""
    return line.split("#", 1)[0]


def extract_location_value(line: str) -> str:
    """The path of a ``location <path> {`` line, or ``""`` when there is none."""
    words = _WORD.findall(line)
    return words[1] if len(words) > 1 else ""


def directive_value(line: str) -> str:
    """Text between the first space and the first ``;`` of a directive line."""
    space = line.find(" ")
    start = space + 1
    semicolon = line.find(";")
    if semicolon == -1 or semicolon < start:
        return line[start:]
    return line[start:semicolon]


def check_methods(allow_method: str) -> list[str]:
    """Validate and return the methods listed in an ``allowed_method`` value."""
    methods = []
    for method in _WORD.findall(allow_method):
        if method.endswith(";"):
            method = method[:-1]
        if not method or not method[0].isupper():
            raise ConfigError("allowed_method must be uppercase")
        if method not in _VALID_METHODS:
            raise ConfigError("Invalid allowed method in configuration")
        methods.append(method)
    return methods


def check_port(port: str) -> str:
    """Validate a port number given as text, returning it unchanged."""
    if not port:
        raise ConfigError("port is empty")
    if not port.isascii() or not port.isdigit():
        raise ConfigError("port is not a number")
    if not 1 <= int(port) <= 65535:
        raise ConfigError("port number is out of range (1-65535)")
    return port


def convert_and_check_timeout(number: str) -> int:
    """Parse a non-negative client timeout in seconds."""
    if not number:
        raise ConfigError("client timeout is empty")
    if not number.isascii() or not number.isdigit():
        raise ConfigError("client timeout is not a number")
    value = int(number)
    if not _TIME_MIN <= value <= _TIME_MAX:
        raise ConfigError("client timeout exceed numeric limit")
    return value


def convert_and_check_number(number: str) -> int:
    """Parse a non-negative number that must fit in a 32-bit signed integer."""
    if not number:
        raise ConfigError("this is empty")
    if not number.isascii() or not number.isdigit():
        raise ConfigError("this is not a number")
    value = int(number)
    if not _INT_MIN <= value <= _INT_MAX:
        raise ConfigError("this had exceed numeric limit")
    return value


def get_key(line: str) -> Directive:
    """The directive named by the first word of ``line``."""
    match = _WORD.search(line)
    if match is None:
        return Directive.UNKNOWN
    return _KEYWORDS.get(match.group(), Directive.UNKNOWN)


def _check_return(scanner: _Scanner, line: str) -> None:
    if scanner.integer() is None:
        raise ConfigError(f"missing status code in return directive: [{line}]")
    value = trim(scanner.rest())
    if not value:
        raise ConfigError(f"missing value in return directive: [{line}]")
    if value[0] == '"':
        if value[-1] != '"':
            raise ConfigError(f"missing closing quote in return directive: [{line}]")
        if value.find('"', 1) != len(value) - 1 or len(value) == 1:
            raise ConfigError(f"extra value found in return directive: [{line}]")
    elif len(_WORD.findall(value)) > 1:
        raise ConfigError(f"extra value found in unquoted return directive: [{line}]")


def check_valid_directive(line: str, directive_type: Directive) -> None:
    """Check the shape of a directive line, raising ``ConfigError`` if it is wrong."""
    rest = line.split(";", 1)[0]
    if not rest:
        raise ConfigError(f"invalid directive: [{line}]")
    scanner = _Scanner(rest)
    key = get_key(scanner.word() or "")

    if key is Directive.ERROR_PAGE:
        if scanner.integer() is None or scanner.word() is None:
            raise ConfigError(
                f"missing error code or file path in error_page directive: [{line}]"
            )
        if scanner.word() is not None:
            raise ConfigError(f"extra value found in error_page directive: [{line}]")
        return
    if key is Directive.RETURN_PATH:
        _check_return(scanner, line)
        return
    if key is Directive.ALLOWED_METHOD:
        if scanner.word() is None:
            raise ConfigError(
                f"missing allowed method in allowed_method directive: [{line}]"
            )
        return
    if key in _ON_OFF_DIRECTIVES:
        value = scanner.word()
        if value is None:
            raise ConfigError(f"missing directive value: [{line}]")
        if value not in ("on", "off"):
            raise ConfigError(
                f"invalid directive value, must be 'on' or 'off': [{line}]"
            )
        return
    if key is Directive.LOCATION:
        if scanner.word() is None:
            raise ConfigError(f"missing location path in location directive: [{line}]")
        if scanner.word() != "{":
            raise ConfigError(f"invalid location directive: [{line}]")
        return
    if key is directive_type:
        if scanner.word() is None:
            raise ConfigError(f"missing directive value: [{line}]")
        if scanner.word() is not None:
            raise ConfigError(f"extra value found in directive: [{line}]")
        return
    raise ConfigError(f"unknown directive: [{line}]")