"""Server and location blocks read from the configuration file."""

from __future__ import annotations

import copy
import itertools
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from webserv.directives import (
    ConfigError,
    Directive,
    check_methods,
    check_port,
    check_valid_directive,
    convert_and_check_number,
    convert_and_check_timeout,
    directive_value,
    extract_location_value,
    get_key,
    strip_comment,
    trim,
)
from webserv.status import HttpError, HttpStatus

IpPort = tuple[str, str]

_LOCATION_DIRECTIVES = frozenset(
    {
        Directive.AUTO_INDEX,
        Directive.INDEX,
        Directive.ROOT,
        Directive.ALIAS,
        Directive.ALLOWED_METHOD,
        Directive.RETURN_PATH,
        Directive.CGI_PATH,
        Directive.ALLOW_UPLOAD,
    }
)

_SERVER_DIRECTIVES = frozenset(
    {
        Directive.LISTEN,
        Directive.SERVERNAME,
        Directive.ROOT,
        Directive.ALLOWED_METHOD,
        Directive.CLIENT_MAX_BODY_SIZE,
        Directive.CLIENT_BODY_BUFFER_SIZE,
        Directive.CLIENT_HEADER_BUFFER_SIZE,
        Directive.CLIENT_TIMEOUT,
        Directive.ERROR_PAGE,
        Directive.LOCATION,
    }
)


def _clean_lines(lines: Iterator[str]) -> Iterator[str]:
    """Non-empty lines with comments and surrounding whitespace removed."""
    for raw in lines:
        line = trim(strip_comment(raw))
        if line:
            yield line


@dataclass
class Location:
    """One ``location <path> { ... }`` block."""

    path: str = ""
    index: str = ""
    root: str = ""
    alias: str = ""
    allow_methods: list[str] = field(default_factory=list)
    return_path: dict[int, str] = field(default_factory=dict)
    autoindex: bool = False
    cgi_path: bool = False
    allow_upload: bool = False

    @classmethod
    def from_lines(
        cls, lines: Iterable[str], loc_name: str, default_methods: Iterable[str]
    ) -> Location:
        """Read a location block up to its closing brace.

        ``loc_name`` is the ``location <path> {`` line; ``lines`` is consumed
        only as far as the closing ``}``.
        """
        location = cls(
            path=extract_location_value(loc_name), allow_methods=list(default_methods)
        )
        for line in _clean_lines(iter(lines)):
            if line == "}":
                break
            key = get_key(line)
            if key not in _LOCATION_DIRECTIVES:
                raise ConfigError(f"Unknown directive in location block: [{line}]")
            check_valid_directive(line, key)
            value = directive_value(line)
            if key is Directive.AUTO_INDEX:
                location.autoindex = location.autoindex or value == "on"
            elif key is Directive.INDEX:
                location.index = value
            elif key is Directive.ROOT:
                location.root = value
            elif key is Directive.ALIAS:
                location.alias = value
            elif key is Directive.ALLOWED_METHOD:
                location.allow_methods = check_methods(value)
            elif key is Directive.RETURN_PATH:
                code_text, space, target = value.partition(" ")
                if space:
                    code = convert_and_check_number(code_text)
                    target = trim(target)
                    if target.startswith('"') and target.endswith('"'):
                        target = target[1:-1]
                    location.return_path[code] = target
            elif key is Directive.CGI_PATH:
                location.cgi_path = location.cgi_path or value == "on"
            elif key is Directive.ALLOW_UPLOAD:
                location.allow_upload = location.allow_upload or value == "on"
        return location

    def clear(self) -> None:
        self.path = ""
        self.index = ""
        self.root = ""
        self.alias = ""
        self.allow_methods = []
        self.return_path = {}
        self.autoindex = False
        self.cgi_path = False
        self.allow_upload = False


@dataclass
class Server:
    """One ``server { ... }`` block."""

    port: str = ""
    host: str = ""
    server_name: str = ""
    root: str = ""
    allow_methods: list[str] = field(default_factory=list)
    client_max_size: int = 0
    client_body_buffer_size: int = 0
    client_header_buffer_size: int = 0
    client_timeout: int = 0
    error_pages: dict[int, str] = field(default_factory=dict)
    locations: dict[str, Location] = field(default_factory=dict)

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> Server:
        """Read a server block, including its location blocks."""
        source = iter(lines)
        try:
            first = next(source)
        except StopIteration:
            raise ConfigError("server file is empty") from None
        stream = itertools.chain([first], source)

        server = cls()
        for line in _clean_lines(stream):
            if line in ("{", "server {"):
                continue
            if line == "}":
                break
            key = get_key(line)
            if key not in _SERVER_DIRECTIVES:
                raise ConfigError(f"Unknown directive in server configuration: [{line}]")
            check_valid_directive(line, key)
            if key is Directive.LOCATION:
                location = Location.from_lines(stream, line, server.allow_methods)
                server.locations[location.path] = location
                continue
            server._apply(key, directive_value(line))
        return server

    def _apply(self, key: Directive, value: str) -> None:
        if key is Directive.LISTEN:
            host, colon, port = value.partition(":")
            if colon:
                self.host = host
                self.port = check_port(port)
            else:
                self.port = check_port(value)
        elif key is Directive.SERVERNAME:
            self.server_name = value
        elif key is Directive.ROOT:
            self.root = value
        elif key is Directive.ALLOWED_METHOD:
            self.allow_methods = check_methods(value)
        elif key is Directive.CLIENT_MAX_BODY_SIZE:
            self.client_max_size = convert_and_check_number(value)
        elif key is Directive.CLIENT_BODY_BUFFER_SIZE:
            self.client_body_buffer_size = convert_and_check_number(value)
        elif key is Directive.CLIENT_HEADER_BUFFER_SIZE:
            self.client_header_buffer_size = convert_and_check_number(value)
        elif key is Directive.CLIENT_TIMEOUT:
            self.client_timeout = convert_and_check_timeout(value)
        elif key is Directive.ERROR_PAGE:
            code_text, space, page = value.partition(" ")
            if space:
                self.error_pages[convert_and_check_number(code_text)] = trim(page)

    def error_page_by_code(self, code: int) -> str:
        """Path of the configured error page for ``code``; ``KeyError`` if none."""
        try:
            return self.error_pages[int(code)]
        except KeyError:
            raise KeyError(f"error page not found: {code}") from None

    def match_location(self, path: str) -> Location:
        """A copy of the location whose path is the longest prefix of ``path``."""
        if not path.startswith("/"):
            raise HttpError(HttpStatus.BAD_REQUEST, "Invalid request path")
        if path in self.locations:
            return copy.deepcopy(self.locations[path])
        best = max(
            (loc for loc in self.locations if path.startswith(loc)),
            key=len,
            default="",
        )
        if best:
            return copy.deepcopy(self.locations[best])
        if "/" in self.locations:
            return copy.deepcopy(self.locations["/"])
        raise HttpError(HttpStatus.NOT_FOUND, f"No matching location for URI: {path}")

    def clear(self) -> None:
        self.port = ""
        self.host = ""
        self.server_name = ""
        self.root = ""
        self.allow_methods = []
        self.client_max_size = 0
        self.client_body_buffer_size = 0
        self.client_header_buffer_size = 0
        self.client_timeout = 0
        self.error_pages = {}
        self.locations = {}


def _server_blocks(lines: Iterator[str]) -> Iterator[list[str]]:
    """Raw lines of each ``server ... {`` block, brace-balanced."""
    for line in lines:
        if "server" not in line or "{" not in line:
            continue
        block = [line]
        depth = 1
        for inner in lines:
            if depth == 0:
                break
            if "{" in inner:
                depth += 1
            if "}" in inner:
                depth -= 1
            block.append(inner)
            if depth == 0:
                break
        yield block


def parse_all_servers(filename: str) -> dict[IpPort, list[Server]]:
    """Parse a configuration file into servers grouped by ``(host, port)``."""
    try:
        with open(filename, encoding="utf-8") as handle:
            text = handle.read()
    except OSError as exc:
        raise ConfigError("all server: failed to open configuration file") from exc

    grouped: dict[IpPort, list[Server]] = {}
    for block in _server_blocks(iter(text.splitlines())):
        server = Server.from_lines(block)
        grouped.setdefault((server.host, server.port), []).append(server)
    return dict(sorted(grouped.items()))


def default_server_for(ip_port: IpPort, servers: dict[IpPort, list[Server]]) -> Server:
    """The default server for a local address: wildcard or exact match, else the first."""
    if not servers:
        raise LookupError("no servers configured")
    _, port = ip_port
    for (host, server_port), group in servers.items():
        if host == "0.0.0.0" and server_port == port:
            return group[0]
        if (host, server_port) == tuple(ip_port):
            return group[0]
    return next(iter(servers.values()))[0]


def format_server(server: Server) -> str:
    """Readable dump of a server block and its locations."""
    out: list[str] = []
    if server.port:
        out.append(f"port           : [{server.port}]\n")
    if server.host:
        out.append(f"host           : [{server.host}]\n")
    if server.server_name:
        out.append(f"server_name    : [{server.server_name}]\n\n")
    if server.root:
        out.append(f"root_directory : [{server.root}]\n\n")
    if server.client_max_size:
        out.append(f"client_max_size          : [{server.client_max_size}]\n")
    if server.client_body_buffer_size:
        out.append(f"client_body_buffer_size  : [{server.client_body_buffer_size}]\n")
    if server.client_header_buffer_size:
        out.append(f"client_header_buffer_size: [{server.client_header_buffer_size}]\n")
    if server.client_timeout:
        out.append(f"client_timeout: [{server.client_timeout}]\n\n")
    for code, page in sorted(server.error_pages.items()):
        out.append(f"error_log      : [{code}] [{page}]\n")
    out.append("\n")
    if server.allow_methods:
        methods = "".join(f"[{m}]" for m in server.allow_methods)
        out.append(f"allow_methods  : {methods}\n\n")

    for _, loc in sorted(server.locations.items()):
        if loc.path:
            out.append(f"location        : [{loc.path}]\n")
        if loc.index:
            out.append(f"index           : [{loc.index}]\n")
        if loc.root:
            out.append(f"root_directory  : [{loc.root}]\n")
        if loc.alias:
            out.append(f"alias_directory : [{loc.alias}]\n")
        if loc.allow_methods:
            methods = "".join(f"[{m}]" for m in loc.allow_methods)
            out.append(f"allow_methods   : {methods}\n")
        if loc.return_path:
            returns = "".join(
                f"[{code}] [{target}]" for code, target in sorted(loc.return_path.items())
            )
            out.append(f"return_path     : {returns}\n")
        if loc.autoindex:
            out.append("list_directory  : [on]\n")
        if loc.cgi_path:
            out.append("cgi_path        : [on]\n")
        if loc.allow_upload:
            out.append("allow_upload    : [on]\n")
        out.append("\n")
    return "".join(out)