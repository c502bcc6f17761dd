"""One connected client: reading requests off its socket and answering them."""

from __future__ import annotations

import copy
import socket
import time
from enum import Enum, auto
from typing import Optional

from webserv.cgi import apply_cgi_output, execute_cgi
from webserv.config import IpPort, Location, Server, default_server_for
from webserv.handlers import handle_get, handle_post
from webserv.request import HttpRequest
from webserv.response import HttpResponse
from webserv.session import SessionManager
from webserv.status import HttpError, HttpStatus
from webserv.utils import GREEN, RED, RESET, info_time

HEADER_END = b"\r\n\r\n"
CRLF = b"\r\n"
_HEX_DIGITS = b"0123456789abcdefABCDEF"


class ConnectionClosed(Exception):
    """The peer closed the connection."""


class ConnState(Enum):
    ACTIVE = auto()
    DISCONNECTED = auto()


class ConnType(Enum):
    CLOSE = auto()
    KEEP_ALIVE = auto()


class BodyMethod(Enum):
    CONTENT_LENGTH = auto()
    CHUNKED_ENCODING = auto()
    NO_BODY = auto()


class _ChunkState(Enum):
    READ_CHUNK_SIZE = auto()
    READ_CHUNK_DATA = auto()
    EXPECT_CRLF_AFTER_ZERO_CHUNK_SIZE = auto()
    DONE = auto()


def _bad_body() -> HttpError:
    return HttpError(HttpStatus.BAD_REQUEST, "Bad body format")


class ChunkedDecoder:
    """Incremental decoder for a chunked transfer-encoded request body."""

    def __init__(self) -> None:
        self.state = _ChunkState.READ_CHUNK_SIZE
        self.chunk_size = 0
        self._data = bytearray()

    def reset(self) -> None:
        self.state = _ChunkState.READ_CHUNK_SIZE
        self.chunk_size = 0
        self._data = bytearray()

    def feed(self, buffer: bytearray, max_size: int) -> Optional[bytes]:
        """Consume what can be decoded from ``buffer``.

        Returns the whole body once the terminating zero-size chunk has been
        read, or ``None`` when more input is needed.
        """
        while buffer and self.state is not _ChunkState.DONE:
            if self.state is _ChunkState.READ_CHUNK_SIZE:
                pos = buffer.find(CRLF)
                if pos == -1:
                    break
                if buffer == CRLF:
                    raise _bad_body()
                size_text = bytes(buffer[:pos])
                if not all(byte in _HEX_DIGITS for byte in size_text):
                    raise _bad_body()
                self.chunk_size = int(size_text, 16) if size_text else 0
                del buffer[:pos + len(CRLF)]
                self.state = (
                    _ChunkState.EXPECT_CRLF_AFTER_ZERO_CHUNK_SIZE
                    if self.chunk_size == 0
                    else _ChunkState.READ_CHUNK_DATA
                )
            elif self.state is _ChunkState.READ_CHUNK_DATA:
                size = self.chunk_size
                if len(buffer) < size + len(CRLF):
                    break
                self._data += buffer[:size]
                if buffer[size:size + len(CRLF)] != CRLF:
                    raise _bad_body()
                if len(self._data) > max_size:
                    raise HttpError(HttpStatus.PAYLOAD_TOO_LARGE, "Request Body Too Large")
                del buffer[:size + len(CRLF)]
                self.state = _ChunkState.READ_CHUNK_SIZE
            else:
                if buffer != CRLF:
                    raise _bad_body()
                del buffer[:len(CRLF)]
                self.state = _ChunkState.DONE

        if self.state is _ChunkState.DONE:
            body = bytes(self._data)
            self.reset()
            return body
        return None


def socket_ip_port(sock: socket.socket) -> IpPort:
    """Local address of ``sock`` as ``(ip, port)`` strings."""
    address = sock.getsockname()
    if isinstance(address, tuple) and len(address) >= 2:
        return str(address[0]), str(address[1])
    return "", ""


def _validate_method(method: str, allowed: list[str]) -> None:
    if method not in allowed:
        raise HttpError(HttpStatus.METHOD_NOT_ALLOWED, "Method not allowed")


class Client:
    """State of one client connection and the request it is sending."""

    def __init__(self, sock: socket.socket, start_time: float) -> None:
        self.sock = sock
        self.start_time = start_time
        self.conn_state = ConnState.ACTIVE
        self.conn_type = ConnType.KEEP_ALIVE
        self.request = HttpRequest()
        self.response = HttpResponse()
        self.server = Server()
        self.location = Location()
        self.buffer = bytearray()
        self.body_method = BodyMethod.CONTENT_LENGTH
        self.content_length = 0
        self.location_path = ""
        self.session_id = ""
        self.session_data = ""
        self._decoder = ChunkedDecoder()
        self._first_time_reading_body = True

    def fileno(self) -> int:
        return self.sock.fileno()

    def _touch(self) -> None:
        self.start_time = time.time()

    def read_from_socket(self, buffer_size: int) -> int:
        """Append up to ``buffer_size`` bytes to the buffer.

        Returns the number of bytes read, 0 when none are available yet.
        Raises ``ConnectionClosed`` when the peer has closed the connection.
        """
        try:
            data = self.sock.recv(buffer_size)
        except (BlockingIOError, InterruptedError):
            print(
                f"{info_time()}RECV_AGAIN: No data available yet, "
                "will try again next iteration."
            )
            return 0
        except OSError as exc:
            raise ConnectionClosed(str(exc)) from exc
        if not data:
            raise ConnectionClosed("peer closed the connection")
        self.buffer.extend(data)
        return len(data)

    def read_request_header(self, buffer_size: int) -> Optional[str]:
        """Read until the blank line ending the header; ``None`` if incomplete.

        Whatever follows the header stays in the buffer.
        """
        while True:
            if self.read_from_socket(buffer_size) == 0:
                return None
            self._touch()
            found = self.buffer.find(HEADER_END)
            if found != -1:
                break
        header = bytes(self.buffer[:found]).decode("latin-1")
        del self.buffer[:found + len(HEADER_END)]
        return header

    def read_by_content_length(self, buffer_size: int, max_size: int) -> Optional[bytes]:
        """Read a body of ``Content-Length`` bytes; ``None`` if incomplete."""
        length_text = self.request.header("Content-Length")
        self.content_length = int(length_text) if length_text else 0
        if self.content_length > max_size:
            raise HttpError(HttpStatus.PAYLOAD_TOO_LARGE, "Request Body Too Large")

        while len(self.buffer) < self.content_length:
            if self.read_from_socket(buffer_size) == 0:
                return None
            self._touch()

        body = bytes(self.buffer[:self.content_length])
        del self.buffer[:self.content_length]
        return body

    def read_by_chunked_encoding(self, buffer_size: int, max_size: int) -> Optional[bytes]:
        """Read a chunked body; ``None`` if incomplete."""
        while True:
            use_buffered = self._first_time_reading_body and bool(self.buffer)
            self._first_time_reading_body = False
            if not use_buffered:
                if self.read_from_socket(buffer_size) == 0:
                    return None
                self._touch()
            body = self._decoder.feed(self.buffer, max_size)
            if body is not None:
                self._first_time_reading_body = True
                return body

    def read_request_body(self, buffer_size: int, max_size: int) -> Optional[bytes]:
        """Read the body in the way the headers announce; ``None`` if incomplete."""
        if self.body_method is BodyMethod.CONTENT_LENGTH:
            return self.read_by_content_length(buffer_size, max_size)
        if self.body_method is BodyMethod.CHUNKED_ENCODING:
            return self.read_by_chunked_encoding(buffer_size, max_size)
        return b""

    def assign_server_by_name(
        self,
        servers: dict[IpPort, list[Server]],
        ip_port: IpPort,
        default_server: Server,
    ) -> None:
        """Pick the server block whose name matches the Host header."""
        server_name = self.request.header("Host").split(":", 1)[0]
        for candidate in servers.get(tuple(ip_port), []):
            if candidate.server_name == server_name:
                self.server = copy.deepcopy(candidate)
                return
        self.server = copy.deepcopy(default_server)

    def receive_request(self, servers: dict[IpPort, list[Server]]) -> bool:
        """Read the request; True once it is complete, False to wait for more."""
        ip_port = socket_ip_port(self.sock)
        default_server = default_server_for(ip_port, servers)

        if not self.request.header_parsed:
            header = self.read_request_header(default_server.client_header_buffer_size)
            if header is None:
                return False
            self.request.parse_request_line(header)
            self.request.parse_header_lines(header)
            self.assign_server_by_name(servers, ip_port, default_server)
            self.location = self.server.match_location(self.request.uri)
            _validate_method(self.request.method, self.location.allow_methods)

        if self.request.has_header("Content-Length"):
            self.body_method = BodyMethod.CONTENT_LENGTH
        elif self.request.has_header("Transfer-Encoding"):
            self.body_method = BodyMethod.CHUNKED_ENCODING
        else:
            self.body_method = BodyMethod.NO_BODY

        if self.body_method is not BodyMethod.NO_BODY:
            body = self.read_request_body(
                default_server.client_body_buffer_size, default_server.client_max_size
            )
            if body is None:
                return False
            self.request.body = body

        print(f"{info_time()}Request received from client.")
        return True

    def _dispatch_cgi(self, sessions: SessionManager) -> None:
        output = execute_cgi(self.request, sessions.get_data(self.request.session_id))
        if not output:
            raise HttpError(HttpStatus.INTERNAL_ERROR, "CGI script execution failed")
        apply_cgi_output(output, self.response)
        update = self.response.header("X-Session-Update")
        if update:
            sessions.set_session(self.session_id, update)
        if self.response.header("X-Session-Delete") == "yes":
            sessions.clear_session(self.session_id)
        outcome = (
            f"{GREEN}SUCCESS{RESET}"
            if self.response.status == HttpStatus.OK
            else f"{RED}FAIL{RESET}"
        )
        print(f"{info_time()}CGI EXECUTE: [ {outcome} ]\n")

    def dispatch_request(self, sessions: SessionManager) -> None:
        """Build the response for the received request."""
        if self.request.header("Connection") == "close":
            self.response.set_header("Connection", "close")
            self.conn_type = ConnType.CLOSE
        else:
            self.response.set_header("Connection", "keep-alive")

        if self.location.return_path:
            status_code, target = min(self.location.return_path.items())
            if status_code in (HttpStatus.MOVED_PERMANENTLY, HttpStatus.FOUND):
                self.response.status = HttpStatus(status_code)
                self.response.set_header("Location", target)
                self.response.set_body("")
            elif status_code == HttpStatus.OK:
                self.response.status = HttpStatus.OK
                self.response.set_header("Content-Type", "text/plain")
                self.response.set_body(target)
        elif self.location.cgi_path:
            self._dispatch_cgi(sessions)
        elif self.request.method == "GET":
            handle_get(self.response, self.location, self.location_path, self.request.uri)
        elif self.request.method == "POST":
            handle_post(
                self.response, self.request, self.location_path, self.location.allow_upload
            )
        elif self.request.method == "DELETE":
            raise HttpError(HttpStatus.METHOD_NOT_ALLOWED, "Delete without CGI not allowed")

    def send_response(self) -> None:
        """Send the response; a failed send marks the client disconnected."""
        try:
            self.sock.sendall(self.response.to_bytes())
        except OSError:
            print(
                f"{RED}Error sending response to Socket {self.fileno()}, "
                f"closed connection.{RESET}"
            )
            self.conn_state = ConnState.DISCONNECTED
            return
        print(f"{info_time()}Response sent to client.")
        print(self.response.format_log(), end="")

    def reset(self) -> None:
        """Prepare for the next request on the same connection."""
        self.buffer.clear()
        self.request.clear()
        self.response.clear()
        self.location = Location()
        self.server = Server()

    def __str__(self) -> str:
        return (
            "\nClient: \n"
            f"fd    : {self.fileno()}\n"
            f"buffer: {bytes(self.buffer).decode('latin-1')}\n"
        )