"""The listening sockets, the event loop and per-client timeouts."""

from __future__ import annotations

import os
import re
import selectors
import signal
import socket
import time
from typing import Optional

from webserv.client import Client, ConnectionClosed, ConnState, ConnType, socket_ip_port
from webserv.config import IpPort, Server, default_server_for
from webserv.response import handle_parsing_error
from webserv.session import default_manager
from webserv.status import HttpError
from webserv.utils import CYAN, GREEN, GREY, RED, RESET, get_full_path, info_time

_LISTENER = object()
_WAKER = object()
_MULTIPLE_SLASHES = re.compile(r"/+")
_BACKLOG = 10


def trim_multiple_slash(path: str) -> str:
    """Collapse every run of slashes in ``path`` into a single slash."""
    return _MULTIPLE_SLASHES.sub("/", path)


def _set_path_under(base: str, uri: str, client: Client) -> None:
    relative = trim_multiple_slash(uri[len(client.location.path):])
    if client.server.root:
        client.location_path = client.server.root + base + relative
    else:
        client.location_path = get_full_path(base + relative)


def resolve_location_path(uri: str, client: Client) -> None:
    """Work out the file-system path the request URI refers to.

    The location's alias, else its root, replaces the location prefix;
    without either the URI is taken under the server root (or the
    working directory) with a trailing slash.
    """
    location = client.server.match_location(uri)
    if location.alias:
        _set_path_under(location.alias, uri, client)
    elif location.root:
        _set_path_under(location.root, uri, client)
    elif client.server.root:
        client.location_path = client.server.root + uri + "/"
    else:
        client.location_path = get_full_path(uri + "/")


def _listener_socket(host: str, port: str) -> socket.socket:
    try:
        candidates = socket.getaddrinfo(
            host or None, port, socket.AF_UNSPEC, socket.SOCK_STREAM, 0, socket.AI_PASSIVE
        )
    except socket.gaierror as exc:
        raise RuntimeError(f"getaddrinfo: {exc}") from exc

    for family, sock_type, proto, _, address in candidates:
        try:
            sock = socket.socket(family, sock_type, proto)
        except OSError:
            continue
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind(address)
            sock.listen(_BACKLOG)
        except OSError:
            sock.close()
            continue
        return sock
    raise RuntimeError("error getting listening socket")


class WebServer:
    """Accepts clients on every configured address and serves their requests."""

    def __init__(self, servers: dict[IpPort, list[Server]]) -> None:
        self.servers = servers
        self.listeners: list[socket.socket] = []
        self.clients: dict[int, Client] = {}
        self.sessions = default_manager()
        self.running = True
        self._closed = False
        self._selector = selectors.DefaultSelector()
        self._wake_reader, self._wake_writer = socket.socketpair()
        self._wake_reader.setblocking(False)
        self._wake_writer.setblocking(False)
        self._selector.register(self._wake_reader, selectors.EVENT_READ, _WAKER)

    def setup_listeners(self) -> None:
        """Open one listening socket per distinct ``(host, port)``."""
        for group in self.servers.values():
            server = group[0]
            sock = _listener_socket(server.host, server.port)
            sock.setblocking(False)
            self._selector.register(sock, selectors.EVENT_READ, _LISTENER)
            self.listeners.append(sock)
            print(
                f"{info_time()}Listener socket fd: {sock.fileno()} binded to "
                f"{server.host}:{server.port}"
            )

    def accept_client(self, listener: socket.socket) -> Client:
        """Accept a pending connection on ``listener`` and start tracking it."""
        print(f"{info_time()}POLLIN: socket {listener.fileno()}")
        sock, address = listener.accept()
        sock.setblocking(False)
        client = Client(sock, time.time())
        self.clients[sock.fileno()] = client
        self._selector.register(sock, selectors.EVENT_READ, client)
        peer = address[0] if isinstance(address, tuple) else address
        print(f"{info_time()}{GREEN}New client from {peer} on socket {sock.fileno()}{RESET}")
        return client

    def disconnect_client(self, client: Client) -> None:
        """Stop watching ``client``, close its socket and forget it."""
        fd = next((fd for fd, known in self.clients.items() if known is client), None)
        print(f"{RED}{info_time()}{RED}Disconnected client socket {fd}\n{RESET}", end="")
        try:
            self._selector.unregister(client.sock)
        except (KeyError, ValueError):
            pass
        client.sock.close()
        if fd is not None:
            del self.clients[fd]

    def _watch(self, client: Client, events: int) -> None:
        self._selector.modify(client.sock, events, client)

    def handle_poll_in(self, client: Client) -> None:
        """Read from a readable client and, once a request is whole, answer it."""
        print(f"{info_time()}{GREY}POLLIN: socket {client.fileno()}{RESET}")
        try:
            try:
                complete = client.receive_request(self.servers)
            except ConnectionClosed:
                print(f"{info_time()}server: socket {client.fileno()} hung up")
                client.conn_state = ConnState.DISCONNECTED
                return
            if not complete:
                return
            resolve_location_path(client.request.uri, client)
            self.sessions.handle_session(client)
            print(client.request.format_log(), end="")
            client.dispatch_request(self.sessions)
        except HttpError as error:
            handle_parsing_error(error, client.response, client.server)
            client.conn_type = ConnType.CLOSE
        self._watch(client, selectors.EVENT_WRITE)

    def handle_poll_out(self, client: Client) -> None:
        """Send the pending response, then wait for the next request or close."""
        print(f"{info_time()}{GREY}POLLOUT: socket {client.fileno()}{RESET}")
        client.send_response()
        client.reset()
        if client.conn_type is ConnType.CLOSE:
            client.conn_state = ConnState.DISCONNECTED
            return
        if client.conn_state is ConnState.ACTIVE:
            self._watch(client, selectors.EVENT_READ)

    def _client_timeout(self, client: Client) -> float:
        return default_server_for(socket_ip_port(client.sock), self.servers).client_timeout

    def nearest_timeout(self, now: float) -> Optional[float]:
        """Seconds until the first client times out, ``None`` with no clients."""
        if not self.clients:
            return None
        return min(
            self._client_timeout(client) - (now - client.start_time)
            for client in self.clients.values()
        )

    def disconnect_timed_out(self, now: float) -> None:
        """Disconnect every client idle for at least its server's timeout."""
        for client in list(self.clients.values()):
            if now - client.start_time >= self._client_timeout(client):
                print(f"{info_time()}server: TIMEOUT for client socket {client.fileno()}")
                self.disconnect_client(client)

    def _clear_disconnected(self) -> None:
        for client in list(self.clients.values()):
            if client.conn_state is ConnState.DISCONNECTED:
                self.disconnect_client(client)

    def _drain_waker(self) -> None:
        try:
            while self._wake_reader.recv(64):
                pass
        except (BlockingIOError, InterruptedError):
            pass

    def _handle_event(self, key: selectors.SelectorKey, mask: int) -> None:
        if key.data is _WAKER:
            self._drain_waker()
            return
        if key.data is _LISTENER:
            if mask & selectors.EVENT_READ:
                self.accept_client(key.fileobj)
            return
        client = key.data
        if self.clients.get(key.fd) is not client:
            return
        if mask & selectors.EVENT_READ:
            self.handle_poll_in(client)
        elif mask & selectors.EVENT_WRITE:
            self.handle_poll_out(client)

    def run(self) -> None:
        """Serve until :meth:`stop` is called, then close every socket."""
        try:
            while self.running:
                print(f"{CYAN}\n+++++++ Waiting for POLL event ++++++++{RESET}\n")
                timeout = self.nearest_timeout(time.time())
                if timeout is not None:
                    timeout = max(timeout, 0.0)
                events = self._selector.select(timeout)
                if not self.running:
                    break
                self.disconnect_timed_out(time.time())
                for key, mask in events:
                    self._handle_event(key, mask)
                self._clear_disconnected()
        finally:
            self.close_all()

    def stop(self) -> None:
        """Ask the event loop to finish; safe to call from a signal handler."""
        self.running = False
        try:
            self._wake_writer.send(b"\0")
        except OSError:
            pass

    def close_all(self) -> None:
        """Close listeners, clients and the selector."""
        if self._closed:
            return
        self._closed = True
        print(f"{GREY}\nClosing all sockets.\n{RESET}", end="")
        for sock in self.listeners:
            sock.close()
        for client in self.clients.values():
            client.sock.close()
        self.listeners.clear()
        self.clients.clear()
        self._selector.close()
        self._wake_reader.close()
        self._wake_writer.close()


def install_signal_handlers(server: WebServer) -> None:
    """Make SIGINT and SIGTERM stop ``server`` gracefully."""

    def _handler(signum: int, frame: object) -> None:
        if signum in (signal.SIGINT, signal.SIGTERM):
            server.stop()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


__all__ = [
    "WebServer",
    "trim_multiple_slash",
    "resolve_location_path",
    "install_signal_handlers",
]

_ = os