import string

import pytest

from webserv.response import HttpResponse
from webserv.session import (
    SessionManager,
    build_set_cookie_header,
    default_manager,
    generate_session_id,
    session_id_from_cookie,
)


class _Request:
    def __init__(self, headers=None):
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.session_id = ""

    def header(self, name):
        return self.headers.get(name.lower(), "")


class _Client:
    def __init__(self, headers=None):
        self.request = _Request(headers)
        self.response = HttpResponse()
        self.session_id = ""
        self.session_data = ""


def test_generate_session_id_shape():
    ident = generate_session_id()
    assert len(ident) == 32
    assert set(ident) <= set(string.ascii_letters + string.digits)
    assert generate_session_id() != ident


@pytest.mark.parametrize(
    "cookie, expected",
    [
        ("session_id=abc123", "abc123"),
        ("theme=dark; session_id=abc123; lang=en", "abc123"),
        ("theme=dark", ""),
        ("", ""),
    ],
)
def test_session_id_from_cookie(cookie, expected):
    assert session_id_from_cookie(cookie) == expected


def test_cookie_round_trip():
    ident = generate_session_id()
    header = build_set_cookie_header(ident)
    assert header.endswith("; Path=/; HttpOnly")
    assert session_id_from_cookie(header) == ident


def test_set_and_get_session():
    manager = SessionManager()
    manager.set_session("s1", "data")
    assert manager.exists("s1")
    assert manager.get_data("s1") == "data"


def test_get_data_registers_unknown_id():
    manager = SessionManager()
    assert not manager.exists("ghost")
    assert manager.get_data("ghost") == ""
    assert manager.exists("ghost")


def test_clear_session_keeps_key():
    manager = SessionManager()
    manager.set_session("s1", "data")
    manager.clear_session("s1")
    assert manager.exists("s1")
    assert manager.get_data("s1") == ""


def test_handle_session_creates_new_session():
    manager = SessionManager()
    client = _Client()
    manager.handle_session(client)
    assert len(client.session_id) == 32
    assert client.request.session_id == client.session_id
    assert client.session_data == "default"
    assert manager.exists(client.session_id)
    cookie = client.response.header("Set-Cookie")
    assert cookie == build_set_cookie_header(client.session_id)


def test_handle_session_reuses_known_session():
    manager = SessionManager()
    manager.set_session("known", "stored")
    client = _Client({"Cookie": "session_id=known"})
    manager.handle_session(client)
    assert client.session_id == "known"
    assert client.session_data == "stored"
    assert client.request.session_id == "known"
    assert client.response.header("Set-Cookie") == ""


def test_handle_session_replaces_unknown_cookie():
    manager = SessionManager()
    client = _Client({"Cookie": "session_id=stale"})
    manager.handle_session(client)
    assert client.session_id != "stale"
    assert not manager.exists("stale")
    assert client.response.header("Set-Cookie").startswith("session_id=")


def test_default_manager_is_shared():
    default_manager().set_session("shared-session", "shared-value")
    assert default_manager().get_data("shared-session") == "shared-value"
    default_manager().clear_session("shared-session")
    assert default_manager().get_data("shared-session") == ""