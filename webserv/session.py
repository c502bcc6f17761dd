"""In-memory session store keyed by a ``session_id`` cookie."""

from __future__ import annotations

import secrets
import string
from typing import Any

_ALPHANUM = string.ascii_lowercase + string.ascii_uppercase + string.digits
_SESSION_ID_LENGTH = 32
_COOKIE_KEY = "session_id="
_DEFAULT_DATA = "default"


def generate_session_id() -> str:
    """Random 32-character alphanumeric identifier."""
    return "".join(secrets.choice(_ALPHANUM) for _ in range(_SESSION_ID_LENGTH))


def session_id_from_cookie(cookie_header: str) -> str:
    """Extract the ``session_id`` value from a Cookie header, or ``""``."""
    start = cookie_header.find(_COOKIE_KEY)
    if start == -1:
        return ""
    start += len(_COOKIE_KEY)
    end = cookie_header.find(";", start)
    return cookie_header[start:] if end == -1 else cookie_header[start:end]


def build_set_cookie_header(session_id: str) -> str:
    return f"{_COOKIE_KEY}{session_id}; Path=/; HttpOnly"


class SessionManager:
    """Maps session identifiers to their stored data."""

    def __init__(self) -> None:
        self._sessions: dict[str, str] = {}

    def exists(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get_data(self, session_id: str) -> str:
        """Data for a session; an unknown id is registered with empty data."""
        return self._sessions.setdefault(session_id, "")

    def set_session(self, session_id: str, data: str) -> None:
        self._sessions[session_id] = data

    def clear_session(self, session_id: str) -> None:
        """Empty a session's data while keeping the session itself."""
        self._sessions[session_id] = ""

    def handle_session(self, client: Any) -> None:
        """Attach the client's session, creating one and a cookie if needed."""
        session_id = session_id_from_cookie(client.request.header("Cookie"))
        if not self.exists(session_id):
            session_id = generate_session_id()
            client.response.set_header("Set-Cookie", build_set_cookie_header(session_id))
            self._sessions[session_id] = _DEFAULT_DATA
        client.session_id = session_id
        client.session_data = self.get_data(session_id)
        client.request.session_id = session_id


_DEFAULT_MANAGER = SessionManager()


def default_manager() -> SessionManager:
    """The process-wide session manager."""
    return _DEFAULT_MANAGER