"""Running CGI scripts and turning their output into a response."""

from __future__ import annotations

import re
import subprocess
from typing import Any, Union

from webserv.response import HttpResponse
from webserv.status import HttpError, HttpStatus
from webserv.utils import get_full_path

CgiOutput = Union[str, bytes]

DEFAULT_TIMEOUT = 5
_SCRIPT_EXTENSIONS = (".cgi", ".py", ".js")
_BODY_METHODS = frozenset({"POST", "DELETE"})
_LEADING_INT = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)")


def build_cgi_env(request: Any, session_data: str) -> dict[str, str]:
    """The environment handed to a CGI script for ``request``."""
    return {
        "REQUEST_METHOD": request.method,
        "QUERY_STRING": request.query_string,
        "CONTENT_TYPE": request.header("Content-Type"),
        "CONTENT_LENGTH": request.header("Content-Length"),
        "REQUEST_URI": request.uri,
        "SCRIPT_NAME": request.uri,
        "SCRIPT_FILENAME": get_full_path(request.uri),
        "HTTP_VERSION": request.version,
        "SESSION_DATA": session_data,
    }


def execute_cgi(request: Any, session_data: str, timeout: float = DEFAULT_TIMEOUT) -> bytes:
    """Run the script named by the request URI and return its output.

    An empty result means the script could not be run, failed, or wrote
    nothing.  A script that runs past ``timeout`` seconds is killed and
    reported as a gateway timeout.
    """
    env = build_cgi_env(request, session_data)
    script_path = env["SCRIPT_FILENAME"]
    if not any(ext in script_path for ext in _SCRIPT_EXTENSIONS):
        raise HttpError(
            HttpStatus.FORBIDDEN, "CGI script must have .cgi, .py or .js extension"
        )
    try:
        with open(script_path, "rb"):
            pass
    except OSError as exc:
        raise HttpError(HttpStatus.FORBIDDEN, "CGI script not found") from exc

    slash = script_path.rfind("/")
    script_dir = script_path[:slash] if slash != -1 else script_path
    stdin_data = request.body if request.method in _BODY_METHODS else b""
    if isinstance(stdin_data, str):
        stdin_data = stdin_data.encode("utf-8")

    try:
        completed = subprocess.run(
            [script_path],
            input=stdin_data,
            stdout=subprocess.PIPE,
            env=env,
            cwd=script_dir,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        raise HttpError(
            HttpStatus.GATEWAY_TIMEOUT, "CGI script execution timed out"
        ) from exc
    except OSError:
        return b""

    if completed.returncode != 0 or not completed.stdout:
        return b""
    return completed.stdout


def _lines(data: bytes) -> list[bytes]:
    pieces = data.split(b"\n")
    if pieces[-1] == b"":
        pieces.pop()
    return [piece[:-1] if piece.endswith(b"\r") else piece for piece in pieces]


def parse_cgi_output(output: CgiOutput) -> tuple[dict[str, str], bytes]:
    """Split CGI output into its header fields and its body.

    Headers run up to the first blank line; lines without a colon are
    ignored.  Body lines are rejoined with bare newlines.
    """
    data = output.encode("utf-8") if isinstance(output, str) else bytes(output)
    lines = iter(_lines(data))
    headers: dict[str, str] = {}
    for line in lines:
        if not line:
            break
        key, colon, value = line.partition(b":")
        if colon:
            headers[key.decode("latin-1")] = value.lstrip(b" ").decode("latin-1")
    body = b"".join(line + b"\n" for line in lines)
    return headers, body


def _atoi(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def apply_cgi_output(output: CgiOutput, response: HttpResponse) -> None:
    """Fill ``response`` from CGI output; a ``Status`` header sets the code."""
    headers, body = parse_cgi_output(output)
    for name, value in sorted(headers.items()):
        if name == "Status" and value:
            code = _atoi(value)
            try:
                response.status = HttpStatus(code)
            except ValueError:
                response.status = code
        response.set_header(name, value)
    response.set_body(body)