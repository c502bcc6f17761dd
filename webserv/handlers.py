"""GET and POST handling for static files, directory listings and uploads."""

from __future__ import annotations

import html
import os
import stat
from typing import Any, Union

from webserv.response import HttpResponse
from webserv.status import HttpError, HttpStatus
from webserv.utils import get_mime_type, read_file

Data = Union[str, bytes]


def _as_bytes(data: Data) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


def resolve_index(location_path: str, location: Any) -> str:
    """Append the location's index file when ``location_path`` is a directory."""
    if location.index and os.path.isdir(location_path):
        return f"{location_path}/{location.index}"
    return location_path


def directory_listing(directory_path: str, uri: str) -> str:
    """HTML index page of a directory, or ``""`` when it cannot be read."""
    try:
        with os.scandir(directory_path) as entries:
            names = sorted(
                (entry.name, entry.is_dir(follow_symlinks=False)) for entry in entries
            )
    except OSError:
        return ""
    base = uri if uri.endswith("/") else uri + "/"
    items = [("..", True), *names]
    parts = [
        f"<html><head><title>Index of {uri}</title></head><body>",
        f"<h1>Index of {uri}</h1><hr><ul>",
    ]
    for name, is_dir in items:
        slash = "/" if is_dir else ""
        parts.append(f'<li><a href="{base}{name}{slash}">{name}{slash}</a></li>')
    parts.append("</ul><hr></body></html>")
    return "".join(parts)


def handle_get(response: HttpResponse, location: Any, location_path: str, uri: str) -> None:
    """Serve a file, or a listing of a directory, at ``location_path``."""
    full_path = resolve_index(location_path, location)
    try:
        info = os.stat(full_path)
    except OSError as exc:
        raise HttpError(HttpStatus.NOT_FOUND, "Path is not a file or directory") from exc

    if stat.S_ISDIR(info.st_mode):
        response.status = HttpStatus.OK
        response.set_header("Content-Type", "text/html")
        response.set_body(directory_listing(full_path, uri))
    elif stat.S_ISREG(info.st_mode):
        contents = read_file(full_path)
        response.set_header("Content-Type", get_mime_type(full_path))
        response.set_body(contents)


def validate_upload_path(path: str, upload_allowed: bool) -> None:
    """Raise ``HttpError(FORBIDDEN)`` unless uploads may be written to ``path``."""
    if not upload_allowed:
        raise HttpError(HttpStatus.FORBIDDEN, "File upload not allowed in this location")
    try:
        info = os.stat(path)
    except OSError as exc:
        raise HttpError(HttpStatus.FORBIDDEN, "Upload path does not exist") from exc
    if not stat.S_ISDIR(info.st_mode):
        raise HttpError(HttpStatus.FORBIDDEN, "Upload path is not a directory")
    if not os.access(path, os.W_OK):
        raise HttpError(HttpStatus.FORBIDDEN, "Upload path is not writable")


def extract_multipart_parts(body: Data, boundary: Data) -> list[bytes]:
    """Non-empty segments of ``body`` that are followed by ``boundary``."""
    data = _as_bytes(body)
    marker = _as_bytes(boundary)
    segments = data.split(marker)[:-1]
    return [segment for segment in segments if segment]


def extract_filename(part: Data) -> str:
    """The quoted ``filename=`` value of a part's Content-Disposition, or ``""``."""
    data = _as_bytes(part)
    disposition = data.find(b"Content-Disposition:")
    if disposition == -1:
        return ""
    filename_pos = data.find(b"filename=", disposition)
    if filename_pos == -1:
        return ""
    name_start = data.find(b'"', filename_pos)
    if name_start == -1:
        return ""
    name_end = data.find(b'"', name_start + 1)
    if name_end == -1:
        return ""
    return data[name_start + 1:name_end].decode("utf-8", errors="replace")


def extract_file_content(part: Data) -> bytes:
    """Everything after the blank line that ends a part's headers."""
    data = _as_bytes(part)
    head, sep, content = data.partition(b"\r\n\r\n")
    return content if sep else b""


def save_uploaded_file(location_path: str, filename: str, content: bytes) -> str:
    """Write ``content`` to ``location_path + filename`` and return that path."""
    path = location_path + filename
    try:
        with open(path, "wb") as handle:
            handle.write(content)
    except OSError as exc:
        raise HttpError(HttpStatus.INTERNAL_ERROR, "Failed to create file") from exc
    return path


def handle_post(
    response: HttpResponse, request: Any, location_path: str, allow_upload: bool
) -> None:
    """Store every file of a multipart/form-data body under ``location_path``."""
    content_type = request.header("Content-Type")
    if "multipart/form-data" not in content_type:
        raise HttpError(HttpStatus.BAD_REQUEST, "Expected multipart/form-data")
    pos = content_type.find("boundary=")
    if pos == -1:
        raise HttpError(HttpStatus.BAD_REQUEST, "Missing boundary in Content-Type")

    validate_upload_path(location_path, allow_upload)

    boundary = "--" + content_type[pos + len("boundary="):]
    first = True
    for part in extract_multipart_parts(request.body, boundary):
        filename = extract_filename(part)
        if not filename:
            continue
        content = extract_file_content(part)
        if not content:
            continue
        output_path = save_uploaded_file(location_path, filename, content)
        if first:
            response.status = HttpStatus.CREATED
            response.set_body(
                f"File uploaded successfully to: {request.uri}/{filename}"
            )
            first = False
        else:
            response.append_to_body(", " + output_path)
    response.append_to_body("\r\n")
    response.set_header("Content-Type", "text/plain")


__all__ = [
    "resolve_index",
    "directory_listing",
    "handle_get",
    "validate_upload_path",
    "extract_multipart_parts",
    "extract_filename",
    "extract_file_content",
    "save_uploaded_file",
    "handle_post",
]

# ``html`` is kept available for callers that escape listing names themselves.
_ = html