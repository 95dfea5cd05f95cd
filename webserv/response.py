"""HTTP response heads and responses that serve a file."""

from __future__ import annotations

import logging
import os
import stat
import time
from email.utils import formatdate
from types import MappingProxyType
from typing import Dict, Mapping, Optional

log = logging.getLogger(__name__)

REDIRECT_TEMP_PATH = "/tmp/webserv_redirect.html"

STATUS_MESSAGES: Dict[int, str] = {
    200: "OK",
    201: "Created",
    202: "Accepted",
    204: "No Content",
    206: "Partial Content",
    300: "Multiple Choices",
    301: "Moved Permanently",
    302: "Found",
    303: "See Other",
    304: "Not Modified",
    307: "Temporary Redirect",
    308: "Permanent Redirect",
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    406: "Not Acceptable",
    408: "Request Timeout",
    409: "Conflict",
    411: "Length Required",
    413: "Request Entity Too Large",
    414: "URI Too Long",
    415: "Unsupported Media Type",
    422: "Unprocessable Entity",
    429: "Too Many Requests",
    431: "Request Header Fields Too Large",
    500: "Internal Server Error",
    501: "Not Implemented",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
    505: "HTTP Version Not Supported",
}

_NO_BODY_CODES = (204, 304)


def status_message(code: int) -> str:
    """Return the reason phrase for a status code."""
    return STATUS_MESSAGES.get(code, "Unknown")


class Response:
    """A response: status, headers and the path of the file sent as body."""

    def __init__(self, status_code: int = 200) -> None:
        self._status_code = status_code
        self._status_message = status_message(status_code)
        self._headers: Dict[str, str] = {}
        self._file_path = ""
        self._file_size = 0
        self._cached = ""
        self._built = False
        self._add_default_headers()

    def _add_default_headers(self) -> None:
        self._headers["Server"] = "WebServ/1.0"
        self._headers["Date"] = ""

    def _invalidate(self) -> None:
        self._built = False

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def status_message(self) -> str:
        return self._status_message

    @property
    def headers(self) -> Mapping[str, str]:
        return MappingProxyType(self._headers)

    @property
    def file_path(self) -> str:
        return self._file_path

    @file_path.setter
    def file_path(self, path: str) -> None:
        self._file_path = path
        self._invalidate()

    @property
    def file_size(self) -> int:
        return self._file_size

    @file_size.setter
    def file_size(self, size: int) -> None:
        self._file_size = size
        log.debug("file size is %d", size)
        self._invalidate()

    def set_status(self, code: int) -> None:
        self._status_code = code
        self._status_message = status_message(code)
        self._invalidate()

    def add_header(self, key: str, value: str) -> None:
        self._headers[key] = value
        self._invalidate()

    def set_file_body(self, path: str) -> None:
        """Send ``path`` as the body, taking its size when it can be read."""
        self.file_path = path
        try:
            self.file_size = os.stat(path).st_size
        except OSError:
            pass
        self._invalidate()

    def set_content_type(self, content_type: str) -> None:
        self.add_header("Content-Type", content_type)

    def build(self, now: Optional[float] = None) -> str:
        """Return the status line and headers, filling in missing defaults."""
        if self._built and self._cached:
            return self._cached
        if not self._headers.get("Date"):
            stamp = time.time() if now is None else now
            self._headers["Date"] = formatdate(stamp, usegmt=True)
        self._headers.setdefault("Server", "WebServ/1.1")
        if self._status_code not in _NO_BODY_CODES:
            self._headers.setdefault("Content-Length", str(self._file_size))
            if self._file_path:
                self._headers.setdefault("Content-Type", "text/plain")
        lines = [f"HTTP/1.1 {self._status_code} {self._status_message}\r\n"]
        lines.extend(f"{key}: {value}\r\n" for key, value in sorted(self._headers.items()))
        lines.append("\r\n")
        self._cached = "".join(lines)
        self._built = True
        return self._cached

    def clear(self) -> None:
        """Return to a plain 200 response with default headers."""
        self._status_code = 200
        self._status_message = "OK"
        self._headers.clear()
        self._file_path = ""
        self._built = False
        self._cached = ""
        self._add_default_headers()


def redirect_response(
    status_code: int, location: str, temp_path: str = REDIRECT_TEMP_PATH
) -> Response:
    """Build a redirect whose body is a small HTML page written to ``temp_path``."""
    response = Response(status_code)
    response.add_header("Location", location)
    response.set_content_type("text/html")
    page = (
        "<html><head><title>Redirect</title></head><body>"
        '<h1>Redirect</h1><p>The document has moved <a href="'
        f'{location}">here</a>.</p></body></html>'
    )
    try:
        with open(temp_path, "w", encoding="utf-8") as out:
            out.write(page)
    except OSError:
        log.error("cannot write redirect page %s", temp_path)
    response.set_file_body(temp_path)
    return response


def serve_file(file_path: str, mime_type: str, status_code: int = 200) -> Response:
    """Build a response sending a regular file, or a bare 404 if there is none."""
    try:
        info = os.stat(file_path)
    except OSError:
        return Response(404)
    if not stat.S_ISREG(info.st_mode):
        return Response(404)
    response = Response(status_code)
    response.file_path = file_path
    response.set_content_type(mime_type)
    response.file_size = info.st_size
    response.add_header("Connection", "close")
    return response