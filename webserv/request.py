"""Assembling an HTTP request from the bytes a connection delivers."""

from __future__ import annotations

import logging
import re
import time
from typing import Optional

from webserv.request_body import DEFAULT_UPLOAD_DIR, PathLike, RequestBody
from webserv.request_headers import RequestHeaders
from webserv.request_line import RequestLine
from webserv.status import (
    CRLF,
    END_HEADER,
    TIMEOUT_SECONDS,
    HttpError,
    HttpStatusCode,
    RequestState,
)

log = logging.getLogger(__name__)

_CRLF = CRLF.encode()
_END_HEADER = END_HEADER.encode()
_CONTENT_LENGTH_RE = re.compile(r"[ \t\n\r\f\v]*([+-]?)([0-9]+)")
_ULLONG_MAX = 2**64 - 1
_BODYLESS_METHODS = ("GET", "DELETE")


def is_multipart(content_type: str) -> bool:
    """Return whether a Content-Type value names multipart form data."""
    media, sep, _ = content_type.partition(";")
    return bool(sep) and media == "multipart/form-data"


def _is_chunked(transfer_encoding: str) -> bool:
    pos = transfer_encoding.rfind("chunked")
    if pos == -1:
        return False
    return all(c in " ,\t\r\n" for c in transfer_encoding[pos + len("chunked"):])


def _parse_content_length(text: str) -> Optional[int]:
    match = _CONTENT_LENGTH_RE.fullmatch(text)
    if match is None:
        return None
    value = int(match.group(2))
    if value > _ULLONG_MAX:
        return _ULLONG_MAX
    if match.group(1) == "-":
        value = (-value) % (_ULLONG_MAX + 1)
    return value


class Request:
    """One HTTP request, parsed step by step as its bytes arrive.

    Parse failures do not raise: they leave the request in the ERROR
    state with ``status_code`` saying why, so a response can be sent.
    """

    def __init__(
        self,
        fd: int = -1,
        temp_dir: Optional[PathLike] = None,
        upload_dir: PathLike = DEFAULT_UPLOAD_DIR,
    ) -> None:
        self.fd = fd
        self.line = RequestLine("")
        self.headers = RequestHeaders("")
        self.body = RequestBody(temp_dir=temp_dir, upload_dir=upload_dir)
        self.state = RequestState.BEGIN
        self.status_code = HttpStatusCode.START
        self.last_activity = time.time()
        self._buffer = bytearray()

    def __enter__(self) -> "Request":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.body.cleanup()

    def set_status(self, code: int) -> None:
        """Record a status; anything but OK or START marks the request failed."""
        self.status_code = HttpStatusCode(code)
        if self.status_code not in (HttpStatusCode.OK, HttpStatusCode.START):
            self.state = RequestState.ERROR
        elif self.status_code == HttpStatusCode.OK:
            self.state = RequestState.COMPLETE

    def _fail(self, code: int) -> bool:
        self.set_status(code)
        return False

    def is_done(self) -> bool:
        """Return whether the request is complete or has failed."""
        return self.state in (RequestState.COMPLETE, RequestState.ERROR)

    def timed_out(self, now: Optional[float] = None) -> bool:
        """Return whether the request has been idle for too long."""
        if now is None:
            now = time.time()
        if now - self.last_activity > TIMEOUT_SECONDS:
            log.info("Timeout detected for fd %d", self.fd)
            return True
        return False

    def clear(self) -> None:
        """Reset the request so the connection can carry another one."""
        self.line.clear()
        self.headers.clear()
        self.body.clear()
        self.state = RequestState.BEGIN
        self._buffer.clear()
        self.status_code = HttpStatusCode.START

    def append(self, data: bytes) -> RequestState:
        """Feed received bytes and parse as far as they allow."""
        self._buffer += data
        progress = True
        while progress and not self.is_done():
            self.last_activity = time.time()
            if self.state == RequestState.BEGIN:
                progress = bool(self._buffer)
                if progress:
                    self.state = RequestState.LINE
            elif self.state == RequestState.LINE:
                progress = self._line_section()
            elif self.state == RequestState.HEADERS:
                progress = self._header_section()
            elif self.state == RequestState.BODY:
                progress = self._body_section()
            else:
                progress = False
        return self.state

    def _line_section(self) -> bool:
        pos = self._buffer.find(_CRLF)
        if pos == -1:
            return False
        self.line = RequestLine(self._buffer[:pos].decode("latin-1"))
        log.debug("Request line: %s", self.line.raw)
        try:
            self.line.parse()
        except HttpError as exc:
            return self._fail(exc.status)
        del self._buffer[:pos + len(_CRLF)]
        self.state = RequestState.HEADERS
        return True

    def _header_section(self) -> bool:
        end = self._buffer.find(_END_HEADER)
        if end == -1:
            return False
        raw = self._buffer[:end + len(_CRLF)].decode("latin-1")
        if not raw:
            return self._fail(HttpStatusCode.BAD_REQUEST)
        self.headers = RequestHeaders(raw)
        try:
            self.headers.parse()
        except HttpError as exc:
            return self._fail(exc.status)
        del self._buffer[:end + len(_END_HEADER)]

        if not self._process_body_headers() or not self._validate_body_compatibility():
            return False
        if self.body.expected:
            self.state = RequestState.BODY
        return True

    def _process_body_headers(self) -> bool:
        content_type = self.headers.get("content-type")
        if content_type:
            self.body.content_type = content_type
        if is_multipart(content_type):
            self.body.multipart = True
            self.body.extract_boundary(content_type)

        content_length = self.headers.get("content-length")
        transfer_encoding = self.headers.get("transfer-encoding")

        if transfer_encoding:
            self.body.chunked = _is_chunked(transfer_encoding)
            if self.body.chunked:
                return True
            return self._fail(HttpStatusCode.BAD_REQUEST)
        if content_length:
            return self._process_content_length(content_length)
        method = self.line.method
        if method == "POST":
            return self._fail(HttpStatusCode.LENGTH_REQUIRED)
        if method in _BODYLESS_METHODS:
            self.set_status(HttpStatusCode.OK)
        return True

    def _process_content_length(self, text: str) -> bool:
        length = _parse_content_length(text)
        if length is None:
            return self._fail(HttpStatusCode.BAD_REQUEST)
        if length == 0 and self.line.method in _BODYLESS_METHODS:
            self.set_status(HttpStatusCode.OK)
            return True
        self.body.content_length = length
        return True

    def _validate_body_compatibility(self) -> bool:
        method = self.line.method
        has_body = self.body.content_length > 0 or self.body.chunked
        if not has_body and method == "POST":
            return self._fail(HttpStatusCode.LENGTH_REQUIRED)
        if not has_body and method in _BODYLESS_METHODS:
            self.set_status(HttpStatusCode.OK)
            return True
        if has_body:
            log.debug(
                "Body expected for %s: chunked=%s, length=%d",
                method, self.body.chunked, self.body.content_length,
            )
            self.body.expected = True
        return True

    def _body_section(self) -> bool:
        if not self.body.expected and self._buffer:
            return self._fail(HttpStatusCode.BAD_REQUEST)
        if self._buffer:
            try:
                accepted = self.body.receive(bytes(self._buffer))
            except HttpError as exc:
                return self._fail(exc.status)
            if not accepted:
                return self._fail(self.body.status_code)
            self._buffer.clear()
        if self.body.completed:
            self.set_status(HttpStatusCode.OK)
            return True
        return False