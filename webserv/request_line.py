"""Parsing and validating the request line of an HTTP request."""

from __future__ import annotations

import re
import string
from dataclasses import dataclass, field
from typing import Dict, NoReturn

from webserv.status import HTTP_VERSION, MAX_URI_LENGTH, HttpError, HttpStatusCode

ALLOWED_METHODS = frozenset({"GET", "POST", "DELETE"})
MIN_REQUEST_LINE_LENGTH = 14

_URI_PUNCTUATION = "-._~:/?#[]@!$&'()*+,;="
_URI_RE = re.compile(
    "(?:[" + re.escape(string.ascii_letters + string.digits + _URI_PUNCTUATION) + "]"
    "|%[0-9A-Fa-f]{2})*"
)
_BAD_ESCAPE_RE = re.compile(r"%(?=..)(?![0-9A-Fa-f]{2})", re.DOTALL)
_ESCAPE_RE = re.compile(rb"%([0-9A-Fa-f]{2})|\+")


def _unescape(match: "re.Match[bytes]") -> bytes:
    if match.group(1) is None:
        return b" "
    return bytes([int(match.group(1), 16)])


def url_decode(text: str) -> str:
    """Decode ``%XX`` escapes and ``+`` signs.

    A ``%`` followed by two characters that are not both hex digits makes
    the whole result empty; a ``%`` too close to the end is kept as is.
    """
    if _BAD_ESCAPE_RE.search(text):
        return ""
    raw = text.encode("utf-8", "surrogateescape")
    return _ESCAPE_RE.sub(_unescape, raw).decode("utf-8", "surrogateescape")


@dataclass
class RequestLine:
    """The first line of a request: method, target and protocol version."""

    raw: str = ""
    method: str = field(default="", init=False)
    uri: str = field(default="", init=False)
    version: str = field(default="", init=False)
    status_code: HttpStatusCode = field(default=HttpStatusCode.START, init=False)
    query_params: Dict[str, str] = field(default_factory=dict, init=False)

    def _fail(self, code: HttpStatusCode) -> NoReturn:
        self.status_code = code
        raise HttpError(code)

    def parse(self) -> None:
        """Split and validate the line; raise HttpError when it is rejected."""
        raw = self.raw
        if len(raw) < MIN_REQUEST_LINE_LENGTH:
            self._fail(HttpStatusCode.BAD_REQUEST)
        first = raw.find(" ")
        if first == -1:
            self._fail(HttpStatusCode.BAD_REQUEST)
        second = raw.find(" ", first + 1)
        if second == -1 or second == first + 1:
            self._fail(HttpStatusCode.BAD_REQUEST)

        self.method = raw[:first]
        self.uri = raw[first + 1:second]
        self.version = raw[second + 1:]

        self._validate_method()
        self._validate_uri()
        self._validate_version()

        query_pos = self.uri.find("?")
        if query_pos != -1:
            self._parse_query_string(self.uri[query_pos + 1:])
            self.uri = self.uri[:query_pos]
        self.status_code = HttpStatusCode.OK

    def _validate_method(self) -> None:
        if self.method not in ALLOWED_METHODS:
            self._fail(HttpStatusCode.METHOD_NOT_ALLOWED)

    def _validate_uri(self) -> None:
        uri = self.uri
        if not uri:
            self._fail(HttpStatusCode.BAD_REQUEST)
        if len(uri) > MAX_URI_LENGTH:
            self._fail(HttpStatusCode.URI_TOO_LONG)
        if not uri.startswith("/") or not _URI_RE.fullmatch(uri):
            self._fail(HttpStatusCode.BAD_REQUEST)

    def _validate_version(self) -> None:
        if self.version == HTTP_VERSION:
            self.status_code = HttpStatusCode.OK
            return
        if not self.version.startswith("HTTP/"):
            self._fail(HttpStatusCode.BAD_REQUEST)
        self._fail(HttpStatusCode.VERSION_NOT_SUPPORTED)

    def _parse_query_string(self, query: str) -> None:
        for pair in query.split("&"):
            key, sep, value = pair.partition("=")
            if sep:
                self.query_params[url_decode(key)] = url_decode(value)
            elif pair:
                self.query_params[url_decode(pair)] = ""

    def clear(self) -> None:
        """Forget the line and everything parsed from it."""
        self.raw = ""
        self.method = ""
        self.uri = ""
        self.version = ""
        self.status_code = HttpStatusCode.START
        self.query_params.clear()