"""Parsing and validating the header section of an HTTP request."""

from __future__ import annotations

import re
from typing import Dict, List, NoReturn

from webserv.status import MAX_HEADER, MAX_LINE_LENGTH, HttpError, HttpStatusCode

MULTI_VALUE_HEADERS = frozenset({"set-cookie", "warning"})
UNIQUE_HEADERS = frozenset({"host", "content-length", "content-type"})

_NAME_RE = re.compile(r"[A-Za-z][A-Za-z0-9\-_.!#$%&'*+`^|]*")


def _is_valid_value(value: str) -> bool:
    return all(c == "\t" or 32 <= ord(c) < 127 for c in value)


class RequestHeaders:
    """Header fields of a request, stored under lower-case names."""

    def __init__(self, raw: str = "") -> None:
        self.raw = raw
        self.host_name = ""
        self.host_port = 0
        self.status_code = HttpStatusCode.START
        self.headers: Dict[str, str] = {}
        self._multi: Dict[str, List[str]] = {}
        self._has_host = False

    def _fail(self, code: HttpStatusCode) -> NoReturn:
        self.status_code = code
        raise HttpError(code)

    def parse(self) -> None:
        """Parse every CRLF-terminated line; raise HttpError when rejected."""
        lines = self.raw.split("\n")
        if lines[-1] == "":
            lines.pop()
        count = 0
        for line in lines:
            if len(line) > MAX_LINE_LENGTH:
                self._fail(HttpStatusCode.HEADER_FIELDS_TOO_LARGE)
            if line.startswith((" ", "\t")):
                self._fail(HttpStatusCode.BAD_REQUEST)
            line = line[:-1]
            if not line or line == "\r":
                self._fail(HttpStatusCode.BAD_REQUEST)
            colon = line.find(":")
            if colon == -1:
                self._fail(HttpStatusCode.BAD_REQUEST)
            count += 1
            if count > MAX_HEADER:
                self._fail(HttpStatusCode.BAD_REQUEST)
            self._store(line, colon)
        if not self._has_host:
            self._fail(HttpStatusCode.BAD_REQUEST)
        self.status_code = HttpStatusCode.OK

    def _store(self, line: str, colon: int) -> None:
        name = line[:colon].strip(" \t")
        value = line[colon + 1:].strip(" \t")
        if not _NAME_RE.fullmatch(name) or not _is_valid_value(value):
            self._fail(HttpStatusCode.BAD_REQUEST)

        key = name.lower()
        if key in MULTI_VALUE_HEADERS:
            self._multi.setdefault(key, []).append(value)
        elif key in self.headers:
            if key in UNIQUE_HEADERS:
                self._fail(HttpStatusCode.BAD_REQUEST)
            self.headers[key] += ", " + value
        else:
            self.headers[key] = value

        if key == "host":
            self._parse_host(value)
            self._has_host = True

    def _parse_host(self, value: str) -> None:
        if not value or " " in value:
            self._fail(HttpStatusCode.BAD_REQUEST)
        name, colon, port = value.partition(":")
        self.host_port = 0
        self.host_name = name
        if colon:
            if not port or not all(c in "0123456789" for c in port):
                self._fail(HttpStatusCode.BAD_REQUEST)
            self.host_port = int(port)

    def clear(self) -> None:
        """Forget every header."""
        self.raw = ""
        self.headers.clear()
        self._multi.clear()
        self._has_host = False
        self.host_name = ""
        self.host_port = 0
        self.status_code = HttpStatusCode.START

    def has_header(self, name: str) -> bool:
        """Return whether a single-valued header of that name was sent."""
        return name.lower() in self.headers

    def get(self, name: str) -> str:
        """Return the header's value, or an empty string if it is absent."""
        return self.headers.get(name.lower(), "")

    def get_multi(self, name: str) -> List[str]:
        """Return every value sent for a repeatable header such as Set-Cookie."""
        return list(self._multi.get(name.lower(), ()))