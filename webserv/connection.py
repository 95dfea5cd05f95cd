"""Client connections and looking up the configuration that applies to them."""

from __future__ import annotations

import logging
import re
import selectors
import socket
import time
from enum import IntEnum
from typing import BinaryIO, List, Optional, Sequence

from webserv.directives import (
    AutoIndex,
    ClientMaxBodySize,
    Directive,
    DirectiveType,
    ErrorPage,
    Http,
    Index,
    LimitExcept,
    Listen,
    Location,
    Return,
    Root,
    Server,
    ServerName,
)
from webserv.request import Request
from webserv.response import Response
from webserv.status import RequestState

log = logging.getLogger(__name__)

_ULLONG_MAX = 2**64 - 1
_UINT_MASK = 2**32 - 1
_LEADING_NUMBER_RE = re.compile(r"[ \t\n\r\f\v]*([+-]?)([0-9]*)")


def _leading_unsigned(text: str) -> int:
    """Read the leading number of ``text`` as an unsigned 32-bit value."""
    match = _LEADING_NUMBER_RE.match(text)
    digits = match.group(2) if match else ""
    if not digits:
        return 0
    value = min(int(digits), _ULLONG_MAX)
    if match.group(1) == "-":
        value = (-value) % (_ULLONG_MAX + 1)
    return value & _UINT_MASK


class SendState(IntEnum):
    """How far a response has got on its way to the client."""

    NOT_STARTED = 0
    HEADERS_SENT = 1
    SENDING_BODY = 2
    DONE = 3


class Connection:
    """One client connection and the request it is carrying."""

    def __init__(self, fd: int = -1, sock: Optional[socket.socket] = None) -> None:
        self.sock = sock
        self.fd = sock.fileno() if sock is not None and fd == -1 else fd
        self.res = Response()
        self.uri = ""
        self.req: Optional[Request] = None
        self.conserver: Optional[Server] = None
        self.keep_alive = False
        self.last_activity = time.time()
        self.closed = False
        self.file: Optional[BinaryIO] = None
        self.send_state = SendState.NOT_STARTED
        self.send_offset = 0

    def touch(self) -> None:
        """Record activity on the connection now."""
        self.last_activity = time.time()

    def find_server(self, http: Http) -> bool:
        """Pick the server block for the request's Host header.

        Returns True on a match by server name or port; otherwise the first
        server becomes the default and False is returned.
        """
        req = self.req
        if req is None or req.state < RequestState.HEADERS:
            return False
        if not req.headers.has_header("host"):
            return False

        port = req.headers.host_port
        hostname = req.headers.host_name
        servers = http.find_all(DirectiveType.SERVER)
        if not servers:
            return False

        for server in servers:
            for directive in server.directives:
                if isinstance(directive, ServerName):
                    if hostname in directive.names:
                        self.conserver = server
                        return True
                elif isinstance(directive, Listen):
                    if directive.port == port:
                        self.conserver = server
                        return True
        if self.conserver is None:
            self.conserver = servers[0]
        return False

    def get_directive(self, kind: DirectiveType) -> Optional[Directive]:
        """Return the first directive of ``kind`` in the chosen server block."""
        if self.conserver is None:
            return None
        return self.conserver.get_directive(kind)

    def _in_location(self, kind: DirectiveType) -> Optional[Directive]:
        location = self.location()
        return None if location is None else location.get_directive(kind)

    def _request_uri(self) -> str:
        if self.req is not None and self.req.line.uri:
            return self.req.line.uri
        return self.uri

    def location(self) -> Optional[Location]:
        """Return the location block matching the request URI.

        An exact-match location wins at once; otherwise the longest
        prefix match is chosen.
        """
        if self.conserver is None:
            return None
        uri = self._request_uri()
        if not uri:
            return None

        best: Optional[Location] = None
        best_len = 0
        for candidate in self.conserver.find_all(DirectiveType.LOCATION):
            assert isinstance(candidate, Location)
            loc_uri = candidate.uri
            if not loc_uri:
                continue
            log.debug(
                "location check: uri=%r location=%r exact=%s",
                uri, loc_uri, candidate.exact_match,
            )
            if candidate.exact_match:
                if uri == loc_uri:
                    return candidate
            elif uri.startswith(loc_uri) and len(loc_uri) > best_len:
                best_len = len(loc_uri)
                best = candidate
        if best is None:
            log.debug("no location matches %r", uri)
        return best

    def limit_except(self) -> Optional[LimitExcept]:
        """Return the location's limit_except directive, if any."""
        found = self._in_location(DirectiveType.LIMIT_EXCEPT)
        return found if isinstance(found, LimitExcept) else None

    def client_max_body_size(self) -> Optional[ClientMaxBodySize]:
        """Return the body size limit, looking at the server before the location."""
        found = self.get_directive(DirectiveType.CLIENT_MAX_BODY_SIZE)
        if found is None:
            found = self._in_location(DirectiveType.CLIENT_MAX_BODY_SIZE)
        return found if isinstance(found, ClientMaxBodySize) else None

    def check_max_body_size(self) -> bool:
        """Return whether the announced Content-Length is within the limit."""
        limit = self.client_max_body_size()
        if limit is None or self.req is None:
            return True
        text = self.req.headers.get("content-length")
        if not text:
            return True
        return limit.size >= _leading_unsigned(text)

    def root(self) -> Optional[Root]:
        """Return the root directive, looking at the server before the location."""
        found = self.get_directive(DirectiveType.ROOT)
        if found is None:
            found = self._in_location(DirectiveType.ROOT)
        return found if isinstance(found, Root) else None

    def autoindex(self) -> AutoIndex:
        """Return the autoindex setting; the location wins, default is off."""
        found = self._in_location(DirectiveType.AUTOINDEX)
        if found is None:
            found = self.get_directive(DirectiveType.AUTOINDEX)
        return found if isinstance(found, AutoIndex) else AutoIndex(state=False)

    def return_directive(self) -> Optional[Return]:
        """Return the return directive; the location wins over the server."""
        found = self._in_location(DirectiveType.RETURN)
        if found is None:
            found = self.get_directive(DirectiveType.RETURN)
        return found if isinstance(found, Return) else None

    def index(self) -> Optional[Index]:
        """Return the index directive; the location wins over the server."""
        found = self._in_location(DirectiveType.INDEX)
        if found is None:
            found = self.get_directive(DirectiveType.INDEX)
        return found if isinstance(found, Index) else None

    def error_page(self) -> Optional[ErrorPage]:
        """Return the first error_page, looking at the server before the location."""
        found = self.get_directive(DirectiveType.ERROR_PAGE)
        if found is None:
            found = self._in_location(DirectiveType.ERROR_PAGE)
        return found if isinstance(found, ErrorPage) else None

    def error_page_for_code(self, code: int) -> Optional[ErrorPage]:
        """Return the error_page configured for ``code``; the location wins."""
        blocks = [self.location(), self.conserver]
        for block in blocks:
            if block is None:
                continue
            for page in block.find_all(DirectiveType.ERROR_PAGE):
                assert isinstance(page, ErrorPage)
                if page.code == code or page.response_code == code:
                    return page
        return None


def find_connection_by_fd(
    fd: int, connections: Sequence[Connection]
) -> Optional[Connection]:
    """Return the connection using file descriptor ``fd``, or None."""
    return next((conn for conn in connections if conn.fd == fd), None)


def close_connection(
    conn: Optional[Connection],
    connections: List[Connection],
    selector: Optional[selectors.BaseSelector],
) -> None:
    """Close a connection, release what it holds and drop it from the list."""
    if conn is None or conn.closed:
        return
    conn.closed = True

    if selector is not None and conn.sock is not None:
        try:
            selector.unregister(conn.sock)
        except (KeyError, ValueError):
            pass

    if conn.file is not None:
        conn.file.close()
        conn.file = None

    if conn.sock is not None:
        conn.sock.close()
    conn.fd = -1

    if conn.req is not None:
        conn.req.body.cleanup()
        conn.req = None

    connections[:] = [other for other in connections if other is not conn]
    log.info("Connection closed; remaining connections: %d", len(connections))