"""The event loop serving client connections, and the command that starts it."""

from __future__ import annotations

import logging
import selectors
import socket
import sys
import time
from typing import List, Optional, Sequence

from webserv.config_parser import parse_config
from webserv.connection import (
    Connection,
    SendState,
    close_connection,
)
from webserv.directives import DirectiveError, Http
from webserv.error_response import internal_error_response
from webserv.listeners import (
    close_sockets,
    collect_listen_addresses,
    create_listening_sockets,
)
from webserv.request import Request
from webserv.response_handler import handle_request
from webserv.status import HttpStatusCode

log = logging.getLogger(__name__)

EIGHT_KB = 8192
SELECT_TIMEOUT = 1.0
TIMEOUT_CHECK_INTERVAL = 1.0


def check_timeouts(
    connections: List[Connection],
    selector: Optional[selectors.BaseSelector],
    now: Optional[float] = None,
) -> List[Connection]:
    """Close every connection whose request has been idle too long.

    Returns the connections that were closed.
    """
    expired = [
        conn for conn in list(connections)
        if conn.req is not None and conn.req.timed_out(now)
    ]
    for conn in expired:
        log.info("Connection timeout for fd %d", conn.fd)
        conn.req.set_status(HttpStatusCode.REQUEST_TIMEOUT)
        close_connection(conn, connections, selector)
    return expired


def handle_connection_error(
    conn: Connection,
    connections: List[Connection],
    selector: Optional[selectors.BaseSelector],
    message: str,
) -> None:
    """Send a 500 response if a request is pending, then close the connection."""
    log.warning("Connection error for fd %d: %s", conn.fd, message)
    if conn.req is not None and conn.sock is not None and not conn.closed:
        conn.res = internal_error_response()
        try:
            conn.sock.send(conn.res.build().encode("utf-8"))
        except OSError:
            pass
    close_connection(conn, connections, selector)


def _close_file(conn: Connection) -> None:
    if conn.file is not None:
        conn.file.close()
        conn.file = None


class _EventLoop:
    """Accepts clients, reads their requests and writes their responses."""

    def __init__(self, http: Http, selector: selectors.BaseSelector) -> None:
        self.http = http
        self.selector = selector
        self.connections: List[Connection] = []
        self.last_timeout_check = time.time()

    def step(self) -> None:
        if time.time() - self.last_timeout_check >= TIMEOUT_CHECK_INTERVAL:
            check_timeouts(self.connections, self.selector)
            self.last_timeout_check = time.time()
        try:
            events = self.selector.select(SELECT_TIMEOUT)
        except OSError as exc:
            log.error("select failed: %s", exc)
            return
        for key, mask in events:
            if key.data is None:
                self._accept(key.fileobj)
                continue
            conn = key.data
            if conn.closed:
                continue
            if mask & selectors.EVENT_READ:
                self._on_read(conn)
            elif mask & selectors.EVENT_WRITE:
                self._on_write(conn)

    def close_all(self) -> None:
        for conn in list(self.connections):
            close_connection(conn, self.connections, self.selector)

    def _accept(self, listener: socket.socket) -> None:
        try:
            client, _ = listener.accept()
        except OSError:
            log.error("failed to accept a client")
            return
        try:
            client.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            pass
        client.setblocking(False)
        conn = Connection(sock=client)
        self.connections.append(conn)
        log.debug("Accepted connection; total %d", len(self.connections))
        self.selector.register(client, selectors.EVENT_READ, conn)

    def _on_read(self, conn: Connection) -> None:
        try:
            data = conn.sock.recv(EIGHT_KB)
        except BlockingIOError:
            return
        except OSError:
            data = b""
        if not data:
            close_connection(conn, self.connections, self.selector)
            return
        if conn.req is None:
            conn.req = Request(conn.fd)
        conn.req.append(data)
        conn.touch()
        if conn.conserver is None:
            conn.find_server(self.http)
        if not conn.check_max_body_size():
            log.info("payload too large on fd %d", conn.fd)
            conn.req.set_status(HttpStatusCode.PAYLOAD_TOO_LARGE)
        if conn.req.is_done():
            self.selector.modify(conn.sock, selectors.EVENT_WRITE, conn)

    def _fail(self, conn: Connection, message: str) -> None:
        handle_connection_error(conn, self.connections, self.selector, message)

    def _on_write(self, conn: Connection) -> None:
        if conn.req is None:
            return
        try:
            if conn.send_state == SendState.NOT_STARTED:
                if not self._send_head(conn):
                    return
            if conn.send_state == SendState.HEADERS_SENT:
                if not self._send_chunk(conn):
                    return
            if conn.send_state == SendState.DONE:
                self._finish(conn)
        except Exception as exc:
            log.exception("Exception in request handling: %s", exc)
            self._fail(conn, "Request handling exception")

    def _send_head(self, conn: Connection) -> bool:
        """Send the status line and headers; return whether to go on now."""
        conn.res = handle_request(conn)
        head = conn.res.build().encode("utf-8")
        try:
            conn.sock.send(head)
        except OSError:
            self._fail(conn, "Header send error")
            return False
        if conn.res.file_path:
            try:
                conn.file = open(conn.res.file_path, "rb")
            except OSError:
                self._fail(conn, "File open error")
                return False
            conn.send_offset = 0
            conn.send_state = SendState.HEADERS_SENT
            return False
        conn.send_state = SendState.DONE
        return True

    def _send_chunk(self, conn: Connection) -> bool:
        """Send the next piece of the file; return whether to finish now."""
        try:
            conn.file.seek(conn.send_offset)
            chunk = conn.file.read(EIGHT_KB)
        except OSError:
            _close_file(conn)
            self._fail(conn, "File send error")
            return False
        if not chunk:
            _close_file(conn)
            conn.send_state = SendState.DONE
            return True
        try:
            sent = conn.sock.send(chunk)
        except BlockingIOError:
            return False
        except OSError:
            conn.send_state = SendState.DONE
            _close_file(conn)
            return False
        conn.send_offset += sent
        if conn.send_offset >= conn.res.file_size:
            _close_file(conn)
            conn.send_state = SendState.DONE
        return False

    def _finish(self, conn: Connection) -> None:
        if conn.keep_alive:
            conn.req.clear()
            conn.send_state = SendState.NOT_STARTED
            self.selector.modify(conn.sock, selectors.EVENT_READ, conn)
        else:
            close_connection(conn, self.connections, self.selector)


def serve_forever(
    http: Http,
    sockets: Sequence[socket.socket],
    selector: selectors.BaseSelector,
) -> None:
    """Serve clients until every listening socket has been closed."""
    loop = _EventLoop(http, selector)
    try:
        while any(sock.fileno() != -1 for sock in sockets):
            loop.step()
    finally:
        loop.close_all()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the server with the configuration file named on the command line."""
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Error: config file missing.", file=sys.stderr)
        return 1
    try:
        http = parse_config(args[0])
    except (OSError, DirectiveError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    addresses = collect_listen_addresses(http)
    with selectors.DefaultSelector() as selector:
        try:
            sockets = create_listening_sockets(addresses, selector)
        except OSError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        try:
            serve_forever(http, sockets, selector)
        except KeyboardInterrupt:
            pass
        finally:
            close_sockets(sockets)
    return 0


if __name__ == "__main__":
    sys.exit(main())