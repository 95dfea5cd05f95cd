"""Working out listen addresses and opening the listening sockets."""

from __future__ import annotations

import logging
import selectors
import socket
from typing import Iterable, List, Set, Tuple

from webserv.directives import DirectiveType, Http, Listen

log = logging.getLogger(__name__)

WILDCARD_HOST = "0.0.0.0"
BACKLOG = 511

Address = Tuple[str, int]


def add_unique_listen(addresses: Set[Address], host: str, port: int) -> None:
    """Add ``host:port`` unless a wildcard on that port already covers it.

    A wildcard address replaces every address on the same port.
    """
    if host == WILDCARD_HOST:
        for key in [key for key in addresses if key[1] == port]:
            addresses.discard(key)
        addresses.add((WILDCARD_HOST, port))
    elif (WILDCARD_HOST, port) not in addresses:
        addresses.add((host, port))


def collect_listen_addresses(http: Http) -> Set[Address]:
    """Return the distinct addresses every server block listens on."""
    addresses: Set[Address] = set()
    for server in http.find_all(DirectiveType.SERVER):
        for listen in server.find_all(DirectiveType.LISTEN):
            assert isinstance(listen, Listen)
            add_unique_listen(addresses, listen.host or WILDCARD_HOST, listen.port)
    return addresses


def create_listening_socket(
    host: str, port: int, selector: selectors.BaseSelector
) -> socket.socket:
    """Open a listening IPv4 socket and register it for reading.

    Raises OSError naming the address when any step fails.
    """
    try:
        infos = socket.getaddrinfo(host, str(port), socket.AF_INET, socket.SOCK_STREAM)
    except OSError as exc:
        raise OSError(f"failed to get IPv4 [{host}] with port {port}") from exc
    family, kind, proto, _, address = infos[0]

    try:
        sock = socket.socket(family, kind, proto)
    except OSError as exc:
        raise OSError(f"failed to create socket for host [ {host}:{port} ]") from exc

    step = "set SO_REUSEADDR on"
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        step = "bind socket with"
        sock.bind(address)
        step = "listen on socket with"
        sock.listen(BACKLOG)
        step = "register socket with"
        selector.register(sock, selectors.EVENT_READ)
    except (OSError, ValueError, KeyError) as exc:
        sock.close()
        raise OSError(f"failed to {step} the host [ {host}:{port} ]") from exc

    log.info("Server listening on [ %s:%d ]", host, port)
    return sock


def create_listening_sockets(
    addresses: Iterable[Address], selector: selectors.BaseSelector
) -> List[socket.socket]:
    """Open a listening socket for every address, in sorted order.

    If one fails, the sockets already opened are closed and the error raised.
    """
    sockets: List[socket.socket] = []
    try:
        for host, port in sorted(addresses):
            sockets.append(create_listening_socket(host, port, selector))
    except OSError:
        for sock in sockets:
            try:
                selector.unregister(sock)
            except (KeyError, ValueError):
                pass
        close_sockets(sockets)
        raise
    return sockets


def close_sockets(sockets: Iterable[socket.socket]) -> None:
    """Close every socket."""
    for sock in sockets:
        sock.close()