import selectors
import socket

import pytest

from webserv.config_parser import parse_config_text
from webserv.listeners import (
    add_unique_listen,
    close_sockets,
    collect_listen_addresses,
    create_listening_socket,
    create_listening_sockets,
)


@pytest.fixture
def selector():
    sel = selectors.DefaultSelector()
    yield sel
    sel.close()


@pytest.fixture
def busy_port():
    holder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    holder.bind(("127.0.0.1", 0))
    holder.listen(1)
    yield holder.getsockname()[1]
    holder.close()


def test_add_specific_host():
    addresses = set()
    add_unique_listen(addresses, "127.0.0.1", 8080)
    add_unique_listen(addresses, "127.0.0.1", 8080)
    assert addresses == {("127.0.0.1", 8080)}


def test_wildcard_replaces_same_port_only():
    addresses = {("127.0.0.1", 8080), ("127.0.0.1", 9090)}
    add_unique_listen(addresses, "0.0.0.0", 8080)
    assert addresses == {("0.0.0.0", 8080), ("127.0.0.1", 9090)}


def test_wildcard_into_empty_set():
    addresses = set()
    add_unique_listen(addresses, "0.0.0.0", 8080)
    assert addresses == {("0.0.0.0", 8080)}


def test_specific_host_ignored_under_wildcard():
    addresses = {("0.0.0.0", 8080)}
    add_unique_listen(addresses, "127.0.0.1", 8080)
    assert addresses == {("0.0.0.0", 8080)}


def test_collect_listen_addresses():
    http = parse_config_text(
        "server { listen 127.0.0.1:8080; listen localhost:7070; }"
        "server { listen 8080; listen 127.0.0.1:9090; }"
    )
    assert collect_listen_addresses(http) == {
        ("0.0.0.0", 8080),
        ("localhost", 7070),
        ("127.0.0.1", 9090),
    }


def test_create_listening_socket_accepts_clients(selector):
    sock = create_listening_socket("127.0.0.1", 0, selector)
    try:
        assert sock.getsockname()[0] == "127.0.0.1"
        assert selector.get_key(sock).events == selectors.EVENT_READ
        with socket.create_connection(sock.getsockname(), timeout=5):
            client, _ = sock.accept()
            client.close()
    finally:
        sock.close()


def test_create_listening_socket_address_in_use(selector, busy_port):
    with pytest.raises(OSError):
        create_listening_socket("127.0.0.1", busy_port, selector)
    assert len(selector.get_map()) == 0


def test_create_listening_sockets(selector):
    sockets = create_listening_sockets({("127.0.0.1", 0)}, selector)
    try:
        assert len(sockets) == 1
        assert len(selector.get_map()) == 1
    finally:
        close_sockets(sockets)


def test_create_listening_sockets_cleans_up_on_failure(selector, busy_port):
    with pytest.raises(OSError):
        create_listening_sockets(
            {("127.0.0.1", 0), ("127.0.0.1", busy_port)}, selector
        )
    assert len(selector.get_map()) == 0


def test_close_sockets():
    first = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    second = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    close_sockets([first, second])
    assert first.fileno() == -1
    assert second.fileno() == -1