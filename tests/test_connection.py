import selectors
import socket

import pytest

from webserv.config_parser import parse_config_text
from webserv.connection import (
    Connection,
    close_connection,
    find_connection_by_fd,
)
from webserv.directives import DirectiveType, Listen
from webserv.request import Request

CONFIG = """
server {
    listen 8080;
    server_name example.com www.example.com;
    root /srv/site;
    error_page 404 /server404.html;
    location /images {
        autoindex on;
        limit_except GET POST;
        error_page 500 /loc500.html;
        index gallery.html;
    }
    location /images/thumbs { root /thumbs; }
    location = /exact { return 301 /moved; }
}
server {
    listen 127.0.0.1:9090;
    client_max_body_size 10;
    location /docs { root /docs-root; }
}
"""


@pytest.fixture
def http():
    return parse_config_text(CONFIG)


def make_request(tmp_path, raw):
    req = Request(temp_dir=tmp_path)
    req.append(raw)
    return req


def conn_for(http, server_index, uri):
    conn = Connection()
    conn.conserver = http.directives[server_index]
    conn.uri = uri
    return conn


def test_find_server_by_name(http, tmp_path):
    conn = Connection()
    conn.req = make_request(
        tmp_path, b"GET / HTTP/1.1\r\nHost: www.example.com\r\n\r\n"
    )
    assert conn.find_server(http) is True
    assert conn.conserver is http.directives[0]


def test_find_server_by_port(http, tmp_path):
    conn = Connection()
    conn.req = make_request(
        tmp_path, b"GET / HTTP/1.1\r\nHost: other.test:9090\r\n\r\n"
    )
    assert conn.find_server(http) is True
    assert conn.conserver is http.directives[1]


def test_find_server_falls_back_to_first(http, tmp_path):
    conn = Connection()
    conn.req = make_request(
        tmp_path, b"GET / HTTP/1.1\r\nHost: nowhere.test\r\n\r\n"
    )
    assert conn.find_server(http) is False
    assert conn.conserver is http.directives[0]


def test_find_server_without_request(http):
    conn = Connection()
    assert conn.find_server(http) is False
    assert conn.conserver is None


def test_location_longest_prefix_from_request(http, tmp_path):
    conn = conn_for(http, 0, "/unrelated")
    conn.req = make_request(
        tmp_path, b"GET /images/thumbs/a.png HTTP/1.1\r\nHost: example.com\r\n\r\n"
    )
    assert conn.location().uri == "/images/thumbs"


def test_location_exact_and_missing(http):
    assert conn_for(http, 0, "/exact").location().exact_match is True
    assert conn_for(http, 0, "/exactly").location() is None
    assert Connection().location() is None


def test_root_prefers_server(http):
    assert conn_for(http, 0, "/images/thumbs/x").root().path == "/srv/site"
    assert conn_for(http, 1, "/docs/a").root().path == "/docs-root"
    assert conn_for(http, 1, "/other").root() is None


def test_autoindex(http):
    assert conn_for(http, 0, "/images/a").autoindex().state is True
    assert conn_for(http, 0, "/other").autoindex().state is False


def test_limit_except_and_index(http):
    conn = conn_for(http, 0, "/images/a")
    assert conn.limit_except().methods == ["GET", "POST"]
    assert conn.index().files == ["gallery.html"]
    other = conn_for(http, 0, "/")
    assert other.limit_except() is None
    assert other.index() is None


def test_return_directive(http):
    ret = conn_for(http, 0, "/exact").return_directive()
    assert ret.code == 301
    assert ret.url == "/moved"
    assert conn_for(http, 0, "/images").return_directive() is None


def test_error_pages(http):
    conn = conn_for(http, 0, "/images/a")
    assert conn.error_page_for_code(404).uri == "/server404.html"
    assert conn.error_page_for_code(500).uri == "/loc500.html"
    assert conn.error_page_for_code(403) is None
    assert conn.error_page().uri == "/server404.html"


def test_get_directive(http):
    listen = conn_for(http, 0, "/").get_directive(DirectiveType.LISTEN)
    assert isinstance(listen, Listen)
    assert listen.port == 8080
    assert Connection().get_directive(DirectiveType.LISTEN) is None


def test_check_max_body_size(http, tmp_path):
    conn = conn_for(http, 1, "/")
    conn.req = make_request(
        tmp_path,
        b"POST /up HTTP/1.1\r\nHost: other.test:9090\r\nContent-Length: 20\r\n\r\n",
    )
    assert conn.check_max_body_size() is False
    conn.req = make_request(
        tmp_path,
        b"POST /up HTTP/1.1\r\nHost: other.test:9090\r\nContent-Length: 5\r\n\r\n",
    )
    assert conn.check_max_body_size() is True
    assert conn.client_max_body_size().size == 10


def test_check_max_body_size_without_limit(http, tmp_path):
    conn = conn_for(http, 0, "/")
    conn.req = make_request(
        tmp_path,
        b"POST /up HTTP/1.1\r\nHost: example.com\r\nContent-Length: 999999\r\n\r\n",
    )
    assert conn.check_max_body_size() is True


def test_touch_updates_time():
    conn = Connection()
    conn.last_activity = 0
    conn.touch()
    assert conn.last_activity > 0


def test_find_connection_by_fd():
    first, second = Connection(fd=3), Connection(fd=7)
    assert find_connection_by_fd(7, [first, second]) is second
    assert find_connection_by_fd(9, [first, second]) is None


def test_close_connection_releases_everything(tmp_path):
    left, right = socket.socketpair()
    selector = selectors.DefaultSelector()
    try:
        conn = Connection(sock=left)
        other = Connection(fd=42)
        selector.register(left, selectors.EVENT_READ)
        conn.req = Request(temp_dir=tmp_path)
        connections = [conn, other]

        close_connection(conn, connections, selector)

        assert connections == [other]
        assert conn.closed is True
        assert conn.fd == -1
        assert conn.req is None
        assert left.fileno() == -1
        assert len(selector.get_map()) == 0

        close_connection(conn, connections, selector)
        assert connections == [other]
    finally:
        selector.close()
        right.close()