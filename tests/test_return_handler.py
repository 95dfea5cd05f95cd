import pytest

from webserv.config_parser import parse_config_text
from webserv.connection import Connection
from webserv.request import Request
from webserv.return_handler import handle_return

CONFIG = """
server {
    listen 8080;
    location /old { return 301 new; }
    location /teapot { return 404 /missing.html; }
    location /gone { return 410 /absent.html; }
    location /bare { return 302; }
    location /plain { index a.html; }
}
server {
    listen 9090;
    return 303 /elsewhere;
    location /a { index a.html; }
}
"""


@pytest.fixture
def site(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "www").mkdir()
    return parse_config_text(CONFIG)


def connect(http, tmp_path, server_index, uri):
    conn = Connection()
    conn.conserver = http.directives[server_index]
    req = Request(temp_dir=tmp_path)
    req.append(f"GET {uri} HTTP/1.1\r\nHost: example.com\r\n\r\n".encode())
    conn.req = req
    return conn


def test_redirect_gets_leading_slash(site, tmp_path):
    response = handle_return(connect(site, tmp_path, 0, "/old/page"))
    assert response.status_code == 301
    assert response.headers["Location"] == "/new"
    assert response.headers["Content-Type"] == "text/html"


def test_error_code_serves_existing_page(site, tmp_path):
    (tmp_path / "www" / "missing.html").write_text("<p>gone</p>")
    response = handle_return(connect(site, tmp_path, 0, "/teapot"))
    assert response.status_code == 404
    assert response.file_path == "www/missing.html"
    assert response.file_size == len("<p>gone</p>")


def test_error_code_without_page_uses_default_error_page(site, tmp_path):
    response = handle_return(connect(site, tmp_path, 0, "/gone"))
    assert response.status_code == 410
    assert response.file_path == "www/error_410.html"
    assert (tmp_path / "www" / "error_410.html").is_file()


def test_redirect_code_without_url_is_error_response(site, tmp_path):
    response = handle_return(connect(site, tmp_path, 0, "/bare"))
    assert response.status_code == 302
    assert response.file_path == "www/error_302.html"
    assert "Location" not in response.headers


def test_no_return_gives_plain_response(site, tmp_path):
    response = handle_return(connect(site, tmp_path, 0, "/plain"))
    assert response.status_code == 200
    assert response.file_path == ""


def test_server_level_return_applies(site, tmp_path):
    response = handle_return(connect(site, tmp_path, 1, "/a/b"))
    assert response.status_code == 303
    assert response.headers["Location"] == "/elsewhere"


def test_no_connection():
    response = handle_return(None)
    assert response.status_code == 200
    assert response.file_path == ""