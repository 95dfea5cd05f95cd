import pytest

from webserv.response import Response, redirect_response, serve_file, status_message


def _header_lines(raw):
    head, _, rest = raw.partition("\r\n")
    assert raw.endswith("\r\n\r\n")
    lines = raw[len(head) + 2:-4].split("\r\n")
    return head, [line.split(": ", 1) for line in lines]


def test_default_build():
    raw = Response().build(now=0)
    head, headers = _header_lines(raw)
    assert head == "HTTP/1.1 200 OK"
    assert dict(headers) == {
        "Content-Length": "0",
        "Date": "Thu, 01 Jan 1970 00:00:00 GMT",
        "Server": "WebServ/1.0",
    }


def test_headers_are_sorted():
    response = Response(404)
    response.add_header("Zeta", "1")
    response.add_header("Alpha", "2")
    _, headers = _header_lines(response.build(now=0))
    names = [name for name, _ in headers]
    assert names == sorted(names)
    assert "Alpha" in names and "Zeta" in names


def test_status_line_uses_reason_phrase():
    assert Response(404).build(now=0).startswith("HTTP/1.1 404 Not Found\r\n")


@pytest.mark.parametrize("code", [204, 304])
def test_no_content_length_for_bodyless_codes(code):
    response = Response(code)
    response.file_path = "/some/file"
    raw = response.build(now=0)
    assert "Content-Length" not in raw
    assert "Content-Type" not in raw


def test_content_type_defaults_when_file_set():
    response = Response()
    response.file_path = "/some/file"
    response.file_size = 42
    _, headers = _header_lines(response.build(now=0))
    assert dict(headers)["Content-Type"] == "text/plain"
    assert dict(headers)["Content-Length"] == "42"


def test_build_is_cached_until_changed():
    response = Response()
    first = response.build(now=0)
    assert response.build(now=1000) == first
    response.add_header("X-Test", "yes")
    second = response.build(now=1000)
    assert "X-Test: yes\r\n" in second
    assert second != first


def test_set_status_updates_message():
    response = Response()
    response.set_status(405)
    assert response.status_code == 405
    assert response.status_message == "Method Not Allowed"


def test_status_message_unknown():
    assert status_message(999) == "Unknown"
    assert status_message(413) == "Request Entity Too Large"


def test_clear_resets_headers():
    response = Response(500)
    response.add_header("X-Test", "1")
    response.file_path = "/x"
    response.clear()
    assert response.status_code == 200
    assert response.file_path == ""
    assert dict(response.headers) == {"Server": "WebServ/1.0", "Date": ""}


def test_set_file_body_takes_size(tmp_path):
    target = tmp_path / "page.html"
    target.write_bytes(b"<p>hi</p>")
    response = Response()
    response.set_file_body(str(target))
    assert response.file_path == str(target)
    assert response.file_size == len(b"<p>hi</p>")


def test_serve_file(tmp_path):
    target = tmp_path / "a.css"
    target.write_bytes(b"body{}")
    response = serve_file(str(target), "text/css", 200)
    assert response.status_code == 200
    assert response.file_size == 6
    assert response.headers["Content-Type"] == "text/css"
    assert response.headers["Connection"] == "close"


def test_serve_missing_file(tmp_path):
    response = serve_file(str(tmp_path / "nope"), "text/html", 200)
    assert response.status_code == 404
    assert response.file_path == ""


def test_serve_directory_is_404(tmp_path):
    assert serve_file(str(tmp_path), "text/html", 200).status_code == 404


def test_redirect_response(tmp_path):
    page = tmp_path / "redirect.html"
    response = redirect_response(301, "/new", str(page))
    assert response.status_code == 301
    assert response.headers["Location"] == "/new"
    assert response.headers["Content-Type"] == "text/html"
    content = page.read_text()
    assert 'href="/new"' in content
    assert response.file_size == len(content.encode())