import pytest

from webserv.config_parser import (
    is_directive,
    parse_config,
    parse_config_text,
    parse_tokens,
)
from webserv.directives import (
    AutoIndex,
    ClientMaxBodySize,
    DirectiveError,
    DirectiveType,
    ErrorPage,
    Index,
    LimitExcept,
    Listen,
    Location,
    Return,
    Root,
    Server,
    ServerName,
)
from webserv.tokenizer import tokenize

SAMPLE = """
# a comment
server {
    listen 127.0.0.1:8080;
    server_name example.com www.example.com;
    root www;
    error_page 404 /404.html;
    client_max_body_size 1024;
    location = /exact {
        return 301 /other;
    }
    location /images {
        autoindex on;
        limit_except GET POST;
        index a.html b.html;
    }
}
"""


def _server(text):
    http = parse_config_text(text)
    servers = http.find_all(DirectiveType.SERVER)
    assert len(servers) == 1
    return servers[0]


def test_sample_structure():
    server = _server(SAMPLE)
    assert isinstance(server, Server)
    listen = server.get_directive(DirectiveType.LISTEN)
    assert isinstance(listen, Listen)
    assert (listen.host, listen.port) == ("127.0.0.1", 8080)
    names = server.get_directive(DirectiveType.SERVER_NAME)
    assert isinstance(names, ServerName)
    assert names.names == ["example.com", "www.example.com"]
    root = server.get_directive(DirectiveType.ROOT)
    assert isinstance(root, Root) and root.path == "www"
    page = server.get_directive(DirectiveType.ERROR_PAGE)
    assert isinstance(page, ErrorPage)
    assert (page.code, page.uri) == (404, "/404.html")
    size = server.get_directive(DirectiveType.CLIENT_MAX_BODY_SIZE)
    assert isinstance(size, ClientMaxBodySize) and size.size == 1024


def test_sample_locations():
    server = _server(SAMPLE)
    exact, images = server.find_all(DirectiveType.LOCATION)
    assert isinstance(exact, Location)
    assert exact.exact_match is True and exact.uri == "/exact"
    ret = exact.get_directive(DirectiveType.RETURN)
    assert isinstance(ret, Return) and (ret.code, ret.url) == (301, "/other")
    assert images.exact_match is False and images.uri == "/images"
    auto = images.get_directive(DirectiveType.AUTOINDEX)
    assert isinstance(auto, AutoIndex) and auto.state is True
    limit = images.get_directive(DirectiveType.LIMIT_EXCEPT)
    assert isinstance(limit, LimitExcept) and limit.methods == ["GET", "POST"]
    index = images.get_directive(DirectiveType.INDEX)
    assert isinstance(index, Index) and index.files == ["a.html", "b.html"]


def test_listen_port_only_uses_wildcard_host():
    listen = _server("server { listen 80; }").get_directive(DirectiveType.LISTEN)
    assert (listen.host, listen.port) == ("0.0.0.0", 80)


def test_listen_host_only_uses_default_port():
    listen = _server("server { listen localhost; }").get_directive(DirectiveType.LISTEN)
    assert (listen.host, listen.port) == ("localhost", 8080)


def test_return_without_url():
    ret = _server("server { return 404; }").get_directive(DirectiveType.RETURN)
    assert ret.code == 404 and ret.url is None


def test_autoindex_off():
    auto = _server("server { autoindex off; }").get_directive(DirectiveType.AUTOINDEX)
    assert auto.state is False


def test_parse_tokens_matches_text_parse():
    a = parse_tokens(tokenize(SAMPLE))
    b = parse_config_text(SAMPLE)
    assert a == b


def test_empty_config_gives_empty_http():
    assert parse_config_text("").directives == []


def test_stray_closing_brace_stops_parsing():
    http = parse_config_text("server { } } foo bar")
    assert len(http.directives) == 1


def test_parse_config_reads_file(tmp_path):
    path = tmp_path / "web.conf"
    path.write_text(SAMPLE)
    assert parse_config(path) == parse_config_text(SAMPLE)


def test_parse_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        parse_config(tmp_path / "missing.conf")


@pytest.mark.parametrize(
    "text, message",
    [
        ("foo 1;", "unknown directive"),
        ("deny all;", "unknown directive"),
        ("listen 80;", "invalid directive inside of http block"),
        ("location / { }", "invalid directive inside of http block"),
        ("server", "missing \"{\""),
        ("server {", "missing \"}\""),
        ("server { listen 80; ", "missing \"}\""),
        ("server { listen 80 }", "incomplete listen directive"),
        ("server { listen nothost; }", "invalid content for listen directive"),
        ("server { error_page 200 /x.html; }", "between 300 and 599"),
        ("server { error_page abc /x.html; }", "invalid code number"),
        ("server { error_page 404; }", "invalid number of arguments"),
        ("server { autoindex maybe; }", "invalid content for autoindex"),
        ("server { return 1000; }", "invalid argument for return directive"),
        ("server { return; }", "invalid number of arguments for return"),
        ("server { client_max_body_size -1; }", "invalid number"),
        ("server { location / { limit_except PUT; } }", "invalid method"),
        ("server { server_name a location / { } }", "server_name"),
        ("server { index; }", "missing file name"),
        ("server { root ; }", "missing path"),
        ("server { location { } }", "invalid URI"),
    ],
)
def test_errors(text, message):
    with pytest.raises(DirectiveError, match=message):
        parse_config_text(text)


@pytest.mark.parametrize("word", ["server", "listen", "autoindex", "limit_except"])
def test_is_directive_known(word):
    assert is_directive(word) is True


@pytest.mark.parametrize("word", ["deny", "allow", "http", "Server", ""])
def test_is_directive_unknown(word):
    assert is_directive(word) is False