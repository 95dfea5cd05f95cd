"""Parsing configuration text into a directive tree."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Callable, Dict, Optional, Sequence, Union

from webserv.directives import (
    AutoIndex,
    BlockDirective,
    ClientMaxBodySize,
    Directive,
    DirectiveError,
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
from webserv.tokenizer import Token, TokenType, tokenize
from webserv.validators import (
    is_host_and_port,
    is_port_only,
    is_valid_method,
    is_valid_uri,
    is_valid_url,
)

log = logging.getLogger(__name__)

DIRECTIVE_NAMES = (
    "server",
    "listen",
    "server_name",
    "error_page",
    "client_max_body_size",
    "location",
    "root",
    "limit_except",
    "return",
    "index",
    "autoindex",
)

DEFAULT_LISTEN_HOST = "0.0.0.0"
DEFAULT_LISTEN_PORT = 8080

_STREAM_INT_RE = re.compile(r"[ \t\n\r\f\v]*([+-]?[0-9]+)")


def _stream_int(text: str) -> Optional[int]:
    """Read the whole text as one 32-bit integer, or return None."""
    match = _STREAM_INT_RE.fullmatch(text)
    if match is None:
        return None
    value = int(match.group(1))
    if not -(2**31) <= value < 2**31:
        return None
    return value


def is_directive(word: str) -> bool:
    """Return whether the word names a directive the parser knows."""
    return word in DIRECTIVE_NAMES


class _Parser:
    """Recursive-descent parser over a list of tokens."""

    def __init__(self, tokens: Sequence[Token]) -> None:
        self.tokens = list(tokens)
        self.pos = 0
        self._parsers: Dict[str, Callable[[], Directive]] = {
            "server": self._server,
            "listen": self._listen,
            "server_name": self._server_name,
            "error_page": self._error_page,
            "client_max_body_size": self._client_max_body_size,
            "location": self._location,
            "root": self._root,
            "limit_except": self._limit_except,
            "return": self._return,
            "index": self._index,
            "autoindex": self._autoindex,
        }

    def _at_end(self) -> bool:
        return self.pos >= len(self.tokens)

    def _peek(self) -> Optional[Token]:
        return None if self._at_end() else self.tokens[self.pos]

    def _is(self, kind: TokenType) -> bool:
        token = self._peek()
        return token is not None and token.type == kind

    def _take(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def _expect_end(self, message: str) -> None:
        if not self._is(TokenType.DIR_END):
            raise DirectiveError(message)
        self.pos += 1

    def _has_end_ahead(self) -> bool:
        return any(t.type == TokenType.DIR_END for t in self.tokens[self.pos:])

    def consume(self, block: BlockDirective) -> None:
        while not self._at_end() and not self._is(TokenType.BLOCK_END):
            block.add_directive(self._node())

    def _node(self) -> Directive:
        token = self.tokens[self.pos]
        log.debug("%d > %s", self.pos, token.data)
        parser = self._parsers.get(token.data)
        if parser is None:
            raise DirectiveError("unknown directive")
        self.pos += 1
        return parser()

    def _close_block(self, message: str) -> None:
        if not self._is(TokenType.BLOCK_END):
            raise DirectiveError(message)
        self.pos += 1

    def _server(self) -> Server:
        if not self._is(TokenType.BLOCK_START):
            raise DirectiveError('incomplete server block - missing "{"')
        self.pos += 1
        if self._at_end():
            raise DirectiveError('incomplete server block - missing "}"')
        server = Server()
        self.consume(server)
        self._close_block('incomplete server block - missing "}"')
        return server

    def _location(self) -> Location:
        if self._at_end():
            raise DirectiveError("incomplete location block - missing URI")
        location = Location()
        if self._is(TokenType.EQUAL):
            location.exact_match = True
            self.pos += 1
            if self._at_end():
                raise DirectiveError("incomplete location block - missing URI")
        token = self.tokens[self.pos]
        if not is_valid_uri(token.data) or token.type != TokenType.STRING:
            raise DirectiveError("invalid listen's content - invalid URI")
        location.uri = self._take().data
        if not self._is(TokenType.BLOCK_START):
            raise DirectiveError('incomplete location block - missing "{"')
        self.pos += 1
        self.consume(location)
        self._close_block('incomplete location block - missing "}"')
        return location

    def _listen(self) -> Listen:
        if self._at_end():
            raise DirectiveError("incomplete listen directive - missing host/port")
        listen = Listen()
        if is_port_only(self.tokens, self.pos):
            listen.host = DEFAULT_LISTEN_HOST
            listen.port = _stream_int(self._take().data) or 0
        elif is_host_and_port(self.tokens, self.pos):
            listen.host = self._take().data
            if self._at_end():
                raise DirectiveError('incomplete listen directive - missing ";"')
            if self._is(TokenType.COLON):
                self.pos += 1
                if self._at_end():
                    raise DirectiveError("incomplete listen directive - missing port")
                listen.port = _stream_int(self._take().data) or 0
            else:
                listen.port = DEFAULT_LISTEN_PORT
        else:
            raise DirectiveError("invalid content for listen directive")
        self._expect_end('incomplete listen directive - missin ";"')
        return listen

    def _word_list(self, name: str) -> list:
        if not self._has_end_ahead():
            raise DirectiveError(f'incomplete {name} directive - missing ";"')
        words = []
        while not self._is(TokenType.DIR_END):
            token = self._take()
            if is_directive(token.data):
                raise DirectiveError(f'incomplete {name} directive - missing ";"')
            words.append(token.data)
        self.pos += 1
        return words

    def _server_name(self) -> ServerName:
        if self._at_end():
            raise DirectiveError("incomplete server_name directive - missing names")
        return ServerName(names=self._word_list("server_name"))

    def _index(self) -> Index:
        if self._at_end() or self._is(TokenType.DIR_END):
            raise DirectiveError("incomplete index directive - missing file name")
        return Index(files=self._word_list("index"))

    def _limit_except(self) -> LimitExcept:
        if self._at_end():
            raise DirectiveError("incomplete limit_except block - missing methods")
        methods = []
        while not self._is(TokenType.DIR_END):
            if self._at_end():
                raise DirectiveError('incomplete limit_except directive - missing ";"')
            token = self._take()
            if not is_valid_method(token.data):
                raise DirectiveError(
                    "invalid content for limit_except directive - invalid method"
                )
            methods.append(token.data)
        self.pos += 1
        return LimitExcept(methods=methods)

    def _root(self) -> Root:
        if not self._is(TokenType.STRING):
            raise DirectiveError("incomplete root directive - missing path")
        root = Root(path=self._take().data)
        self._expect_end('incomplete root directive - missing ";"')
        return root

    def _error_page(self) -> ErrorPage:
        if self._at_end():
            raise DirectiveError("incomplete error_page directive - missing code")
        code = _stream_int(self._take().data)
        if code is None:
            raise DirectiveError(
                "invalid content for error_page directive - invalid code number"
            )
        token = self._peek()
        if token is None:
            raise DirectiveError("incomplete error_page directive - missing ';'")
        if token.type == TokenType.DIR_END:
            raise DirectiveError("invalid number of arguments for error_page directive")
        if not 300 <= code <= 599:
            raise DirectiveError(
                "invalid content for error_page directive - "
                "code must be between 300 and 599"
            )
        if token.type != TokenType.STRING:
            raise DirectiveError(
                "invalid content for error_page directive - missing or invalid uri"
            )
        page = ErrorPage(code=code, uri=self._take().data)
        self._expect_end("incomplete error_page directive - missing ';'")
        return page

    def _return(self) -> Return:
        if self._at_end() or self._is(TokenType.DIR_END):
            raise DirectiveError("invalid number of arguments for return directive")
        code = _stream_int(self._take().data)
        if code is None or not 0 <= code <= 999:
            raise DirectiveError("invalid argument for return directive")
        result = Return(code=code)
        if self._at_end():
            raise DirectiveError('incomplete return directive - missing ";"')
        if self._is(TokenType.DIR_END):
            self.pos += 1
            return result
        if not is_valid_url(self.tokens[self.pos].data):
            raise DirectiveError("invalid argument for return directive - invalid url")
        result.url = self._take().data
        self._expect_end('incomplete return directive - missing ";"')
        return result

    def _client_max_body_size(self) -> ClientMaxBodySize:
        if self._at_end() or self._is(TokenType.DIR_END):
            raise DirectiveError(
                "incomplete clinet_max_body_size directive - missing size number"
            )
        size = _stream_int(self._take().data)
        if size is None or size < 0:
            raise DirectiveError(
                "invalid argument for client_max_body_size directive - invalid number"
            )
        directive = ClientMaxBodySize(size=size)
        self._expect_end('incomplete client_max_body_size directive - missing ";"')
        return directive

    def _autoindex(self) -> AutoIndex:
        if self._at_end() or self._is(TokenType.DIR_END):
            raise DirectiveError("incomplete autoindex directive")
        word = self.tokens[self.pos].data
        if word == "on":
            directive = AutoIndex(state=True)
        elif word == "off":
            directive = AutoIndex(state=False)
        else:
            raise DirectiveError("invalid content for autoindex directive")
        self.pos += 1
        self._expect_end('incomplete autoindex directive - missing ";"')
        return directive


def parse_tokens(tokens: Sequence[Token]) -> Http:
    """Build the ``http`` block from tokens; raise DirectiveError if invalid."""
    http = Http()
    _Parser(tokens).consume(http)
    if not http.validate():
        raise DirectiveError("invalid directive inside of http block")
    return http


def parse_config_text(text: str) -> Http:
    """Parse configuration text into the ``http`` block."""
    return parse_tokens(tokenize(text))


def parse_config(path: Union[str, "os.PathLike[str]"]) -> Http:
    """Read and parse a configuration file."""
    text = Path(path).read_text(encoding="utf-8", errors="surrogateescape")
    return parse_config_text(text)