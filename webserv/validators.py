"""Checks used while parsing configuration directives."""

from __future__ import annotations

import re
from typing import Optional, Sequence

from webserv.tokenizer import Token, TokenType

_VALID_METHODS = frozenset({"GET", "POST", "DELETE"})
_STREAM_INT_RE = re.compile(r"[ \t\n\r\f\v]*([+-]?[0-9]+)")


def _stream_int(text: str) -> Optional[int]:
    """Read a whole string as one integer, leading whitespace allowed."""
    match = _STREAM_INT_RE.fullmatch(text)
    if match is None:
        return None
    value = int(match.group(1))
    if not -(2**31) <= value < 2**31:
        return None
    return value


def _is_plain_word(text: str) -> bool:
    """Return whether the text is a non-empty word with no NUL character."""
    return bool(text) and "\0" not in text


def is_valid_uri(uri: str) -> bool:
    """Accept any location URI that is a non-empty word."""
    return _is_plain_word(uri)


def is_valid_url(url: str) -> bool:
    """Accept any return URL that is a non-empty word."""
    return _is_plain_word(url)


def is_valid_method(method: str) -> bool:
    """Return whether the method is one the server handles."""
    return method in _VALID_METHODS


def is_port_only(tokens: Sequence[Token], pos: int) -> bool:
    """Return whether the token at ``pos`` is a port number in 0..65535."""
    port = _stream_int(tokens[pos].data)
    return port is not None and 0 <= port <= 65535


def is_host_and_port(tokens: Sequence[Token], pos: int) -> bool:
    """Return whether the tokens at ``pos`` form ``host`` or ``host:port``."""
    host = tokens[pos].data
    if host not in ("localhost", "*") and not is_ipv4(host):
        return False
    pos += 1
    if pos >= len(tokens):
        return False
    if tokens[pos].type == TokenType.COLON:
        pos += 1
        if pos >= len(tokens) or not is_port_only(tokens, pos):
            return False
    return True


def is_ipv4(addr: str) -> bool:
    """Return whether the text is four dot-separated octets.

    An empty octet counts as zero, but the address may not end in a dot.
    """
    if not addr or addr.endswith("."):
        return False
    octets = addr.split(".")
    if len(octets) != 4:
        return False
    return all(
        all(c in "0123456789" for c in octet) and int(octet or "0") <= 255
        for octet in octets
    )