"""Splitting configuration text into tokens."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List


class TokenType(Enum):
    STRING = 0
    BLOCK_START = 1
    BLOCK_END = 2
    DIR_END = 3
    COLON = 4
    EQUAL = 5


@dataclass(frozen=True)
class Token:
    type: TokenType
    data: str


_PUNCTUATION = {
    ";": TokenType.DIR_END,
    "{": TokenType.BLOCK_START,
    "}": TokenType.BLOCK_END,
    ":": TokenType.COLON,
    "=": TokenType.EQUAL,
}

_WORD_RE = re.compile(
    r"""[ \t\n]*(?:
        (?P<punct>[{};:=])
      | (?P<comment>\#[^\n]*)
      | (?P<word>(?:[^ \t\n{};:\#'"]|'[^']*(?:'|\Z)|"[^"]*(?:"|\Z))+)
    )""",
    re.VERBOSE,
)


def _iter_words(content: str) -> Iterator[str]:
    content = content.split("\0", 1)[0]
    pos = 0
    while pos < len(content):
        match = _WORD_RE.match(content, pos)
        if match is None:
            break
        pos = match.end()
        yield match.group(match.lastgroup)


def split_words(content: str) -> List[str]:
    """Split text into words, punctuation and ``#`` comments.

    Quoted runs keep their quotes and may contain separators; an
    unterminated quote runs to the end of the text.
    """
    return list(_iter_words(content))


def tokenize(content: str) -> List[Token]:
    """Turn configuration text into tokens, dropping comments."""
    return [
        Token(_PUNCTUATION.get(word[0], TokenType.STRING), word)
        for word in _iter_words(content)
        if not word.startswith("#")
    ]