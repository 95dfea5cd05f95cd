"""Configuration directives: the tree a configuration file parses into."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, FrozenSet, List, Optional

log = logging.getLogger(__name__)


class DirectiveType(Enum):
    HTTP = 0
    SERVER = 1
    LISTEN = 2
    SERVER_NAME = 3
    ERROR_PAGE = 4
    CLIENT_MAX_BODY_SIZE = 5
    LOCATION = 6
    ROOT = 7
    LIMIT_EXCEPT = 8
    RETURN = 9
    INDEX = 10
    AUTOINDEX = 11
    DENY = 12
    ALLOW = 13


class DirectiveError(Exception):
    """A directive in the configuration is malformed."""


class IncompleteConfig(Exception):
    """The configuration ended before it was complete."""

    def __init__(self, message: str = "Incomplete configuration") -> None:
        super().__init__(message)


class Directive:
    """Base of every configuration directive."""

    kind: ClassVar[DirectiveType]


@dataclass
class BlockDirective(Directive):
    """A directive that holds other directives."""

    directives: List[Directive] = field(default_factory=list)

    allowed_kinds: ClassVar[Optional[FrozenSet[DirectiveType]]] = None

    def add_directive(self, directive: Directive) -> None:
        self.directives.append(directive)

    def validate(self) -> bool:
        """Return whether every child is allowed inside this block."""
        if self.allowed_kinds is None:
            return True
        for child in self.directives:
            if child.kind not in self.allowed_kinds:
                log.error(
                    "Invalid directive inside of %s block",
                    self.kind.name.lower(),
                )
                return False
        return True

    def get_directive(self, kind: DirectiveType) -> Optional[Directive]:
        """Return the first child of the given kind, or None."""
        return next((d for d in self.directives if d.kind == kind), None)

    def find_all(self, kind: DirectiveType) -> List[Directive]:
        """Return every child of the given kind, in order."""
        return [d for d in self.directives if d.kind == kind]


T = DirectiveType


@dataclass
class Http(BlockDirective):
    kind: ClassVar[DirectiveType] = T.HTTP
    allowed_kinds: ClassVar[Optional[FrozenSet[DirectiveType]]] = frozenset(
        {T.SERVER, T.ERROR_PAGE, T.CLIENT_MAX_BODY_SIZE, T.ROOT,
         T.INDEX, T.AUTOINDEX, T.DENY, T.ALLOW}
    )


@dataclass
class Server(BlockDirective):
    kind: ClassVar[DirectiveType] = T.SERVER
    allowed_kinds: ClassVar[Optional[FrozenSet[DirectiveType]]] = frozenset(
        {T.LISTEN, T.SERVER_NAME, T.ERROR_PAGE, T.CLIENT_MAX_BODY_SIZE,
         T.LOCATION, T.ROOT, T.RETURN, T.INDEX, T.AUTOINDEX, T.ALLOW, T.DENY}
    )


@dataclass
class Location(BlockDirective):
    uri: Optional[str] = None
    exact_match: bool = False

    kind: ClassVar[DirectiveType] = T.LOCATION
    allowed_kinds: ClassVar[Optional[FrozenSet[DirectiveType]]] = frozenset(
        {T.ERROR_PAGE, T.CLIENT_MAX_BODY_SIZE, T.ROOT, T.LIMIT_EXCEPT,
         T.RETURN, T.INDEX, T.AUTOINDEX, T.DENY, T.ALLOW}
    )


@dataclass
class Listen(Directive):
    host: Optional[str] = None
    port: int = 0

    kind: ClassVar[DirectiveType] = T.LISTEN


@dataclass
class ServerName(Directive):
    names: List[str] = field(default_factory=list)

    kind: ClassVar[DirectiveType] = T.SERVER_NAME


@dataclass
class ErrorPage(Directive):
    code: int = 0
    uri: Optional[str] = None
    response_code: Optional[int] = None

    kind: ClassVar[DirectiveType] = T.ERROR_PAGE


@dataclass
class ClientMaxBodySize(Directive):
    size: int = 0

    kind: ClassVar[DirectiveType] = T.CLIENT_MAX_BODY_SIZE


@dataclass
class Root(Directive):
    path: Optional[str] = None

    kind: ClassVar[DirectiveType] = T.ROOT


@dataclass
class LimitExcept(Directive):
    methods: List[str] = field(default_factory=list)

    kind: ClassVar[DirectiveType] = T.LIMIT_EXCEPT


@dataclass
class Return(Directive):
    code: int = 0
    url: Optional[str] = None

    kind: ClassVar[DirectiveType] = T.RETURN


@dataclass
class Index(Directive):
    files: List[str] = field(default_factory=list)

    kind: ClassVar[DirectiveType] = T.INDEX


@dataclass
class AutoIndex(Directive):
    state: bool = False

    kind: ClassVar[DirectiveType] = T.AUTOINDEX


@dataclass
class Allow(Directive):
    allowed: Optional[str] = None

    kind: ClassVar[DirectiveType] = T.ALLOW


@dataclass
class Deny(Directive):
    denied: Optional[str] = None

    kind: ClassVar[DirectiveType] = T.DENY


del T