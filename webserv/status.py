"""Request parsing states, HTTP status codes and protocol limits."""

from __future__ import annotations

from enum import IntEnum

TIMEOUT_SECONDS = 10

MAX_HEADER = 100
MAX_URI_LENGTH = 4096
MAX_LINE_LENGTH = 8192
DEFAULT_MAX_BODY_SIZE = 1048576

CRLF = "\r\n"
END_HEADER = "\r\n\r\n"
HTTP_VERSION = "HTTP/1.1"


class RequestState(IntEnum):
    """Stages a request goes through while it is being parsed."""

    BEGIN = 0
    LINE = 1
    HEADERS = 2
    BODY = 3
    COMPLETE = 4
    ERROR = 5


class HttpStatusCode(IntEnum):
    """Status codes the request parser can settle on."""

    START = 0
    OK = 200
    BAD_REQUEST = 400
    METHOD_NOT_ALLOWED = 405
    REQUEST_TIMEOUT = 408
    LENGTH_REQUIRED = 411
    PAYLOAD_TOO_LARGE = 413
    URI_TOO_LONG = 414
    UNSUPPORTED_MEDIA_TYPE = 415
    HEADER_FIELDS_TOO_LARGE = 431
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501
    VERSION_NOT_SUPPORTED = 505


class HttpError(Exception):
    """A request could not be accepted; ``status`` says why."""

    def __init__(self, status: int, message: str = "") -> None:
        self.status = HttpStatusCode(status)
        super().__init__(message or f"{int(self.status)} {self.status.name}")