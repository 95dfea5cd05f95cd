"""Receiving a request body into a temporary file."""

from __future__ import annotations

import logging
import os
import stat
import tempfile
import weakref
from typing import Optional, Union

from webserv.status import CRLF, END_HEADER, HttpError, HttpStatusCode

log = logging.getLogger(__name__)

DEFAULT_UPLOAD_DIR = "/tmp/uploads"
TEMP_PREFIX = "webserv_body_"

PathLike = Union[str, "os.PathLike[str]"]

_FILENAME_MARKER = b'filename="'
_END_HEADER = END_HEADER.encode()


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def ensure_upload_dir(path: PathLike) -> bool:
    """Make sure ``path`` is a directory, creating it if it is missing."""
    try:
        info = os.stat(path)
    except OSError:
        try:
            os.mkdir(path, 0o755)
        except OSError:
            log.error("Failed to create upload directory %s", os.fspath(path))
            return False
        return True
    if not stat.S_ISDIR(info.st_mode):
        log.error("%s exists but is not a directory", os.fspath(path))
        return False
    return True


class RequestBody:
    """The body of one request, spooled to a temporary file as it arrives.

    Bodies framed by Content-Length complete once that many bytes have
    arrived; chunked bodies complete on their first data and are kept
    with their chunk framing. A completed multipart body has its first
    file part saved into the upload directory.
    """

    def __init__(
        self,
        temp_dir: Optional[PathLike] = None,
        upload_dir: PathLike = DEFAULT_UPLOAD_DIR,
    ) -> None:
        self.temp_dir = temp_dir
        self.upload_dir = os.fspath(upload_dir)
        self.expected = False
        self.multipart = False
        self.content_type = ""
        self.upload_path = ""
        self.status_code = HttpStatusCode.START
        self.temp_filename = ""
        self._finalizer: Optional[weakref.finalize] = None
        self._reset()

    def __enter__(self) -> "RequestBody":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.cleanup()

    def _reset(self) -> None:
        self._new_temp_file()
        self.raw_data = b""
        self.boundary = ""
        self.chunked = False
        self.content_length = 0
        self.bytes_received = 0
        self.completed = False

    def _new_temp_file(self) -> None:
        try:
            fd, path = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=self.temp_dir)
        except OSError as exc:
            self.status_code = HttpStatusCode.INTERNAL_SERVER_ERROR
            raise HttpError(self.status_code, "cannot create body file") from exc
        os.close(fd)
        self.temp_filename = path
        self._finalizer = weakref.finalize(self, _remove_quietly, path)

    def cleanup(self) -> None:
        """Remove the temporary file."""
        if self._finalizer is not None:
            self._finalizer()
            self._finalizer = None
        self.temp_filename = ""

    def clear(self) -> None:
        """Start over with a fresh temporary file, ready for the next body."""
        self.cleanup()
        self._reset()

    def _append(self, data: bytes) -> None:
        try:
            with open(self.temp_filename, "ab") as spool:
                spool.write(data)
        except OSError as exc:
            self.status_code = HttpStatusCode.INTERNAL_SERVER_ERROR
            raise HttpError(self.status_code, "cannot write body file") from exc
        self.bytes_received += len(data)
        if (
            not self.chunked
            and self.content_length > 0
            and self.bytes_received >= self.content_length
        ):
            self.completed = True

    def _load(self) -> None:
        try:
            with open(self.temp_filename, "rb") as spool:
                self.raw_data = spool.read()
        except OSError:
            pass

    def _store(self) -> None:
        try:
            with open(self.temp_filename, "wb") as spool:
                spool.write(self.raw_data)
        except OSError:
            pass

    def receive(self, data: bytes) -> bool:
        """Take in more body bytes.

        Returns False when the body was already complete or a completed
        multipart body held no file that could be saved; raises HttpError
        when the bytes cannot be stored.
        """
        if self.completed:
            return False
        self._append(data)

        if self.multipart and self.completed:
            if not self._extract_file():
                log.error("Failed to extract file from multipart data")
                return False
            return True
        if self.chunked:
            self._load()
            self.completed = True
            self._store()
        elif self.content_length > 0 and self.bytes_received >= self.content_length:
            self.completed = True
        return True

    def _extract_file(self) -> bool:
        if not self.multipart or not self.boundary:
            log.error("Upload failed: not multipart or missing boundary")
            return False
        self._load()
        raw = self.raw_data
        delimiter = b"--" + self.boundary.encode("utf-8", "surrogateescape")

        first = raw.find(delimiter)
        name_start = -1 if first == -1 else raw.find(_FILENAME_MARKER, first)
        if name_start == -1:
            log.error("Upload failed: no filename found in multipart data")
            return False
        name_start += len(_FILENAME_MARKER)
        name_end = raw.find(b'"', name_start)
        if name_end == -1:
            return False
        filename = raw[name_start:name_end].decode("utf-8", "surrogateescape")

        content_start = raw.find(_END_HEADER, name_end)
        if content_start == -1:
            return False
        content_start += len(_END_HEADER)
        content_end = raw.find(delimiter, content_start)
        if content_end == -1:
            return False
        content_end -= len(CRLF)
        if content_end < content_start:
            content = raw[content_start:]
        else:
            content = raw[content_start:content_end]

        if not ensure_upload_dir(self.upload_dir):
            return False
        target = self.upload_dir.rstrip("/") + "/" + filename
        try:
            with open(target, "wb") as out:
                out.write(content)
        except OSError:
            return False
        log.info("File uploaded: %s (%d bytes)", target, len(content))
        self.upload_path = target
        return True

    def extract_boundary(self, content_type: str) -> str:
        """Take the multipart boundary from a Content-Type value.

        Returns the boundary, or an empty string (leaving the stored one
        untouched) when there is none.
        """
        pos = content_type.find("boundary=")
        if pos == -1:
            return ""
        boundary = content_type[pos + len("boundary="):].strip(' \t"')
        if not boundary:
            return ""
        self.boundary = boundary
        return boundary