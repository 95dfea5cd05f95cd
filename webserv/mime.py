"""MIME type lookup and copying files aside for sending."""

from __future__ import annotations

import os
import shutil
import stat
import tempfile
from typing import Union

DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_TYPES = {
    ".html": "text/html",
    ".htm": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".json": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".svg": "image/svg+xml",
    ".ico": "image/x-icon",
    ".txt": "text/plain",
    ".pdf": "application/pdf",
    ".zip": "application/zip",
    ".tar": "application/x-tar",
    ".gz": "application/gzip",
    ".mp3": "audio/mpeg",
    ".mp4": "video/mp4",
    ".xml": "application/xml",
}

_SUBSTRING_TYPES = (
    (".html", "text/html"),
    (".css", "text/css"),
    (".js", "application/javascript"),
    (".png", "image/png"),
)


def mime_type(path: str) -> str:
    """Return the MIME type for the text after the last dot in ``path``."""
    dot = path.rfind(".")
    if dot != -1:
        return MIME_TYPES.get(path[dot:], DEFAULT_MIME_TYPE)
    return DEFAULT_MIME_TYPE


def mime_type_by_substring(path: str) -> str:
    """Guess a MIME type from a known extension anywhere in ``path``."""
    return next(
        (kind for ext, kind in _SUBSTRING_TYPES if ext in path), "text/plain"
    )


def copy_to_temp(
    path: Union[str, "os.PathLike[str]"],
    directory: Union[str, "os.PathLike[str]"] = os.path.join("tmp", "response"),
) -> str:
    """Copy a readable regular file into ``directory``; return the copy's path."""
    os.makedirs(directory, exist_ok=True)
    try:
        info = os.stat(path)
    except OSError as exc:
        raise FileNotFoundError(f"no such file: {os.fspath(path)}") from exc
    if not stat.S_ISREG(info.st_mode):
        raise FileNotFoundError(f"not a regular file: {os.fspath(path)}")
    if not os.access(path, os.R_OK):
        raise PermissionError(f"file is not readable: {os.fspath(path)}")

    fd, target = tempfile.mkstemp(prefix="resp_", suffix=".tmp", dir=directory)
    try:
        with open(path, "rb") as src, os.fdopen(fd, "wb") as dst:
            shutil.copyfileobj(src, dst)
    except BaseException:
        os.unlink(target)
        raise
    return target