"""Error responses, using configured error pages where there are any."""

from __future__ import annotations

import logging
import os
import stat
from typing import Any, Optional, Sequence

from webserv.response import Response

log = logging.getLogger(__name__)

DEFAULT_ERROR_DIR = "www"
DEFAULT_ROOT = "www"


def _regular_file_size(path: str) -> Optional[int]:
    try:
        info = os.stat(path)
    except OSError:
        return None
    return info.st_size if stat.S_ISREG(info.st_mode) else None


def _attach_html(response: Response, path: str, size: int) -> None:
    response.file_path = path
    response.set_content_type("text/html")
    response.file_size = size


def error_response(status_code: int, error_dir: str = DEFAULT_ERROR_DIR) -> Response:
    """Build an error response served from ``error_dir/error_<code>.html``.

    The page is written with a default message if it does not exist yet;
    if it cannot be written the response has no body.
    """
    response = Response(status_code)
    path = f"{os.fspath(error_dir)}/error_{status_code}.html"
    size = _regular_file_size(path)
    if size is None:
        try:
            with open(path, "w", encoding="utf-8") as page:
                page.write(
                    f"Error {status_code}: Sorry, an error ({status_code}) occurred.\n"
                )
        except OSError:
            log.error("cannot write error page %s", path)
        size = _regular_file_size(path)
    if size is not None:
        _attach_html(response, path, size)
    return response


def error_response_with_mapping(conn: Any, status_code: int) -> Response:
    """Build an error response from the connection's error_page, if it has one."""
    if conn is not None:
        page = conn.error_page_for_code(status_code)
        if page is not None and page.uri:
            root = conn.root()
            error_path = root.path if root is not None and root.path else DEFAULT_ROOT
            if not error_path.endswith("/"):
                error_path += "/"
            uri = page.uri[1:] if page.uri.startswith("/") else page.uri
            error_path += uri
            size = _regular_file_size(error_path)
            if size is not None:
                response = Response(status_code)
                _attach_html(response, error_path, size)
                return response
    return error_response(status_code)


def method_not_allowed_response(conn: Any, allowed_methods: Sequence[str]) -> Response:
    """Build a 405 response listing the allowed methods."""
    response = error_response_with_mapping(conn, 405)
    response.add_header("Allow", ", ".join(allowed_methods))
    return response


def not_found_response(conn: Any) -> Response:
    return error_response_with_mapping(conn, 404)


def forbidden_response() -> Response:
    return error_response(403)


def internal_error_response() -> Response:
    return error_response(500)