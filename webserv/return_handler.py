"""Answering requests whose configuration holds a ``return`` directive."""

from __future__ import annotations

import os
import stat
from typing import Optional

from webserv.connection import Connection
from webserv.directives import DirectiveType
from webserv.error_response import DEFAULT_ROOT, error_response_with_mapping
from webserv.response import Response, redirect_response, serve_file


def _is_regular_file(path: str) -> bool:
    try:
        return stat.S_ISREG(os.stat(path).st_mode)
    except OSError:
        return False


def handle_return(conn: Optional[Connection]) -> Response:
    """Build the response a ``return`` directive asks for.

    3xx codes with a URL redirect; 4xx and 5xx codes serve the page the
    URL names under the root, or an error page; any other code gets an
    error response with that code. Without a return directive a plain
    200 response is returned.
    """
    ret = conn.return_directive() if conn is not None else None
    if ret is None:
        return Response()

    location = conn.location()
    req_uri = conn.req.line.uri if conn.req is not None else conn.uri

    apply = True
    if location is not None and location.get_directive(DirectiveType.RETURN) is ret:
        loc_uri = location.uri or ""
        if location.exact_match:
            apply = req_uri == loc_uri
        else:
            apply = bool(loc_uri) and req_uri.startswith(loc_uri)
    if not apply:
        return Response()

    code = ret.code
    url = ret.url or ""
    if 300 <= code < 400 and url:
        target = url if url.startswith("/") else "/" + url
        return redirect_response(code, target)
    if 400 <= code < 600 and url.startswith("/"):
        root = conn.root()
        file_path = root.path if root is not None and root.path else DEFAULT_ROOT
        if not file_path.endswith("/"):
            file_path += "/"
        file_path += url[1:]
        if _is_regular_file(file_path):
            return serve_file(file_path, "text/html", code)
    return error_response_with_mapping(conn, code)