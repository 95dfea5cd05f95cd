"""Choosing and building the response for a parsed request."""

from __future__ import annotations

import logging
import os
import shutil
import stat
from typing import Dict, List, Optional

from webserv.connection import Connection
from webserv.directives import DirectiveType, ErrorPage, Location, Root
from webserv.directory_listing import generate_listing
from webserv.error_response import (
    forbidden_response,
    internal_error_response,
    method_not_allowed_response,
    not_found_response,
)
from webserv.mime import mime_type
from webserv.response import Response, serve_file
from webserv.return_handler import handle_return

log = logging.getLogger(__name__)

DEFAULT_ROOT = "www"
DEFAULT_INDEX_FILES = ("index.html", "index.htm")
DEFAULT_METHODS = ("GET",)
UPLOAD_DIR = "www/uploads"
CREATED_PAGE = "www/201.html"


def _is_dir(path: str) -> bool:
    try:
        return stat.S_ISDIR(os.stat(path).st_mode)
    except OSError:
        return False


def _is_file(path: str) -> bool:
    try:
        return stat.S_ISREG(os.stat(path).st_mode)
    except OSError:
        return False


def root_path(conn: Optional[Connection]) -> str:
    """Return the configured root directory, or the default one."""
    if conn is None:
        return DEFAULT_ROOT
    root = conn.root()
    return root.path if root is not None and root.path else DEFAULT_ROOT


def index_files(conn: Optional[Connection]) -> List[str]:
    """Return the index file names to try, in order."""
    files: List[str] = []
    if conn is not None:
        index = conn.index()
        if index is not None:
            files = [name for name in index.files if name]
    return files or list(DEFAULT_INDEX_FILES)


def autoindex_enabled(conn: Optional[Connection]) -> bool:
    """Return whether directory listings are switched on."""
    if conn is None:
        return False
    return bool(conn.autoindex().state)


def error_pages(conn: Optional[Connection]) -> Dict[int, str]:
    """Map status codes to error page URIs; the location wins over the server."""
    pages: Dict[int, str] = {}
    if conn is None:
        return pages
    location = conn.location()
    if location is not None:
        for page in location.find_all(DirectiveType.ERROR_PAGE):
            assert isinstance(page, ErrorPage)
            if page.uri:
                pages[page.code] = page.uri
    if conn.conserver is not None:
        for page in conn.conserver.find_all(DirectiveType.ERROR_PAGE):
            assert isinstance(page, ErrorPage)
            if page.uri:
                pages.setdefault(page.code, page.uri)
    return pages


def allowed_methods(conn: Optional[Connection]) -> List[str]:
    """Return the methods the location allows; GET alone by default."""
    methods: List[str] = []
    if conn is not None:
        limit = conn.limit_except()
        if limit is not None:
            methods = [method for method in limit.methods if method]
        else:
            log.debug("no limit_except applies")
    return methods or list(DEFAULT_METHODS)


def build_file_path(uri: str, root: str, location: Optional[Location]) -> str:
    """Join the root and the request URI; an exact location maps to the root."""
    path = root
    if path and not path.endswith("/"):
        path += "/"
    if location is not None and location.exact_match:
        return path
    return path + (uri[1:] if uri.startswith("/") else uri)


def copy_file(source_path: str, dest_dir: str, dest_name: str = "") -> bool:
    """Copy a regular file into ``dest_dir``, keeping its name unless one is given."""
    if not _is_file(source_path):
        log.error("Source file does not exist: %s", source_path)
        return False
    name = dest_name or source_path[source_path.rfind("/") + 1:]
    dest_path = dest_dir
    if dest_path and not dest_path.endswith("/"):
        dest_path += "/"
    dest_path += name
    try:
        shutil.copyfile(source_path, dest_path)
    except OSError as exc:
        log.error("Failed to copy %s to %s: %s", source_path, dest_path, exc)
        return False
    log.info("Copied: %s -> %s", source_path, dest_path)
    return True


def _location_root(location: Optional[Location]) -> Optional[str]:
    if location is None:
        return None
    found = location.get_directive(DirectiveType.ROOT)
    if isinstance(found, Root) and found.path:
        return found.path
    return None


def _serve_directory(conn: Connection, file_path: str, root: str, uri: str) -> Response:
    for name in index_files(conn):
        index_path = file_path + "/" + name
        if _is_file(index_path):
            return serve_file(index_path, mime_type(index_path), 200)
    if autoindex_enabled(conn):
        try:
            listing = generate_listing(file_path, uri)
        except OSError:
            listing = ""
        directory = root or DEFAULT_ROOT
        listing_path = f"{directory}/autoindex_{os.getpid()}.html"
        try:
            with open(listing_path, "w", encoding="utf-8") as out:
                out.write(listing)
        except OSError:
            log.error("cannot write directory listing %s", listing_path)
        if _is_file(listing_path):
            return serve_file(listing_path, "text/html", 200)
    return forbidden_response()


def handle_request(conn: Optional[Connection]) -> Response:
    """Build the response for the connection's request."""
    if conn is None or conn.req is None:
        return internal_error_response()
    request = conn.req
    method = request.line.method
    allowed = allowed_methods(conn)
    if not method or method not in allowed:
        return method_not_allowed_response(conn, allowed)

    location = conn.location()
    if conn.return_directive() is not None:
        return handle_return(conn)

    root = _location_root(location) or root_path(conn)
    uri = request.line.uri
    file_path = build_file_path(uri, root, location)
    log.debug("serving %s from %s", uri, file_path)

    if method == "GET":
        if _is_dir(file_path):
            return _serve_directory(conn, file_path, root, uri)
        if _is_file(file_path):
            return serve_file(file_path, mime_type(file_path), 200)
        page = error_pages(conn).get(404, "")
        if page and _is_file(page):
            return serve_file(page, mime_type(page), 404)
        return not_found_response(conn)

    if method == "POST":
        if copy_file(request.body.upload_path, UPLOAD_DIR):
            return serve_file(CREATED_PAGE, "text/html", 201)
    return not_found_response(conn)