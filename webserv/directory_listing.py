"""HTML listings of directory contents."""

from __future__ import annotations

import os
import stat


def generate_listing(path: str, uri: str) -> str:
    """Return an HTML page listing the entries of ``path`` under ``uri``.

    Entries that cannot be examined are left out; a directory that cannot
    be opened raises OSError.
    """
    names = sorted(
        name for name in os.listdir(path) if name not in (".", "..")
    )
    base = uri if uri.endswith("/") else uri + "/"
    parts = [
        f"<html><head><title>Index of {uri}</title></head>"
        f"<body><h1>Index of {uri}</h1><hr><ul>"
    ]
    for name in names:
        try:
            info = os.stat(path + "/" + name)
        except OSError:
            continue
        link = base + name
        if stat.S_ISDIR(info.st_mode):
            parts.append(f"<li><a href='{link}/'>{name}/</a></li>")
        else:
            parts.append(f"<li><a href='{link}'>{name}</a></li>")
    parts.append("</ul><hr></body></html>")
    return "".join(parts)