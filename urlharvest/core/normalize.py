from __future__ import annotations

import posixpath
from typing import Iterable, Set
from urllib.parse import urlsplit, urlunsplit


def normalize_extensions(extensions: Iterable[str]) -> Set[str]:
    return {e.strip().lstrip('.').lower() for e in extensions if e and e.strip().lstrip('.')}


def url_extension(url: str) -> str:
    path = urlsplit(url).path
    ext = posixpath.splitext(posixpath.basename(path))[1]
    return ext.lstrip('.').lower()


def is_blacklisted(url: str, extensions: Set[str]) -> bool:
    if not extensions:
        return False
    return url_extension(url) in extensions


def endpoint_key(url: str) -> str:
    """Scheme, host and path only; used to keep one URL per endpoint."""
    parts = urlsplit(url)
    netloc = parts.netloc.lower()  # lowercase host only
    return urlunsplit((parts.scheme, netloc, parts.path or '/', '', ''))
