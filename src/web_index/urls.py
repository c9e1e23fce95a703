"""Canonical URL text.

Records, queries and table rows all carry URLs in the same canonical form so
that equality, partitioning and round trips never depend on how a caller
happened to spell a URL:

  - scheme and host are lower-cased
  - the default port of the scheme is dropped
  - an empty path on a web scheme becomes "/"

Canonicalisation is idempotent: ``canonical_url(canonical_url(u)) == canonical_url(u)``.
"""

from __future__ import annotations

import re
import urllib.parse

from .errors import InvalidUrl

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*:")

# Schemes whose URLs must carry a host, with their default ports.
_DEFAULT_PORTS = {
    "http": 80,
    "https": 443,
    "ws": 80,
    "wss": 443,
    "ftp": 21,
}


def canonical_url(url: str) -> str:
    """Return the canonical text of ``url`` or raise `InvalidUrl`."""

    u = str(url or "").strip()
    if not u:
        raise InvalidUrl(url, "empty url")
    if any(c.isspace() for c in u):
        raise InvalidUrl(url, "whitespace in url")
    if not _SCHEME_RE.match(u):
        raise InvalidUrl(url, "relative url without a scheme")

    try:
        parts = urllib.parse.urlsplit(u)
        port = parts.port
    except ValueError as e:
        raise InvalidUrl(url, str(e)) from e

    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        return urllib.parse.urlunsplit((scheme, parts.netloc, parts.path, parts.query, parts.fragment))

    host = parts.hostname or ""
    if not host:
        raise InvalidUrl(url, "empty host")

    netloc = f"[{host}]" if ":" in host else host
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"
    userinfo, sep, _ = parts.netloc.rpartition("@")
    if sep:
        netloc = f"{userinfo}@{netloc}"

    path = parts.path or "/"
    return urllib.parse.urlunsplit((scheme, netloc, path, parts.query, parts.fragment))


def url_host(url: str) -> str:
    """Return the lower-cased host of a URL, or "" when it has none."""

    try:
        return urllib.parse.urlsplit(str(url)).hostname or ""
    except ValueError:
        return ""
