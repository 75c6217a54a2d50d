# vulnmap/crawler/scope.py
"""URL normalization and same-origin scope checks"""

from typing import Optional, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit

from ..errors import InvalidURL


DEFAULT_PORTS = {"http": 80, "https": 443}

# References that never point at a fetchable page
NON_NAVIGABLE_PREFIXES = ("javascript:", "mailto:", "tel:", "data:", "about:", "#")


def normalize(url: str) -> str:
    """
    Canonicalize an absolute http(s) URL.

    Scheme and host are lower-cased, default ports and userinfo dropped,
    an empty path becomes "/", the fragment is removed and query pieces
    are stably sorted by parameter name without re-encoding their values.

    Raises:
        InvalidURL: if the URL is not an absolute http(s) URL with a host
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidURL(str(url), "empty URL")

    try:
        parts = urlsplit(url.strip())
        port = parts.port
    except ValueError as e:
        raise InvalidURL(url, str(e)) from e

    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise InvalidURL(url, "unsupported scheme")

    host = (parts.hostname or "").lower()
    if not host:
        raise InvalidURL(url, "missing host")

    if ":" in host:
        host = f"[{host}]"
    netloc = host
    if port is not None and port != DEFAULT_PORTS[scheme]:
        netloc = f"{host}:{port}"

    path = parts.path or "/"
    query = _sort_query(parts.query)

    return urlunsplit((scheme, netloc, path, query, ""))


def _sort_query(query: str) -> str:
    """Stable sort of raw query pieces by parameter name"""
    if not query:
        return ""
    pieces = [piece for piece in query.split("&") if piece]
    pieces.sort(key=lambda piece: piece.split("=", 1)[0])
    return "&".join(pieces)


def resolve(base_url: str, href: str) -> Optional[str]:
    """Resolve a reference found on a page, or None if it is not a crawlable URL"""
    if href is None:
        return None
    href = href.strip()
    if not href or href.lower().startswith(NON_NAVIGABLE_PREFIXES):
        return None
    try:
        return normalize(urljoin(base_url, href))
    except InvalidURL:
        return None


def origin(url: str) -> Tuple[str, str, int]:
    """Return the (scheme, host, effective port) tuple of a URL"""
    parts = urlsplit(normalize(url))
    port = parts.port or DEFAULT_PORTS[parts.scheme]
    return parts.scheme, parts.hostname or "", port


def origin_url(url: str) -> str:
    """Return scheme://host[:port] for a URL"""
    parts = urlsplit(normalize(url))
    return f"{parts.scheme}://{parts.netloc}"


def strip_query(url: str) -> str:
    """Return the normalized URL without its query string"""
    parts = urlsplit(normalize(url))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def in_scope(candidate: str, root: str) -> bool:
    """True iff candidate has exactly the same scheme, host and port as root"""
    try:
        return origin(candidate) == origin(root)
    except InvalidURL:
        return False


class ScopeGuard:
    """Same-origin scope check bound to one root URL"""

    def __init__(self, root_url: str):
        self.root = normalize(root_url)
        self._origin = origin(self.root)

    def in_scope(self, url: str) -> bool:
        try:
            return origin(url) == self._origin
        except InvalidURL:
            return False

    def rebase(self, root_url: str) -> "ScopeGuard":
        """Scope guard for a new root, used when the root itself redirects"""
        return ScopeGuard(root_url)

    def __repr__(self) -> str:
        return f"ScopeGuard({self.root!r})"
