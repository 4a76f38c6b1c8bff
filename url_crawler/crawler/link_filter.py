"""
Link normalization and same-domain filtering.
"""

import logging
from typing import FrozenSet, NamedTuple, Optional, Union
from urllib.parse import urljoin, urlparse, urlunparse

from ..errors import LinkResolutionError

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {'http': 80, 'https': 443}

# Avoid common non-content file extensions
SKIP_EXTENSIONS: FrozenSet[str] = frozenset((
    '.jpg', '.jpeg', '.png', '.gif', '.bmp', '.svg', '.webp', '.ico',
    '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
    '.zip', '.rar', '.tar', '.gz', '.7z', '.exe', '.dmg', '.iso',
    '.mp3', '.mp4', '.avi', '.mov', '.wmv', '.flv', '.wav', '.webm',
    '.css', '.js', '.map', '.woff', '.woff2', '.ttf', '.eot',
))


class Authority(NamedTuple):
    """Scheme, host and non-default port of a URL."""
    scheme: str
    host: str
    port: Optional[int] = None

    def matches(self, other: 'Authority', match_scheme: bool = False) -> bool:
        if (self.host, self.port) != (other.host, other.port):
            return False
        return not match_scheme or self.scheme == other.scheme


def _split(url: str):
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError as e:
        raise LinkResolutionError(url, str(e)) from e

    scheme = parsed.scheme.lower()
    if scheme not in DEFAULT_PORTS:
        raise LinkResolutionError(url, f"unsupported scheme {scheme!r}")

    host = (parsed.hostname or '').lower()
    if not host:
        raise LinkResolutionError(url, "missing host")

    if port == DEFAULT_PORTS[scheme]:
        port = None
    return parsed, scheme, host, port


def authority_of(url: str) -> Authority:
    """Authority of an absolute HTTP(S) URL."""
    _, scheme, host, port = _split(url)
    return Authority(scheme, host, port)


def normalize_url(url: str, keep_fragments: bool = False) -> str:
    """
    Canonicalize an absolute URL so equivalent URLs compare equal.

    - Lowercases scheme and host, drops user info and default ports
    - Empty path becomes '/', other paths lose their trailing slash
    - Keeps query strings (they matter for uniqueness)
    - Drops the fragment unless ``keep_fragments`` is set
    """
    parsed, scheme, host, port = _split(url.strip())

    if ':' in host:
        host = f"[{host}]"
    netloc = f"{host}:{port}" if port else host

    path = parsed.path or '/'
    if len(path) > 1 and path.endswith('/'):
        path = path.rstrip('/') or '/'

    return urlunparse((
        scheme,
        netloc,
        path,
        parsed.params,
        parsed.query,
        parsed.fragment if keep_fragments else ''
    ))


def resolve_link(raw_link: str, base_url: str, keep_fragments: bool = False) -> str:
    """Resolve a raw href against the page URL and normalize it."""
    href = (raw_link or '').strip()
    if not href:
        raise LinkResolutionError(raw_link, "empty link")
    if href.startswith('#'):
        raise LinkResolutionError(raw_link, "fragment-only link")

    try:
        absolute_url = urljoin(base_url, href)
    except ValueError as e:
        raise LinkResolutionError(raw_link, str(e)) from e
    return normalize_url(absolute_url, keep_fragments)


def resolve_and_filter(raw_link: str, base_url: str,
                       seed_authority: Union[Authority, str], *,
                       keep_fragments: bool = False,
                       match_scheme: bool = False,
                       skip_extensions: FrozenSet[str] = SKIP_EXTENSIONS) -> Optional[str]:
    """
    Return the normalized URL of ``raw_link`` if it belongs to the seed's site.

    Relative links are resolved against ``base_url``. Malformed links,
    non-HTTP(S) links, static assets and links to other hosts yield None.
    """
    if isinstance(seed_authority, str):
        seed_authority = authority_of(seed_authority)

    try:
        url = resolve_link(raw_link, base_url, keep_fragments)
        authority = authority_of(url)
    except LinkResolutionError as e:
        logger.debug(f"Dropping link: {e}")
        return None

    if not seed_authority.matches(authority, match_scheme):
        return None

    path = urlparse(url).path.lower()
    if any(path.endswith(ext) for ext in skip_extensions):
        return None

    return url


class LinkFilter:
    """Same-domain link filter bound to a seed URL."""

    def __init__(self, seed_url: str, keep_fragments: bool = False,
                 match_scheme: bool = False,
                 skip_extensions: FrozenSet[str] = SKIP_EXTENSIONS):
        self.seed_authority = authority_of(seed_url)
        self.keep_fragments = keep_fragments
        self.match_scheme = match_scheme
        self.skip_extensions = frozenset(skip_extensions)

    def __call__(self, raw_link: str, base_url: str) -> Optional[str]:
        return resolve_and_filter(
            raw_link,
            base_url,
            self.seed_authority,
            keep_fragments=self.keep_fragments,
            match_scheme=self.match_scheme,
            skip_extensions=self.skip_extensions
        )

    def in_scope(self, url: str) -> bool:
        """True if the absolute ``url`` is on the seed's site."""
        try:
            authority = authority_of(url)
        except LinkResolutionError:
            return False
        return self.seed_authority.matches(authority, self.match_scheme)

    def normalize(self, url: str) -> str:
        return normalize_url(url, self.keep_fragments)
