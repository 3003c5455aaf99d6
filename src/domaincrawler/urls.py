"""
URL canonicalization and link filtering.
"""
from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urljoin, urlsplit, urlunsplit

# Non-page file extensions to skip (compared without the leading dot)
SKIP_EXTENSIONS: frozenset[str] = frozenset((
    # images
    "jpg", "jpeg", "png", "gif", "bmp", "tiff", "svg", "ico", "webp",
    # documents
    "pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "txt", "rtf",
    "eps", "ps", "ai",
    # archives
    "zip", "rar", "tar", "gz", "7z", "bz2",
    # audio / video
    "mp3", "mp4", "avi", "mov", "wmv", "flv", "wav", "ogg",
    # fonts
    "ttf", "woff", "woff2", "eot",
    # stylesheets, scripts, structured data
    "css", "js", "xml", "json", "rss", "atom", "csv",
    # executables and packages
    "exe", "msi", "dmg", "deb", "rpm", "bin",
    # calendar
    "ics",
))

# Link schemes that never lead to a crawlable page
SKIP_PROTOCOLS: frozenset[str] = frozenset(("mailto", "tel", "javascript", "data", "ftp"))

HTTP_SCHEMES: frozenset[str] = frozenset(("http", "https"))

_SKIP_PROTOCOLS_RE = re.compile(
    r"^(?:%s):" % "|".join(sorted(SKIP_PROTOCOLS)),
    re.IGNORECASE,
)


def strip_www(host: str) -> str:
    """Drop a literal leading ``www.`` from a host name."""
    return host[4:] if host.startswith("www.") else host


def normalize_url(url: str) -> str:
    """
    Canonicalize a URL for deduplication.

    - Strips a leading ``www.`` from the host (port, path and query are kept)
    - Drops the fragment (#...)
    - Drops one trailing slash

    URLs that cannot be parsed are only stripped of fragment and slash.
    """
    normalized = url

    try:
        parsed = urlsplit(url)
        host = parsed.hostname or ""
        port = parsed.port
    except ValueError:
        parsed = None

    if parsed is not None and host.startswith("www."):
        netloc = strip_www(host)
        if port is not None:
            netloc = f"{netloc}:{port}"
        normalized = urlunsplit((parsed.scheme, netloc, parsed.path, parsed.query, ""))

    normalized = normalized.split("#", 1)[0]

    if normalized.endswith("/"):
        normalized = normalized[:-1]

    return normalized


def is_protocol_skippable(link: Optional[str]) -> bool:
    """Check for blank links and non-web schemes (mailto:, tel:, ...)."""
    if link is None or not link.strip():
        return True
    return _SKIP_PROTOCOLS_RE.match(link) is not None


def is_extension_skippable(url: str) -> bool:
    """
    Check whether the last path segment names a non-page file.

    Only the final segment is inspected, so ``/v1.2/page`` is kept while
    ``/files/report.PDF`` is skipped. Malformed URLs are treated as skippable.
    """
    try:
        parsed = urlsplit(url)
    except ValueError:
        return True
    if not parsed.scheme or not parsed.netloc:
        return True

    last_segment = parsed.path.rsplit("/", 1)[-1]
    if "." not in last_segment:
        return False

    extension = last_segment.rsplit(".", 1)[1].lower()
    return extension in SKIP_EXTENSIONS


class UrlFilter:
    """Resolves raw links and keeps only crawlable pages on the base domain."""

    def __init__(self, base_domain: str) -> None:
        self.base_domain = strip_www(base_domain.lower())

    def is_same_domain(self, host: Optional[str]) -> bool:
        return strip_www((host or "").lower()) == self.base_domain

    def resolve_and_filter(self, raw_link: str, base_url: str) -> Optional[str]:
        """Return the canonical absolute form of ``raw_link``, or None to drop it."""
        if is_protocol_skippable(raw_link):
            return None

        try:
            resolved = urljoin(base_url, raw_link.strip())
            parsed = urlsplit(resolved)
            host = parsed.hostname
        except ValueError:
            return None

        if parsed.scheme.lower() not in HTTP_SCHEMES:
            return None

        if not self.is_same_domain(host):
            return None

        if is_extension_skippable(resolved):
            return None

        return normalize_url(resolved)
