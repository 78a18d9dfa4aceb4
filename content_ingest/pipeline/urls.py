"""
URL Handling
============
Validation and content-type classification for submitted URLs.

This module provides:
- ``validate_url``: scheme, length and internal-address checks
- ``classify_content_type``: map a URL onto a ``ContentType``
"""

import ipaddress
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

from ..storage.models import ContentType

MAX_URL_LENGTH = 2048

DANGEROUS_SCHEMES = ("javascript:", "data:", "vbscript:", "file:")
ALLOWED_SCHEMES = ("http", "https")

INTERNAL_HOSTNAMES = frozenset({
    "localhost",
    "localhost.localdomain",
    "0.0.0.0",
    "metadata.google.internal",
})

YOUTUBE_HOSTS = frozenset({"youtube.com", "www.youtube.com", "m.youtube.com", "music.youtube.com"})
X_HOSTS = frozenset({"x.com", "www.x.com", "twitter.com", "www.twitter.com", "mobile.twitter.com"})
PODCAST_HOSTS = frozenset({
    "podcasts.apple.com",
    "open.spotify.com",
    "anchor.fm",
    "podbean.com",
    "buzzsprout.com",
    "simplecast.com",
    "megaphone.fm",
    "libsyn.com",
    "transistor.fm",
    "captivate.fm",
    "soundcloud.com",
})
AUDIO_EXTENSIONS = (".mp3", ".m4a", ".wav", ".ogg", ".aac", ".flac", ".opus")


@dataclass(frozen=True)
class UrlValidation:
    """Result of ``validate_url``."""

    is_valid: bool
    url: Optional[str] = None
    error: Optional[str] = None


def _is_internal_host(hostname: str) -> bool:
    if hostname in INTERNAL_HOSTNAMES or hostname.endswith(".localhost"):
        return True
    try:
        address = ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
        or address.is_multicast
    )


def _normalize_netloc(parts) -> str:
    """Lowercase the host only; userinfo and port are kept as given."""
    userinfo, _, _ = parts.netloc.rpartition("@")
    host = parts.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    netloc = f"{userinfo}@{host}" if userinfo else host
    if parts.port is not None:
        netloc = f"{netloc}:{parts.port}"
    return netloc


def validate_url(url: str) -> UrlValidation:
    """
    Check a user-supplied URL before anything fetches it.

    Returns the normalized URL (lowercased scheme and host, fragment
    dropped) on success, otherwise a short error message.
    """
    if not url or not isinstance(url, str):
        return UrlValidation(False, error="URL is required")

    trimmed = url.strip()
    if len(trimmed) > MAX_URL_LENGTH:
        return UrlValidation(False, error=f"URL is too long (max {MAX_URL_LENGTH} characters)")

    lower = trimmed.lower()
    if any(lower.startswith(scheme) for scheme in DANGEROUS_SCHEMES):
        return UrlValidation(False, error="Invalid URL scheme")

    try:
        parts = urlsplit(trimmed)
        hostname = parts.hostname
        parts.port  # raises on a malformed port
    except ValueError:
        return UrlValidation(False, error="Invalid URL format")

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        return UrlValidation(False, error="Only HTTP and HTTPS URLs are allowed")
    if not hostname:
        return UrlValidation(False, error="Invalid URL format")
    if _is_internal_host(hostname.lower()):
        return UrlValidation(False, error="Internal URLs are not allowed")

    normalized = urlunsplit((
        parts.scheme.lower(),
        _normalize_netloc(parts),
        parts.path,
        parts.query,
        "",
    ))
    return UrlValidation(True, url=normalized)


def classify_content_type(url: str) -> ContentType:
    """Best-effort content type from the URL alone; defaults to article."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return ContentType.ARTICLE

    hostname = (parts.hostname or "").lower()
    path = parts.path.lower()

    if hostname == "youtu.be":
        return ContentType.YOUTUBE
    if hostname in YOUTUBE_HOSTS and (
        "v=" in parts.query or path.startswith("/shorts/") or path.startswith("/live/")
    ):
        return ContentType.YOUTUBE

    if hostname in X_HOSTS:
        return ContentType.X_POST

    bare_host = hostname[4:] if hostname.startswith("www.") else hostname
    if path.endswith(AUDIO_EXTENSIONS):
        return ContentType.PODCAST
    if bare_host in PODCAST_HOSTS or any(bare_host.endswith("." + h) for h in PODCAST_HOSTS):
        if bare_host != "open.spotify.com" or path.startswith("/episode/"):
            return ContentType.PODCAST

    if path.endswith(".pdf"):
        return ContentType.PDF

    return ContentType.ARTICLE
