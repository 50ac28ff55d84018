"""
URL validation and sanitization for incoming music links.

Only links on whitelisted music service domains are processed. amazon.com is
shared with non-music content, so it is accepted only under ``/music``.
"""

from dataclasses import dataclass
import logging
import re
from urllib.parse import urlsplit

from unitune.core.services.codec import host_matches

logger = logging.getLogger(__name__)

WHITELISTED_DOMAINS: tuple[str, ...] = (
    "open.spotify.com",
    "spotify.link",
    "music.apple.com",
    "tidal.com",
    "listen.tidal.com",
    "music.youtube.com",
    "youtu.be",
    "deezer.page.link",
    "deezer.com",
    "music.amazon.com",
    "unitune.art",
)

PATH_RESTRICTED_DOMAINS: tuple[tuple[str, str], ...] = (("amazon.com", "/music"),)

DANGEROUS_SCHEMES: tuple[str, ...] = ("javascript:", "data:", "file:", "vbscript:")

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


@dataclass(frozen=True)
class UrlValidationResult:
    """Outcome of validate_and_sanitize; error_message is safe to show users."""

    is_valid: bool
    sanitized_url: str
    error_message: str | None = None


def sanitize_url(url: str) -> str:
    """Trim whitespace and strip null bytes and control characters."""
    return _CONTROL_CHARS.sub("", url.strip())


def is_safe_url(url: str) -> bool:
    """False for javascript:, data:, file: and similar schemes."""
    lowered = url.strip().lower()
    return not lowered.startswith(DANGEROUS_SCHEMES)


def is_valid_music_url(url: str) -> bool:
    """True if the URL's host is a whitelisted music service domain."""
    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
    except ValueError:
        return False

    if parts.scheme.lower() not in ("http", "https") or not host:
        return False

    if any(host_matches(host, domain) for domain in WHITELISTED_DOMAINS):
        return True

    for domain, prefix in PATH_RESTRICTED_DOMAINS:
        if host_matches(host, domain):
            return parts.path.startswith(prefix)

    return False


def is_valid(url: str) -> bool:
    return is_safe_url(url) and is_valid_music_url(url)


def _normalize(url: str) -> str:
    if "://" in url:
        return url
    candidate = f"https://{url}"
    if is_valid_music_url(candidate):
        return candidate
    return url


def validate_and_sanitize(url: str) -> UrlValidationResult:
    """
    Sanitize, add a missing https:// scheme, then check safety and whitelist.

    Example:
        >>> validate_and_sanitize("  open.spotify.com/track/abc\\n").sanitized_url
        'https://open.spotify.com/track/abc'
    """
    sanitized = _normalize(sanitize_url(url))

    if not is_safe_url(sanitized):
        logger.warning("Rejected URL with dangerous scheme")
        return UrlValidationResult(
            is_valid=False,
            sanitized_url=sanitized,
            error_message="This URL uses a dangerous protocol and cannot be processed.",
        )

    if not is_valid_music_url(sanitized):
        logger.debug(f"Rejected non-whitelisted URL: {sanitized}")
        return UrlValidationResult(
            is_valid=False,
            sanitized_url=sanitized,
            error_message="This URL is not from a supported music service.",
        )

    return UrlValidationResult(is_valid=True, sanitized_url=sanitized)


__all__ = [
    "DANGEROUS_SCHEMES",
    "PATH_RESTRICTED_DOMAINS",
    "WHITELISTED_DOMAINS",
    "UrlValidationResult",
    "is_safe_url",
    "is_valid",
    "is_valid_music_url",
    "sanitize_url",
    "validate_and_sanitize",
]
