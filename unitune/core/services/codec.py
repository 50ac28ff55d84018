"""
Canonical Identifier Codec - platform URL ⇄ CanonicalIdentifier ⇄ share token.

Formats:
- Platform URL:  https://open.spotify.com/track/3n3Ppam7vgaVa1iaRUc9Lp
- Identifier:    spotify:track:3n3Ppam7vgaVa1iaRUc9Lp
- Share token:   c3BvdGlmeTp0cmFjazozbjNQcGFtN3ZnYVZhMWlhUlVjOUxw
- Share link:    https://unitune.art/s/c3BvdGlmeTp0cmFjazozbjNQcGFtN3ZnYVZhMWlhUlVjOUxw

Parsing:
- Each platform claims a set of domains (exact host or any subdomain)
- Each platform has an ordered list of rules (path patterns, query keys)
- First structural match wins; otherwise UnsupportedFormatError

All functions are pure: no I/O, no caching.
"""

import base64
from dataclasses import dataclass, field
import logging
import re
from urllib.parse import parse_qs, urlsplit

from unitune.core.exceptions import UnsupportedFormatError
from unitune.core.models import CanonicalIdentifier, ContentType, Platform

logger = logging.getLogger(__name__)

DEFAULT_SHARE_BASE_URL = "https://unitune.art"
DEFAULT_SHARE_DOMAIN = "unitune.art"

_STANDARD_TYPES = {content_type.value: content_type for content_type in ContentType}

# Content type names written by older app versions.
_CONTENT_TYPE_ALIASES = {
    "song": ContentType.TRACK,
    "video": ContentType.TRACK,
}

_TOKEN_RE = re.compile(r"[A-Za-z0-9_-]+={0,2}")


@dataclass(frozen=True)
class _PathRule:
    """Match the URL path; content type from a ``type`` group or fixed."""

    pattern: re.Pattern[str]
    content_type: ContentType | None = None
    types: dict[str, ContentType] = field(default_factory=lambda: dict(_STANDARD_TYPES))

    def match(self, path: str, query: dict[str, list[str]]) -> tuple[ContentType, str] | None:
        found = self.pattern.fullmatch(path)
        if found is None:
            return None
        if self.content_type is not None:
            return self.content_type, found.group("id")
        content_type = self.types.get(found.group("type"))
        if content_type is None:
            return None
        return content_type, found.group("id")


@dataclass(frozen=True)
class _QueryRule:
    """Take the id from a query parameter, optionally only on one path."""

    key: str
    content_type: ContentType
    path: str | None = None

    def match(self, path: str, query: dict[str, list[str]]) -> tuple[ContentType, str] | None:
        if self.path is not None and path.rstrip("/") != self.path:
            return None
        values = query.get(self.key)
        if not values:
            return None
        return self.content_type, values[0]


@dataclass(frozen=True)
class _PlatformRules:
    platform: Platform
    domains: tuple[str, ...]
    rules: tuple[_PathRule | _QueryRule, ...]
    id_patterns: dict[ContentType, re.Pattern[str]]
    url_templates: dict[ContentType, str]
    # (domain, required path prefix) for hosts shared with non-music content
    path_prefixed_domains: tuple[tuple[str, str], ...] = ()

    def claims(self, host: str, path: str) -> bool:
        if any(host_matches(host, domain) for domain in self.domains):
            return True
        return any(
            host_matches(host, domain) and path.startswith(prefix)
            for domain, prefix in self.path_prefixed_domains
        )

    def accepts_id(self, content_type: ContentType, content_id: str) -> bool:
        pattern = self.id_patterns.get(content_type)
        return pattern is not None and pattern.fullmatch(content_id) is not None

    def extract(self, path: str, query: dict[str, list[str]]) -> tuple[ContentType, str] | None:
        for rule in self.rules:
            matched = rule.match(path, query)
            if matched is None:
                continue
            content_type, content_id = matched
            if self.accepts_id(content_type, content_id):
                return matched
        return None


def _p(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


_TYPES = "(?P<type>track|album|artist|playlist)"

_SPOTIFY_ID = _p(r"[A-Za-z0-9]+")
_NUMERIC_ID = _p(r"\d+")
_TIDAL_PLAYLIST_ID = _p(r"[0-9a-fA-F-]{36}")
_APPLE_PLAYLIST_ID = _p(r"pl\.[A-Za-z0-9.-]+")
_YOUTUBE_ID = _p(r"[A-Za-z0-9_-]+")
_AMAZON_ID = _p(r"[A-Za-z0-9]+")

_AMAZON_SEGMENTS = {
    "tracks": ContentType.TRACK,
    "albums": ContentType.ALBUM,
    "artists": ContentType.ARTIST,
    "playlists": ContentType.PLAYLIST,
    "user-playlists": ContentType.PLAYLIST,
}

PLATFORM_RULES: tuple[_PlatformRules, ...] = (
    _PlatformRules(
        platform=Platform.SPOTIFY,
        domains=("spotify.com",),
        rules=(
            _PathRule(_p(rf"/{_TYPES}/(?P<id>[A-Za-z0-9]+)/?")),
            _PathRule(_p(rf"/intl-[A-Za-z-]+/{_TYPES}/(?P<id>[A-Za-z0-9]+)/?")),
            _PathRule(_p(rf"/embed/{_TYPES}/(?P<id>[A-Za-z0-9]+)/?")),
        ),
        id_patterns=dict.fromkeys(ContentType, _SPOTIFY_ID),
        url_templates=dict.fromkeys(ContentType, "https://open.spotify.com/{type}/{id}"),
    ),
    _PlatformRules(
        platform=Platform.APPLE_MUSIC,
        domains=("music.apple.com",),
        rules=(
            _QueryRule("i", ContentType.TRACK),
            _PathRule(
                _p(r"/(?:[a-z]{2}/)?song/(?:[^/]+/)?(?P<id>\d+)/?"),
                content_type=ContentType.TRACK,
            ),
            _PathRule(_p(r"/(?:[a-z]{2}/)?(?P<type>album|artist)/(?:[^/]+/)?(?P<id>\d+)/?")),
            _PathRule(
                _p(r"/(?:[a-z]{2}/)?(?P<type>playlist)/(?:[^/]+/)?(?P<id>pl\.[A-Za-z0-9.-]+)/?")
            ),
        ),
        id_patterns={
            ContentType.TRACK: _NUMERIC_ID,
            ContentType.ALBUM: _NUMERIC_ID,
            ContentType.ARTIST: _NUMERIC_ID,
            ContentType.PLAYLIST: _APPLE_PLAYLIST_ID,
        },
        url_templates={
            ContentType.TRACK: "https://music.apple.com/us/song/{id}",
            ContentType.ALBUM: "https://music.apple.com/us/album/{id}",
            ContentType.ARTIST: "https://music.apple.com/us/artist/{id}",
            ContentType.PLAYLIST: "https://music.apple.com/us/playlist/{id}",
        },
    ),
    _PlatformRules(
        platform=Platform.TIDAL,
        domains=("tidal.com",),
        rules=(
            # share-intent URLs carry a trailing /u
            _PathRule(_p(r"/(?:browse/)?(?P<type>track|album|artist)/(?P<id>\d+)(?:/u)?/?")),
            _PathRule(
                _p(r"/(?:browse/)?(?P<type>playlist)/(?P<id>[0-9a-fA-F-]{36})(?:/u)?/?")
            ),
            _PathRule(
                _p(r"/(?:browse/)?album/\d+/track/(?P<id>\d+)(?:/u)?/?"),
                content_type=ContentType.TRACK,
            ),
        ),
        id_patterns={
            ContentType.TRACK: _NUMERIC_ID,
            ContentType.ALBUM: _NUMERIC_ID,
            ContentType.ARTIST: _NUMERIC_ID,
            ContentType.PLAYLIST: _TIDAL_PLAYLIST_ID,
        },
        url_templates=dict.fromkeys(ContentType, "https://tidal.com/browse/{type}/{id}"),
    ),
    _PlatformRules(
        platform=Platform.YOUTUBE_MUSIC,
        domains=("music.youtube.com",),
        rules=(
            _QueryRule("v", ContentType.TRACK, path="/watch"),
            _QueryRule("list", ContentType.PLAYLIST, path="/playlist"),
            _PathRule(_p(r"/browse/(?P<id>MPREb_[A-Za-z0-9_-]+)/?"), content_type=ContentType.ALBUM),
            _PathRule(_p(r"/channel/(?P<id>UC[A-Za-z0-9_-]+)/?"), content_type=ContentType.ARTIST),
        ),
        id_patterns={
            ContentType.TRACK: _YOUTUBE_ID,
            ContentType.ALBUM: _p(r"MPREb_[A-Za-z0-9_-]+"),
            ContentType.ARTIST: _p(r"UC[A-Za-z0-9_-]+"),
            ContentType.PLAYLIST: _YOUTUBE_ID,
        },
        url_templates={
            ContentType.TRACK: "https://music.youtube.com/watch?v={id}",
            ContentType.ALBUM: "https://music.youtube.com/browse/{id}",
            ContentType.ARTIST: "https://music.youtube.com/channel/{id}",
            ContentType.PLAYLIST: "https://music.youtube.com/playlist?list={id}",
        },
    ),
    _PlatformRules(
        platform=Platform.DEEZER,
        domains=("deezer.com",),
        rules=(
            _PathRule(_p(rf"/{_TYPES}/(?P<id>\d+)/?")),
            _PathRule(_p(rf"/[a-z]{{2}}(?:-[a-z]{{2}})?/{_TYPES}/(?P<id>\d+)/?")),
        ),
        id_patterns=dict.fromkeys(ContentType, _NUMERIC_ID),
        url_templates=dict.fromkeys(ContentType, "https://www.deezer.com/{type}/{id}"),
    ),
    _PlatformRules(
        platform=Platform.AMAZON_MUSIC,
        domains=("music.amazon.com",),
        path_prefixed_domains=(("amazon.com", "/music"),),
        rules=(
            _QueryRule("trackAsin", ContentType.TRACK),
            _PathRule(
                _p(
                    r"(?:/music(?:/player)?)?"
                    r"/(?P<type>tracks|albums|artists|playlists|user-playlists)"
                    r"/(?P<id>[A-Za-z0-9]+)/?"
                ),
                types=_AMAZON_SEGMENTS,
            ),
        ),
        id_patterns=dict.fromkeys(ContentType, _AMAZON_ID),
        url_templates={
            ContentType.TRACK: "https://music.amazon.com/tracks/{id}",
            ContentType.ALBUM: "https://music.amazon.com/albums/{id}",
            ContentType.ARTIST: "https://music.amazon.com/artists/{id}",
            ContentType.PLAYLIST: "https://music.amazon.com/playlists/{id}",
        },
    ),
)

_RULES_BY_PLATFORM = {rules.platform: rules for rules in PLATFORM_RULES}


def host_matches(host: str, domain: str) -> bool:
    """True if ``host`` is ``domain`` or one of its subdomains."""
    host = host.lower().rstrip(".")
    return host == domain or host.endswith(f".{domain}")


def _split(url: str):
    url = url.strip()
    if "://" not in url:
        url = f"https://{url}"
    return urlsplit(url)


def parse(url: str) -> CanonicalIdentifier:
    """
    Parse a platform URL into its canonical identifier.

    Args:
        url: Music streaming URL (scheme optional)

    Returns:
        CanonicalIdentifier for the linked content

    Raises:
        UnsupportedFormatError: No platform claims the host, or the path/query
            does not fit any known pattern for the platform that does

    Example:
        >>> parse("https://tidal.com/track/258735410/u")
        CanonicalIdentifier(platform=<Platform.TIDAL: 'tidal'>, ...)
    """
    try:
        parts = _split(url)
        host = parts.hostname or ""
    except ValueError as e:
        raise UnsupportedFormatError(f"Malformed URL: {url!r}", url=url) from e

    if parts.scheme.lower() not in ("http", "https") or not host:
        raise UnsupportedFormatError(f"Not a web URL: {url!r}", url=url)

    path = parts.path or "/"
    query = parse_qs(parts.query)

    for rules in PLATFORM_RULES:
        if not rules.claims(host, path):
            continue

        matched = rules.extract(path, query)
        if matched is None:
            logger.debug(f"{rules.platform.value} host {host} but no pattern for {path!r}")
            raise UnsupportedFormatError(
                f"Unrecognized {rules.platform.value} link format: {url}", url=url
            )

        content_type, content_id = matched
        identifier = CanonicalIdentifier(
            platform=rules.platform, content_type=content_type, id=content_id
        )
        logger.debug(f"Parsed {url} -> {identifier}")
        return identifier

    raise UnsupportedFormatError(f"Unsupported music service: {host}", url=url)


def encode(identifier: CanonicalIdentifier) -> str:
    """Encode as unpadded base64url of ``platform:contentType:id``."""
    raw = str(identifier).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _lookup_content_type(name: str) -> ContentType | None:
    lowered = name.lower()
    return _STANDARD_TYPES.get(lowered) or _CONTENT_TYPE_ALIASES.get(lowered)


def decode(token: str) -> CanonicalIdentifier | None:
    """
    Decode a share token. Returns None for anything that is not a valid token.

    Never raises: inbound links must degrade gracefully.
    """
    if not isinstance(token, str):
        return None

    token = token.strip()
    if not _TOKEN_RE.fullmatch(token):
        return None

    body = token.rstrip("=")
    padded = body + "=" * (-len(body) % 4)
    try:
        text = base64.urlsafe_b64decode(padded).decode("utf-8")
    except ValueError:
        logger.debug(f"Share token is not base64url: {token!r}")
        return None

    # Legacy tokens embedded a whole URL; that format is no longer supported.
    if text.lower().startswith("http"):
        return None

    fields = text.split(":", 2)
    if len(fields) < 3:
        return None

    platform = Platform.lookup(fields[0])
    content_type = _lookup_content_type(fields[1])
    content_id = fields[2]
    if platform is None or content_type is None:
        return None
    if not _RULES_BY_PLATFORM[platform].accepts_id(content_type, content_id):
        return None

    return CanonicalIdentifier(platform=platform, content_type=content_type, id=content_id)


def reconstruct_url(identifier: CanonicalIdentifier) -> str:
    """Canonical browsable URL for an identifier; ``parse`` maps it back."""
    template = _RULES_BY_PLATFORM[identifier.platform].url_templates[identifier.content_type]
    return template.format(type=identifier.content_type.value, id=identifier.id)


def build_share_link(identifier: CanonicalIdentifier, base_url: str = DEFAULT_SHARE_BASE_URL) -> str:
    """Build ``<base_url>/s/<token>``."""
    return f"{base_url.rstrip('/')}/s/{encode(identifier)}"


def share_link_from_url(url: str, base_url: str = DEFAULT_SHARE_BASE_URL) -> str:
    """
    Parse a music URL and build its share link.

    Raises:
        UnsupportedFormatError: If the URL cannot be parsed
    """
    return build_share_link(parse(url), base_url=base_url)


def _share_path_segment(link: str, share_domain: str, prefix: str) -> str | None:
    try:
        parts = _split(link)
        host = parts.hostname or ""
    except ValueError:
        return None

    if not host_matches(host, share_domain) or not parts.path.startswith(prefix):
        return None

    segment = parts.path[len(prefix) :].strip("/")
    if not segment or "/" in segment:
        return None
    return segment


def extract_token(link: str, share_domain: str = DEFAULT_SHARE_DOMAIN) -> str | None:
    """Pull the token out of a share link; None if it is not one."""
    return _share_path_segment(link, share_domain, "/s/")


def build_playlist_link(remote_id: str, base_url: str = DEFAULT_SHARE_BASE_URL) -> str:
    """Build ``<base_url>/p/<remote_id>`` for a published mini playlist."""
    return f"{base_url.rstrip('/')}/p/{remote_id}"


def extract_playlist_id(link: str, share_domain: str = DEFAULT_SHARE_DOMAIN) -> str | None:
    """Remote playlist id from a ``/p/<id>`` link; None if it is not one."""
    return _share_path_segment(link, share_domain, "/p/")


def decode_share_link(
    link: str, share_domain: str = DEFAULT_SHARE_DOMAIN
) -> CanonicalIdentifier | None:
    """Decode a full share link; None for foreign, legacy or malformed links."""
    token = extract_token(link, share_domain=share_domain)
    if token is None:
        return None
    return decode(token)


__all__ = [
    "DEFAULT_SHARE_BASE_URL",
    "DEFAULT_SHARE_DOMAIN",
    "PLATFORM_RULES",
    "build_playlist_link",
    "build_share_link",
    "decode",
    "decode_share_link",
    "encode",
    "extract_playlist_id",
    "extract_token",
    "host_matches",
    "parse",
    "reconstruct_url",
    "share_link_from_url",
]
