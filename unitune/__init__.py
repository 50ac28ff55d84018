"""
UniTune - cross-platform music link resolution, share tokens and caching.

Main Features:
- Parse Spotify, Apple Music, Tidal, YouTube Music, Deezer and Amazon Music URLs
- Compact share tokens (https://unitune.art/s/<token>)
- Lookup API client with bounded retry and exponential backoff
- Persisted link cache with TTL expiration and a size bound
- Batch resolution with partial-failure semantics
- Mini playlists, published and imported through /p/<id> links

Quick Start:
    >>> from unitune import LinkService
    >>> async with LinkService() as service:
    ...     outcome = await service.create_share_link("https://open.spotify.com/track/3n3Ppam7vgaVa1iaRUc9Lp")
    ...     links = await service.resolve_share_link(outcome.share_url)

Architecture:
    Host → LinkService → validator/codec → LinkCache → ResolutionClient → Lookup API
"""

__version__ = "0.1.0"

from unitune.core.cache import LinkCache, cache_key
from unitune.core.client import ResolutionClient
from unitune.core.config import UniTuneConfig
from unitune.core.exceptions import (
    ErrorKind,
    InvalidArgumentError,
    UniTuneError,
    UnsupportedFormatError,
)
from unitune.core.link_service import LinkService
from unitune.core.models import (
    BatchResult,
    CanonicalIdentifier,
    ContentType,
    MiniPlaylist,
    Platform,
    PlaylistTrack,
    ResolvedLinkSet,
    ShareOutcome,
)

__all__ = [
    "BatchResult",
    "CanonicalIdentifier",
    "ContentType",
    "ErrorKind",
    "InvalidArgumentError",
    "LinkCache",
    "LinkService",
    "MiniPlaylist",
    "Platform",
    "PlaylistTrack",
    "ResolutionClient",
    "ResolvedLinkSet",
    "ShareOutcome",
    "UniTuneConfig",
    "UniTuneError",
    "UnsupportedFormatError",
    "__version__",
    "cache_key",
]
