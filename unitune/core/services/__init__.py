"""
Core Services - URL handling, batching and history for UniTune.

Services:
- codec: URL ⇄ CanonicalIdentifier ⇄ share token
- url_validator: sanitization and domain whitelist
- BatchResolver: bounded-parallel resolution of up to 10 URLs
- HistoryRepository: shared/received history with duplicate suppression
- PlaylistRepository: mini playlists, their history and published ids

Design Principles:
- Pure functions where there is no state (codec, validator)
- Observable (Float integration)
- Testable (dependency injection of stores, clocks and clients)
"""

from . import codec, url_validator
from .batch_resolver import BatchResolver, check_batch_size
from .history import HistoryRepository
from .playlists import PlaylistRepository

__all__ = [
    "BatchResolver",
    "HistoryRepository",
    "PlaylistRepository",
    "check_batch_size",
    "codec",
    "url_validator",
]
