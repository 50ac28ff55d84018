"""Core module for UniTune - codec, resolution, caching and the LinkService facade."""

from unitune.core.batch_client import BatchApiClient
from unitune.core.cache import LinkCache, cache_key
from unitune.core.client import ResolutionClient
from unitune.core.config import UniTuneConfig
from unitune.core.exceptions import (
    CacheUnreadableError,
    ClientRejectedError,
    ConfigurationError,
    ErrorKind,
    InvalidArgumentError,
    MalformedResponseError,
    NetworkTimeoutError,
    RateLimitedError,
    ResolutionError,
    RetryableResolutionError,
    ServerUnavailableError,
    UniTuneError,
    UnsupportedFormatError,
)
from unitune.core.link_service import LinkService
from unitune.core.playlist_client import PlaylistApiClient
from unitune.core.store import InMemoryKeyValueStore, JsonFileKeyValueStore, KeyValueStore

__all__ = [
    "BatchApiClient",
    "CacheUnreadableError",
    "ClientRejectedError",
    "ConfigurationError",
    "ErrorKind",
    "InMemoryKeyValueStore",
    "InvalidArgumentError",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "LinkCache",
    "LinkService",
    "MalformedResponseError",
    "NetworkTimeoutError",
    "PlaylistApiClient",
    "RateLimitedError",
    "ResolutionClient",
    "ResolutionError",
    "RetryableResolutionError",
    "ServerUnavailableError",
    "UniTuneConfig",
    "UniTuneError",
    "UnsupportedFormatError",
    "cache_key",
]
