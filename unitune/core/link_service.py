"""
LinkService - main entry point for host applications.

Architecture:
    raw URL
        ↓
    url_validator (sanitize, whitelist)
        ↓
    codec (parse → CanonicalIdentifier → share token)
        ↓
    LinkCache (hit?) ──→ ResolutionClient (retry/backoff) ──→ LinkCache.put
        ↓
    ResolvedLinkSet / ShareOutcome / BatchResult

Hosts (UI, share sheets, the tool server) talk only to this facade. Failures
reach them as None or as a ShareOutcome carrying an ErrorKind; only
InvalidArgumentError (bad batch size) is raised.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Self, TypeVar

from unitune.core.batch_client import BatchApiClient
from unitune.core.cache import LinkCache
from unitune.core.client import ResolutionClient
from unitune.core.config import UniTuneConfig
from unitune.core.exceptions import ErrorKind, UnsupportedFormatError
from unitune.core.float_controller import float_event
from unitune.core.models import (
    BatchResult,
    CanonicalIdentifier,
    MiniPlaylist,
    Platform,
    ResolvedLinkSet,
    ShareOutcome,
)
from unitune.core.playlist_client import PlaylistApiClient
from unitune.core.services import codec
from unitune.core.services.batch_resolver import BatchResolver
from unitune.core.services.history import HistoryRepository
from unitune.core.services.playlists import PlaylistRepository
from unitune.core.services.url_validator import UrlValidationResult, validate_and_sanitize
from unitune.core.store import InMemoryKeyValueStore, JsonFileKeyValueStore, KeyValueStore

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Coroutine, Sequence

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNSUPPORTED_FORMAT_MESSAGE = "This link format isn't supported yet."


class LinkService:
    """
    Facade over validation, parsing, resolution, caching, batching, history
    and mini playlists.

    Usage:
        >>> async with LinkService() as service:
        ...     outcome = await service.create_share_link(
        ...         "https://open.spotify.com/track/3n3Ppam7vgaVa1iaRUc9Lp"
        ...     )
        ...     outcome.share_url
        'https://unitune.art/s/c3BvdGlmeTp0cmFjazozbjNQcGFtN3ZnYVZhMWlhUlVjOUxw'
        ...     links = await service.resolve_share_link(outcome.share_url)
    """

    def __init__(
        self,
        config: UniTuneConfig | None = None,
        client: ResolutionClient | None = None,
        cache: LinkCache | None = None,
        store: KeyValueStore | None = None,
        history: HistoryRepository | None = None,
        batch_api: BatchApiClient | None = None,
        playlists: PlaylistRepository | None = None,
        playlist_api: PlaylistApiClient | None = None,
    ):
        """
        Initialize LinkService.

        Args:
            config: Configuration object. If None, loads unitune.yaml from the
                    standard locations, falling back to env vars and defaults.
            client: Resolution client (built from config if omitted)
            cache: Link cache (built over ``store`` if omitted)
            store: Key/value store for cache and history. Defaults to a JSON
                   file at ``config.store_path``, or memory if that is unset.
            history: Share history repository (built over ``store`` if omitted)
            batch_api: Client for the hosted batch endpoint
            playlists: Mini playlist repository (built over ``store`` if omitted)
            playlist_api: Client for the hosted playlist endpoint
        """
        if config is None:
            try:
                config = UniTuneConfig.from_yaml()
                logger.info("Loaded configuration from unitune.yaml")
            except FileNotFoundError:
                config = UniTuneConfig()
                logger.info("Using configuration from environment variables and defaults")
        self.config = config

        if store is None:
            store = (
                JsonFileKeyValueStore(config.store_path)
                if config.store_path is not None
                else InMemoryKeyValueStore()
            )
        self.store = store

        self._owns_client = client is None
        self.client = client or ResolutionClient(config)

        self.cache = cache or LinkCache(
            store,
            max_age=config.link_cache_ttl,
            max_entries=config.cache_max_entries,
            namespace=config.cache_namespace,
        )

        self.batch_resolver = BatchResolver(
            self.client,
            cache=self.cache if config.batch_use_cache else None,
            max_parallel=config.batch_max_parallel,
        )

        self._owns_batch_api = batch_api is None
        self.batch_api = batch_api or BatchApiClient(config)

        self.history = history or HistoryRepository(
            store,
            max_entries=config.history_max_entries,
            duplicate_window=config.history_window,
        )

        self.playlists = playlists or PlaylistRepository(
            store, max_history=config.playlist_history_max_entries
        )
        self._owns_playlist_api = playlist_api is None
        self.playlist_api = playlist_api or PlaylistApiClient(config)

        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

        logger.info(
            f"LinkService initialized: api={config.api_base_url}, "
            f"share_base={config.share_base_url}, store={type(store).__name__}"
        )

    def validate(self, url: str) -> UrlValidationResult:
        """Sanitize a raw URL and check it against the domain whitelist."""
        return validate_and_sanitize(url)

    async def create_share_link(self, url: str) -> ShareOutcome:
        """
        Turn a music URL into a ``<share_base_url>/s/<token>`` link.

        Never raises: unsupported or non-music URLs come back as a
        ShareOutcome with ``error`` set and a user-facing message.
        """
        validation = self.validate(url)
        if not validation.is_valid:
            return ShareOutcome(
                error=ErrorKind.UNSUPPORTED_FORMAT,
                message=validation.error_message,
            )

        try:
            identifier = codec.parse(validation.sanitized_url)
        except UnsupportedFormatError as e:
            logger.info(f"Cannot create share link: {e}")
            float_event("service.share_unsupported", url=validation.sanitized_url)
            return ShareOutcome(
                error=ErrorKind.UNSUPPORTED_FORMAT,
                message=UNSUPPORTED_FORMAT_MESSAGE,
            )

        share_url = codec.build_share_link(identifier, base_url=self.config.share_base_url)
        float_event("service.share_created", identifier=str(identifier))
        return ShareOutcome(share_url=share_url, identifier=identifier)

    def open_share_link(self, link: str) -> str | None:
        """
        Canonical platform URL for an inbound share link.

        Returns:
            URL, or None for foreign, legacy or malformed links
        """
        identifier = self._decode_share_link(link)
        return codec.reconstruct_url(identifier) if identifier is not None else None

    def _decode_share_link(self, link: str) -> CanonicalIdentifier | None:
        identifier = codec.decode_share_link(link, share_domain=self.config.share_domain)
        if identifier is None:
            logger.debug(f"Not a decodable share link: {link}")
        return identifier

    async def resolve(
        self, url: str, preferred: Platform | None = None
    ) -> ResolvedLinkSet | None:
        """
        Resolve a music URL through the cache and the lookup API.

        The lookup runs in a task that survives cancellation of the caller,
        so an abandoned call still fills the cache.

        Args:
            url: Music URL (sanitized and whitelisted first)
            preferred: Preferred platform hint, part of the cache key

        Returns:
            ResolvedLinkSet, or None if the URL is rejected or lookup fails
        """
        validation = self.validate(url)
        if not validation.is_valid:
            logger.debug(f"Refusing to resolve: {validation.error_message}")
            return None

        task = self._spawn(self._resolve_cached(validation.sanitized_url, preferred))
        return await asyncio.shield(task)

    def submit(
        self,
        url: str,
        on_result: Callable[[ResolvedLinkSet | None], Any],
        preferred: Platform | None = None,
        is_alive: Callable[[], bool] = lambda: True,
    ) -> asyncio.Task[None]:
        """
        Resolve in the background and hand the result to ``on_result``.

        ``is_alive`` is checked once the lookup finishes; if the requester
        has gone away the result is only cached.
        """
        validation = self.validate(url)

        async def run() -> None:
            result = None
            if validation.is_valid:
                result = await self._resolve_cached(validation.sanitized_url, preferred)

            if not is_alive():
                logger.debug(f"Requester gone, dropping result for {url}")
                float_event("service.result_dropped", url=url)
                return

            try:
                on_result(result)
            except Exception:
                logger.exception(f"Result callback failed for {url}")

        return self._spawn(run())

    async def resolve_share_link(
        self,
        link: str,
        preferred: Platform | None = None,
        record_history: bool = True,
    ) -> ResolvedLinkSet | None:
        """
        Decode an inbound share link and resolve the content it names.

        A successful lookup is recorded as a received history entry.
        """
        identifier = self._decode_share_link(link)
        if identifier is None:
            return None
        canonical_url = codec.reconstruct_url(identifier)

        result = await self.resolve(canonical_url, preferred)

        if result is not None and record_history:
            await self._record_history(
                self.history.record_received,
                title=result.title or "Unknown Track",
                artist=result.artist or "Unknown Artist",
                original_url=canonical_url,
                share_url=link,
                thumbnail_url=result.thumbnail_url,
                content_type=identifier.content_type,
            )

        return result

    async def share(self, url: str, preferred: Platform | None = None) -> ShareOutcome:
        """
        Create a share link and record it as shared, with metadata if the
        lookup succeeds.
        """
        outcome = await self.create_share_link(url)
        if not outcome.ok:
            return outcome

        validation = self.validate(url)
        result = await self.resolve(validation.sanitized_url, preferred)
        await self._record_history(
            self.history.record_shared,
            title=(result.title if result else None) or "Unknown Track",
            artist=(result.artist if result else None) or "Unknown Artist",
            original_url=validation.sanitized_url,
            share_url=outcome.share_url,
            thumbnail_url=result.thumbnail_url if result else None,
            content_type=outcome.identifier.content_type,
        )
        return outcome

    async def _record_history(
        self, record: Callable[..., Awaitable[Any]], *args: Any, **fields: Any
    ) -> None:
        # history is best effort; a failing store must not undo a finished lookup
        try:
            await record(*args, **fields)
        except Exception as e:
            logger.warning(f"Could not record history ({record.__name__}): {e}")
            float_event("service.history_failed", record=record.__name__)

    async def resolve_batch(
        self, urls: Sequence[str], preferred: Platform | None = None
    ) -> BatchResult:
        """
        Resolve 1-10 URLs locally with partial-failure semantics.

        Raises:
            InvalidArgumentError: Empty input or more than 10 URLs
        """
        return await self.batch_resolver.resolve_batch(urls, preferred)

    async def convert_batch(self, urls: Sequence[str]) -> BatchResult | None:
        """
        Convert 1-10 URLs through the hosted batch endpoint.

        Raises:
            InvalidArgumentError: Empty input or more than 10 URLs
        """
        return await self.batch_api.convert_batch(urls)

    async def share_playlist(self, playlist: MiniPlaylist) -> str | None:
        """
        Publish a mini playlist once and return its ``<share_base_url>/p/<id>`` link.

        A playlist published before reuses its remote id. Every share is
        added to playlist share history.

        Returns:
            Link, or None if publishing failed

        Raises:
            InvalidArgumentError: The playlist has no tracks
        """
        ref = await self.playlists.get_remote_ref(playlist.id)
        if ref is not None:
            remote_id = ref.remote_id
        else:
            created = await self.playlist_api.create(playlist)
            if created is None:
                return None
            remote_id = created.id
            await self._record_history(
                self.playlists.save_remote_ref, playlist.id, created.id, created.delete_token
            )

        await self._record_history(self.playlists.save_shared, playlist)
        float_event("service.playlist_shared", id=playlist.id, remote_id=remote_id)
        return codec.build_playlist_link(remote_id, base_url=self.config.share_base_url)

    async def import_playlist(self, link: str) -> MiniPlaylist | None:
        """
        Fetch a playlist from a ``/p/<id>`` link and store it as received.

        Returns:
            The stored playlist, or None for foreign links and failed fetches
        """
        remote_id = codec.extract_playlist_id(link, share_domain=self.config.share_domain)
        if remote_id is None:
            logger.debug(f"Not a playlist link: {link}")
            return None

        remote = await self.playlist_api.fetch(remote_id)
        if remote is None:
            return None

        return await self.playlists.create_received(
            remote.title, remote.tracks, description=remote.description
        )

    async def _resolve_cached(
        self, url: str, preferred: Platform | None
    ) -> ResolvedLinkSet | None:
        cached = await self.cache.get(url, preferred)
        if cached is not None:
            return cached

        result = await self.client.resolve(url)
        if result is not None:
            await self.cache.put(url, preferred, result)
        return result

    def _spawn(self, coro: Coroutine[Any, Any, T]) -> asyncio.Task[T]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        """Number of lookups still running."""
        return len(self._tasks)

    async def close(self) -> None:
        """Wait for pending lookups, then close owned HTTP clients."""
        if self._closed:
            return
        self._closed = True

        if self._tasks:
            logger.debug(f"Draining {len(self._tasks)} pending lookups")
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        if self._owns_client:
            await self.client.close()
        if self._owns_batch_api:
            await self.batch_api.close()
        if self._owns_playlist_api:
            await self.playlist_api.close()

        logger.info("LinkService closed")

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"LinkService(config={self.config!r}, pending={len(self._tasks)})"


__all__ = ["UNSUPPORTED_FORMAT_MESSAGE", "LinkService"]
