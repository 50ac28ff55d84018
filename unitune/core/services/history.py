"""
Share History - persisted list of shared and received music links.

Entries are stored newest first as one JSON array under a single store key.
Adding the same original URL again inside the duplicate window is a no-op,
and the list is trimmed to a fixed number of entries.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
import logging
from typing import TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError

from unitune.core.float_controller import float_event
from unitune.core.models import (
    ContentType,
    HistoryEntry,
    HistoryKind,
    ReceivedEntry,
    SharedEntry,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from unitune.core.store import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "unitune_song_history"
DEFAULT_MAX_ENTRIES = 100
DEFAULT_DUPLICATE_WINDOW = timedelta(minutes=5)

_entries_adapter = TypeAdapter(list[HistoryEntry])


def _utcnow() -> datetime:
    return datetime.now(UTC)


class HistoryRepository:
    """
    Repository for shared/received history.

    Example:
        >>> history = HistoryRepository(store)
        >>> await history.record_shared("Song", "Artist", url, share_url=link)
        >>> [e.title for e in await history.get_all()]
        ['Song']
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        duplicate_window: timedelta = DEFAULT_DUPLICATE_WINDOW,
        storage_key: str = DEFAULT_STORAGE_KEY,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")

        self._store = store
        self._max_entries = max_entries
        self._duplicate_window = duplicate_window
        self._storage_key = storage_key
        self._clock = clock
        self._lock = asyncio.Lock()

    async def get_all(self) -> list[HistoryEntry]:
        """All entries, newest first. Unreadable data yields an empty list."""
        async with self._lock:
            return await self._load()

    async def get_by_kind(self, kind: HistoryKind) -> list[HistoryEntry]:
        kind = HistoryKind(kind)
        return [entry for entry in await self.get_all() if entry.kind == kind.value]

    async def count(self, kind: HistoryKind | None = None) -> int:
        if kind is None:
            return len(await self.get_all())
        return len(await self.get_by_kind(kind))

    async def add(self, entry: HistoryEntry) -> bool:
        """
        Add an entry at the front.

        Returns:
            False if an entry with the same original URL exists within the
            duplicate window, True otherwise
        """
        async with self._lock:
            entries = await self._load()

            for existing in entries:
                if (
                    existing.original_url == entry.original_url
                    and abs(entry.timestamp - existing.timestamp) < self._duplicate_window
                ):
                    logger.debug(f"Skipping duplicate history entry: {entry.original_url}")
                    float_event("history.duplicate", url=entry.original_url)
                    return False

            entries.insert(0, entry)
            entries.sort(key=lambda e: e.timestamp, reverse=True)
            await self._save(entries[: self._max_entries])

        logger.debug(f"Added history entry: {entry.title} ({entry.kind})")
        float_event("history.added", kind=entry.kind, id=entry.id)
        return True

    async def record_shared(
        self,
        title: str,
        artist: str,
        original_url: str,
        share_url: str,
        thumbnail_url: str | None = None,
        content_type: ContentType = ContentType.TRACK,
    ) -> bool:
        """Add a SharedEntry stamped with the repository clock."""
        return await self.add(
            SharedEntry(
                title=title,
                artist=artist,
                original_url=original_url,
                share_url=share_url,
                thumbnail_url=thumbnail_url,
                content_type=content_type,
                timestamp=self._clock(),
            )
        )

    async def record_received(
        self,
        title: str,
        artist: str,
        original_url: str,
        share_url: str | None = None,
        thumbnail_url: str | None = None,
        content_type: ContentType = ContentType.TRACK,
    ) -> bool:
        """Add a ReceivedEntry stamped with the repository clock."""
        return await self.add(
            ReceivedEntry(
                title=title,
                artist=artist,
                original_url=original_url,
                share_url=share_url,
                thumbnail_url=thumbnail_url,
                content_type=content_type,
                timestamp=self._clock(),
            )
        )

    async def delete(self, entry_id: str) -> bool:
        async with self._lock:
            entries = await self._load()
            remaining = [entry for entry in entries if entry.id != entry_id]
            if len(remaining) == len(entries):
                return False
            await self._save(remaining)
            return True

    async def clear_all(self) -> None:
        async with self._lock:
            await self._store.remove(self._storage_key)
        logger.info("Cleared share history")

    async def clear_by_kind(self, kind: HistoryKind) -> int:
        """
        Remove every entry of one kind.

        Returns:
            Number of entries removed
        """
        kind = HistoryKind(kind)
        async with self._lock:
            entries = await self._load()
            remaining = [entry for entry in entries if entry.kind != kind.value]
            removed = len(entries) - len(remaining)
            if removed:
                await self._save(remaining)
            return removed

    async def _load(self) -> list[HistoryEntry]:
        raw = await self._store.get(self._storage_key)
        if not raw:
            return []

        try:
            entries = _entries_adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning(f"History unreadable, treating as empty: {e.error_count()} errors")
            float_event("history.unreadable", key=self._storage_key)
            return []

        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries

    async def _save(self, entries: list[HistoryEntry]) -> None:
        await self._store.set(
            self._storage_key, _entries_adapter.dump_json(entries).decode("utf-8")
        )

    def __repr__(self) -> str:
        return (
            f"HistoryRepository(key={self._storage_key!r}, max_entries={self._max_entries}, "
            f"duplicate_window={self._duplicate_window})"
        )


__all__ = [
    "DEFAULT_DUPLICATE_WINDOW",
    "DEFAULT_MAX_ENTRIES",
    "DEFAULT_STORAGE_KEY",
    "HistoryRepository",
]
