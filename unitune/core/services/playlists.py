"""
Mini Playlists - locally curated track lists that can be shared as one link.

Four JSON documents live in the key/value store:

- created playlists (owned by this user, editable)
- shared history (newest first, bounded)
- received history (newest first, bounded, one entry per playlist id)
- local id -> published remote id map, with the delete token the
  hosted service handed out
"""

from __future__ import annotations

import asyncio
import base64
from datetime import UTC, datetime
import logging
from typing import TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError

from unitune.core.exceptions import InvalidArgumentError
from unitune.core.float_controller import float_event
from unitune.core.models import MiniPlaylist, PlaylistTrack, RemotePlaylistRef

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from unitune.core.store import KeyValueStore

logger = logging.getLogger(__name__)

PLAYLISTS_KEY = "mini_playlists"
SHARED_PLAYLISTS_KEY = "shared_playlists_history"
RECEIVED_PLAYLISTS_KEY = "received_playlists_history"
REMOTE_PLAYLISTS_KEY = "remote_playlists_map"
DEFAULT_MAX_HISTORY = 50

_playlists_adapter = TypeAdapter(list[MiniPlaylist])
_remote_map_adapter = TypeAdapter(dict[str, RemotePlaylistRef])


def _utcnow() -> datetime:
    return datetime.now(UTC)


def encode_for_sharing(playlist: MiniPlaylist) -> str:
    """Self-contained URL-safe base64 form of a playlist (padding kept)."""
    return base64.urlsafe_b64encode(playlist.model_dump_json().encode("utf-8")).decode("ascii")


def decode_shared_playlist(encoded: str) -> MiniPlaylist | None:
    """Inverse of ``encode_for_sharing``; None for anything that is not one."""
    encoded = encoded.strip()
    try:
        raw = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))
        return MiniPlaylist.model_validate_json(raw)
    except ValueError as e:
        # binascii.Error and ValidationError are both ValueErrors
        logger.debug(f"Not an encoded playlist: {e}")
        return None


class PlaylistRepository:
    """
    Repository for mini playlists and their share/receive history.

    Example:
        >>> playlists = PlaylistRepository(store)
        >>> playlist = await playlists.create("Road trip", tracks)
        >>> await playlists.reorder_tracks(playlist.id, 0, 2)
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_history: int = DEFAULT_MAX_HISTORY,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if max_history <= 0:
            raise ValueError(f"max_history must be positive, got {max_history}")

        self._store = store
        self._max_history = max_history
        self._clock = clock
        self._lock = asyncio.Lock()

    async def create(
        self,
        title: str,
        tracks: Sequence[PlaylistTrack],
        description: str | None = None,
    ) -> MiniPlaylist:
        """Create and store a new playlist owned by this user."""
        playlist = self._new_playlist(title, tracks, description)
        await self.save(playlist)
        logger.debug(f"Created playlist {playlist.id} ({len(playlist.tracks)} tracks)")
        float_event("playlists.created", id=playlist.id, tracks=len(playlist.tracks))
        return playlist

    async def create_received(
        self,
        title: str,
        tracks: Sequence[PlaylistTrack],
        description: str | None = None,
    ) -> MiniPlaylist:
        """Store a playlist opened from someone else's link in received history."""
        playlist = self._new_playlist(title, tracks, description)
        await self.save_received(playlist)
        return playlist

    async def save(self, playlist: MiniPlaylist) -> MiniPlaylist:
        """
        Insert a playlist, or replace the one with the same id.

        Replacing stamps ``last_modified`` with the repository clock.

        Returns:
            The playlist as stored
        """
        async with self._lock:
            playlists = await self._load(PLAYLISTS_KEY)
            stored = self._upsert(playlists, playlist)
            await self._save(PLAYLISTS_KEY, playlists)
        return stored

    async def get_all(self) -> list[MiniPlaylist]:
        """Created playlists in insertion order. Unreadable data yields an empty list."""
        async with self._lock:
            return await self._load(PLAYLISTS_KEY)

    async def get(self, playlist_id: str) -> MiniPlaylist | None:
        for playlist in await self.get_all():
            if playlist.id == playlist_id:
                return playlist
        logger.debug(f"Playlist not found: {playlist_id}")
        return None

    async def delete(self, playlist_id: str) -> bool:
        """
        Remove a playlist from created playlists and received history.

        Returns:
            True if anything was removed
        """
        async with self._lock:
            playlists = await self._load(PLAYLISTS_KEY)
            received = await self._load(RECEIVED_PLAYLISTS_KEY)

            kept = [p for p in playlists if p.id != playlist_id]
            kept_received = [p for p in received if p.id != playlist_id]

            if len(kept) != len(playlists):
                await self._save(PLAYLISTS_KEY, kept)
            if len(kept_received) != len(received):
                await self._save(RECEIVED_PLAYLISTS_KEY, kept_received)

        removed = len(kept) != len(playlists) or len(kept_received) != len(received)
        if removed:
            float_event("playlists.deleted", id=playlist_id)
        return removed

    async def add_track(self, playlist_id: str, track: PlaylistTrack) -> MiniPlaylist:
        """
        Append a track.

        Raises:
            InvalidArgumentError: Unknown playlist id
        """
        return await self._update_tracks(playlist_id, lambda tracks: [*tracks, track])

    async def remove_track(self, playlist_id: str, track_id: str) -> MiniPlaylist:
        """Drop every track with ``track_id``; unknown track ids leave the playlist as is."""
        return await self._update_tracks(
            playlist_id, lambda tracks: [t for t in tracks if t.id != track_id]
        )

    async def reorder_tracks(
        self, playlist_id: str, old_index: int, new_index: int
    ) -> MiniPlaylist:
        """
        Move the track at ``old_index`` so it ends up at ``new_index``.

        Raises:
            InvalidArgumentError: Unknown playlist id or an index out of range
        """

        def move(tracks: list[PlaylistTrack]) -> list[PlaylistTrack]:
            if not (0 <= old_index < len(tracks) and 0 <= new_index < len(tracks)):
                raise InvalidArgumentError(
                    f"Cannot move track {old_index} to {new_index} in a playlist of {len(tracks)}"
                )
            reordered = list(tracks)
            reordered.insert(new_index, reordered.pop(old_index))
            return reordered

        return await self._update_tracks(playlist_id, move)

    async def save_shared(self, playlist: MiniPlaylist) -> None:
        """Record a share at the front of shared history; repeats are kept."""
        async with self._lock:
            history = await self._load(SHARED_PLAYLISTS_KEY)
            history.insert(0, playlist)
            await self._save(SHARED_PLAYLISTS_KEY, history[: self._max_history])
        float_event("playlists.shared", id=playlist.id)

    async def get_shared_history(self) -> list[MiniPlaylist]:
        async with self._lock:
            return await self._load(SHARED_PLAYLISTS_KEY)

    async def save_received(self, playlist: MiniPlaylist) -> None:
        """Move (or add) a playlist to the front of received history."""
        async with self._lock:
            history = await self._load(RECEIVED_PLAYLISTS_KEY)
            history = [p for p in history if p.id != playlist.id]
            history.insert(0, playlist)
            await self._save(RECEIVED_PLAYLISTS_KEY, history[: self._max_history])
        float_event("playlists.received", id=playlist.id)

    async def get_received_history(self) -> list[MiniPlaylist]:
        async with self._lock:
            return await self._load(RECEIVED_PLAYLISTS_KEY)

    async def get_remote_ref(self, local_id: str) -> RemotePlaylistRef | None:
        """Where the playlist was published, if it was."""
        async with self._lock:
            return (await self._load_remote_map()).get(local_id)

    async def save_remote_ref(
        self, local_id: str, remote_id: str, delete_token: str
    ) -> RemotePlaylistRef:
        ref = RemotePlaylistRef(
            remote_id=remote_id,
            delete_token=delete_token,
            saved_at=self._clock(),
        )
        async with self._lock:
            remote_map = await self._load_remote_map()
            remote_map[local_id] = ref
            await self._store.set(
                REMOTE_PLAYLISTS_KEY, _remote_map_adapter.dump_json(remote_map).decode("utf-8")
            )
        logger.debug(f"Playlist {local_id} published as {remote_id}")
        return ref

    def _new_playlist(
        self, title: str, tracks: Sequence[PlaylistTrack], description: str | None
    ) -> MiniPlaylist:
        now = self._clock()
        return MiniPlaylist(
            title=title,
            tracks=list(tracks),
            description=description,
            created_at=now,
            last_modified=now,
        )

    def _upsert(self, playlists: list[MiniPlaylist], playlist: MiniPlaylist) -> MiniPlaylist:
        for index, existing in enumerate(playlists):
            if existing.id == playlist.id:
                playlist = playlist.model_copy(update={"last_modified": self._clock()})
                playlists[index] = playlist
                return playlist
        playlists.append(playlist)
        return playlist

    async def _update_tracks(
        self,
        playlist_id: str,
        change: Callable[[list[PlaylistTrack]], list[PlaylistTrack]],
    ) -> MiniPlaylist:
        async with self._lock:
            playlists = await self._load(PLAYLISTS_KEY)
            current = next((p for p in playlists if p.id == playlist_id), None)
            if current is None:
                raise InvalidArgumentError(f"Playlist not found: {playlist_id}")

            updated = self._upsert(
                playlists, current.model_copy(update={"tracks": change(current.tracks)})
            )
            await self._save(PLAYLISTS_KEY, playlists)

        float_event("playlists.updated", id=playlist_id, tracks=len(updated.tracks))
        return updated

    async def _load(self, key: str) -> list[MiniPlaylist]:
        raw = await self._store.get(key)
        if not raw:
            return []

        try:
            return _playlists_adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning(
                f"Playlists under {key} unreadable, treating as empty: {e.error_count()} errors"
            )
            float_event("playlists.unreadable", key=key)
            return []

    async def _save(self, key: str, playlists: list[MiniPlaylist]) -> None:
        await self._store.set(key, _playlists_adapter.dump_json(playlists).decode("utf-8"))

    async def _load_remote_map(self) -> dict[str, RemotePlaylistRef]:
        raw = await self._store.get(REMOTE_PLAYLISTS_KEY)
        if not raw:
            return {}

        try:
            return _remote_map_adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Remote playlist map unreadable, treating as empty: {e}")
            float_event("playlists.unreadable", key=REMOTE_PLAYLISTS_KEY)
            return {}

    def __repr__(self) -> str:
        return f"PlaylistRepository(max_history={self._max_history})"


__all__ = [
    "DEFAULT_MAX_HISTORY",
    "PLAYLISTS_KEY",
    "RECEIVED_PLAYLISTS_KEY",
    "REMOTE_PLAYLISTS_KEY",
    "SHARED_PLAYLISTS_KEY",
    "PlaylistRepository",
    "decode_shared_playlist",
    "encode_for_sharing",
]
