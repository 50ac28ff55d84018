"""Client for the hosted mini-playlist service (POST to publish, GET /<id> to fetch)."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import TYPE_CHECKING, Any, Self
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from unitune.core.exceptions import InvalidArgumentError
from unitune.core.float_controller import float_event
from unitune.core.models import MiniPlaylist, PlaylistTrack

if TYPE_CHECKING:
    from unitune.core.config import UniTuneConfig

logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PlaylistApiTrack(_CamelModel):
    """Track as the playlist service stores it; converted links are not published."""

    title: str | None = None
    artist: str | None = None
    original_url: str | None = None
    thumbnail_url: str | None = None
    added_at: datetime | None = None

    @classmethod
    def from_track(cls, track: PlaylistTrack) -> PlaylistApiTrack:
        return cls(
            title=track.title,
            artist=track.artist,
            original_url=track.original_url,
            thumbnail_url=track.thumbnail_url,
            added_at=track.added_at,
        )

    def to_track(self) -> PlaylistTrack:
        return PlaylistTrack(
            title=self.title or "Unknown Track",
            artist=self.artist or "Unknown Artist",
            original_url=self.original_url or "",
            thumbnail_url=self.thumbnail_url,
            added_at=self.added_at,
        )


class PlaylistCreateRequest(_CamelModel):
    title: str
    description: str | None = None
    tracks: list[PlaylistApiTrack] = Field(default_factory=list)


class PlaylistCreateResult(_CamelModel):
    """Id of the published playlist and the token that deletes it."""

    id: str
    delete_token: str
    expires_at: datetime | None = None


class RemotePlaylist(BaseModel):
    """A playlist fetched from the service, ready to be stored as received."""

    id: str
    title: str
    description: str | None = None
    tracks: list[PlaylistTrack] = Field(default_factory=list)


class PlaylistApiResponse(_CamelModel):
    """Fetch response schema; tracks are validated one at a time."""

    id: str
    title: str
    description: str | None = None
    tracks: list[Any] | None = None

    def to_remote(self) -> RemotePlaylist:
        tracks: list[PlaylistTrack] = []
        for raw in self.tracks or []:
            try:
                tracks.append(PlaylistApiTrack.model_validate(raw).to_track())
            except ValidationError as e:
                logger.warning(f"Skipping unparsable playlist track: {e}")
        return RemotePlaylist(
            id=self.id,
            title=self.title,
            description=self.description,
            tracks=tracks,
        )


class PlaylistApiClient:
    """
    Client for the hosted playlist endpoint.

    Like ``BatchApiClient`` there is no retry: any transport failure,
    unexpected status or unparsable body returns None.

    Example:
        >>> async with PlaylistApiClient(config) as api:
        ...     created = await api.create(playlist)
        ...     remote = await api.fetch(created.id)
    """

    def __init__(self, config: UniTuneConfig, http_client: httpx.AsyncClient | None = None):
        self.config = config
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout,
                headers={
                    "Accept": "application/json",
                    "User-Agent": self.config.user_agent,
                },
            )
            self._owns_client = True
        return self._client

    @property
    def endpoint(self) -> str:
        return self.config.playlist_api_base_url

    async def create(self, playlist: MiniPlaylist) -> PlaylistCreateResult | None:
        """
        Publish a playlist.

        Returns:
            PlaylistCreateResult, or None if the service did not answer 201

        Raises:
            InvalidArgumentError: The playlist has no tracks
        """
        if not playlist.is_valid:
            raise InvalidArgumentError(f"Playlist {playlist.id} has no tracks to publish")

        body = PlaylistCreateRequest(
            title=playlist.title,
            description=playlist.description,
            tracks=[PlaylistApiTrack.from_track(track) for track in playlist.tracks],
        )
        float_event("playlist_api.create", id=playlist.id, tracks=len(playlist.tracks))

        try:
            response = await self.client.post(
                self.endpoint,
                json=body.model_dump(mode="json", by_alias=True),
                timeout=self.config.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Playlist publish failed: {e!r}")
            float_event("playlist_api.failed", reason="transport")
            return None

        if response.status_code != 201:
            logger.warning(f"Playlist publish rejected: status={response.status_code}")
            float_event("playlist_api.failed", reason="status", status=response.status_code)
            return None

        try:
            result = PlaylistCreateResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning(f"Unparsable playlist publish response: {e}")
            float_event("playlist_api.failed", reason="malformed")
            return None

        logger.info(f"Published playlist {playlist.id} as {result.id}")
        return result

    async def fetch(self, playlist_id: str) -> RemotePlaylist | None:
        """
        Fetch a published playlist by its remote id.

        Returns:
            RemotePlaylist, or None if it is missing or the request failed
        """
        float_event("playlist_api.fetch", id=playlist_id)

        try:
            response = await self.client.get(
                f"{self.endpoint}/{quote(playlist_id, safe='')}",
                timeout=self.config.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Playlist fetch failed: {e!r}")
            float_event("playlist_api.failed", reason="transport")
            return None

        if response.status_code != 200:
            logger.warning(f"Playlist fetch rejected: status={response.status_code}")
            float_event("playlist_api.failed", reason="status", status=response.status_code)
            return None

        try:
            parsed = PlaylistApiResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning(f"Unparsable playlist response: {e}")
            float_event("playlist_api.failed", reason="malformed")
            return None

        return parsed.to_remote()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


__all__ = [
    "PlaylistApiClient",
    "PlaylistApiResponse",
    "PlaylistApiTrack",
    "PlaylistCreateResult",
    "RemotePlaylist",
]
