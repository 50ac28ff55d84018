"""Pydantic models for canonical identifiers, resolved links, history and playlists."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Annotated, Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from unitune.core.exceptions import ErrorKind


class Platform(str, Enum):
    """
    Supported music streaming platforms.

    Values match the lookup API's ``linksByPlatform`` keys and the platform
    field of a share token.
    """

    SPOTIFY = "spotify"
    APPLE_MUSIC = "appleMusic"
    TIDAL = "tidal"
    YOUTUBE_MUSIC = "youtubeMusic"
    DEEZER = "deezer"
    AMAZON_MUSIC = "amazonMusic"

    @classmethod
    def lookup(cls, name: str) -> Platform | None:
        """Case-insensitive lookup by value; None for unknown platforms."""
        lowered = name.lower()
        for platform in cls:
            if platform.value.lower() == lowered:
                return platform
        return None


class ContentType(str, Enum):
    """Kind of music content a link points to."""

    TRACK = "track"
    ALBUM = "album"
    ARTIST = "artist"
    PLAYLIST = "playlist"


class CanonicalIdentifier(BaseModel):
    """
    Normalized (platform, content type, id) triple.

    Produced by ``unitune.core.services.codec`` from a URL or a share token.
    """

    model_config = ConfigDict(frozen=True)

    platform: Platform
    content_type: ContentType
    id: str = Field(..., min_length=1, description="Platform-specific content id")

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Reject ids that could not survive a URL path segment."""
        if any(ch in v for ch in "/?#") or any(ch.isspace() for ch in v):
            raise ValueError(f"Invalid content id: {v!r}")
        return v

    def __str__(self) -> str:
        return f"{self.platform.value}:{self.content_type.value}:{self.id}"


class ApiEntity(BaseModel):
    """Entity metadata from the lookup API."""

    title: str | None = None
    artist_name: str | None = Field(None, validation_alias="artistName")
    thumbnail_url: str | None = Field(None, validation_alias="thumbnailUrl")


class ApiPlatformLink(BaseModel):
    """Per-platform link from the lookup API."""

    url: str
    entity_unique_id: str | None = Field(None, validation_alias="entityUniqueId")


class ResolutionApiResponse(BaseModel):
    """Lookup API response schema."""

    entity_unique_id: str | None = Field(None, validation_alias="entityUniqueId")
    entities: dict[str, ApiEntity] = Field(
        default_factory=dict, validation_alias="entitiesByUniqueId"
    )
    links: dict[str, ApiPlatformLink] = Field(
        default_factory=dict, validation_alias="linksByPlatform"
    )


class ResolvedLinkSet(BaseModel):
    """Equivalent links for one piece of content across every platform."""

    model_config = ConfigDict(frozen=True)

    entity_id: str | None = None
    title: str | None = None
    artist: str | None = None
    thumbnail_url: str | None = None
    links_by_platform: dict[str, str] = Field(default_factory=dict)
    original_url: str | None = Field(None, description="URL the set was resolved from, when known")

    @classmethod
    def from_api(
        cls, response: ResolutionApiResponse, original_url: str | None = None
    ) -> ResolvedLinkSet:
        """
        Build from a lookup API response.

        Metadata comes from the entity named by ``entityUniqueId`` when the
        response carries it, otherwise from the first entity listed.
        """
        entity = None
        if response.entity_unique_id is not None:
            entity = response.entities.get(response.entity_unique_id)
        if entity is None and response.entities:
            entity = next(iter(response.entities.values()))

        return cls(
            entity_id=response.entity_unique_id,
            title=entity.title if entity else None,
            artist=entity.artist_name if entity else None,
            thumbnail_url=entity.thumbnail_url if entity else None,
            links_by_platform={key: link.url for key, link in response.links.items()},
            original_url=original_url,
        )

    def url_for(self, platform: Platform) -> str | None:
        """Get the URL for a specific platform, if the content exists there."""
        return self.links_by_platform.get(platform.value)


class CacheEntry(BaseModel):
    """A resolved link set stored in the link cache."""

    key: str
    result: ResolvedLinkSet
    cached_at: datetime

    @field_validator("cached_at")
    @classmethod
    def validate_cached_at(cls, v: datetime) -> datetime:
        """Naive timestamps are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    def is_expired(self, now: datetime, max_age: timedelta) -> bool:
        return now - self.cached_at > max_age


class BatchResult(BaseModel):
    """Aggregated outcome of one batch resolution."""

    items: list[ResolvedLinkSet] = Field(default_factory=list)
    success_count: int = 0
    failed_count: int = 0
    errors: list[str] = Field(default_factory=list)


class ShareOutcome(BaseModel):
    """Result of turning a music URL into a share link."""

    share_url: str | None = None
    identifier: CanonicalIdentifier | None = None
    error: ErrorKind | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.share_url is not None


class HistoryKind(str, Enum):
    """Direction of a history entry."""

    SHARED = "shared"
    RECEIVED = "received"


class _HistoryEntryBase(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    artist: str
    original_url: str
    thumbnail_url: str | None = None
    content_type: ContentType = ContentType.TRACK
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v


class SharedEntry(_HistoryEntryBase):
    """Content the user shared with someone else."""

    kind: Literal["shared"] = "shared"
    share_url: str


class ReceivedEntry(_HistoryEntryBase):
    """Content the user opened from someone else's share link."""

    kind: Literal["received"] = "received"
    share_url: str | None = None


HistoryEntry = Annotated[SharedEntry | ReceivedEntry, Field(discriminator="kind")]


class PlaylistTrack(BaseModel):
    """One track in a mini playlist, with the links it was converted to."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    artist: str
    original_url: str
    thumbnail_url: str | None = None
    converted_links: dict[str, str] = Field(
        default_factory=dict, description="Platform value -> URL on that platform"
    )
    added_at: datetime | None = None

    @field_validator("added_at")
    @classmethod
    def validate_added_at(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @classmethod
    def from_link_set(
        cls,
        links: ResolvedLinkSet,
        original_url: str | None = None,
        added_at: datetime | None = None,
    ) -> PlaylistTrack:
        """Build a track from a resolution result, falling back to placeholder metadata."""
        url = original_url or links.original_url
        if url is None:
            raise ValueError("A playlist track needs an original URL")
        return cls(
            title=links.title or "Unknown Track",
            artist=links.artist or "Unknown Artist",
            original_url=url,
            thumbnail_url=links.thumbnail_url,
            converted_links=dict(links.links_by_platform),
            added_at=added_at,
        )


class MiniPlaylist(BaseModel):
    """A short, user-curated list of tracks that can be shared as one link."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    title: str
    tracks: list[PlaylistTrack] = Field(default_factory=list)
    description: str | None = None
    cover_image_url: str | None = None
    created_at: datetime
    last_modified: datetime | None = None
    is_public: bool = False
    creator_nickname: str | None = None

    @field_validator("created_at", "last_modified")
    @classmethod
    def validate_times(cls, v: datetime | None) -> datetime | None:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @property
    def is_valid(self) -> bool:
        """A playlist must hold at least one track to be shared."""
        return bool(self.tracks)

    @property
    def artists(self) -> list[str]:
        """Distinct artists in track order."""
        return list(dict.fromkeys(track.artist for track in self.tracks))


class RemotePlaylistRef(BaseModel):
    """Where a local playlist was published, and the token that deletes it."""

    remote_id: str
    delete_token: str
    saved_at: datetime

    @field_validator("saved_at")
    @classmethod
    def validate_saved_at(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v
