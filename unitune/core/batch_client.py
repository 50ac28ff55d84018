"""Client for the remote batch conversion service (POST /api/v1/batch)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Self

import httpx
from pydantic import BaseModel, Field, ValidationError

from unitune.core.float_controller import float_event
from unitune.core.models import BatchResult, ResolvedLinkSet
from unitune.core.services.batch_resolver import check_batch_size

if TYPE_CHECKING:
    from collections.abc import Sequence

    from unitune.core.config import UniTuneConfig

logger = logging.getLogger(__name__)

BATCH_PATH = "/api/v1/batch"


class BatchApiTrack(BaseModel):
    """One converted track in a batch response."""

    title: str | None = None
    artist: str | None = None
    thumbnail_url: str | None = None
    original_url: str | None = None
    links: dict[str, Any] = Field(default_factory=dict)

    def to_link_set(self) -> ResolvedLinkSet:
        # entries without a url are skipped rather than failing the track
        links = {
            key: value["url"]
            for key, value in self.links.items()
            if isinstance(value, dict) and isinstance(value.get("url"), str)
        }
        return ResolvedLinkSet(
            title=self.title,
            artist=self.artist,
            thumbnail_url=self.thumbnail_url,
            links_by_platform=links,
            original_url=self.original_url,
        )


class BatchApiError(BaseModel):
    error: str | None = None


class BatchApiResponse(BaseModel):
    """Batch API response schema; tracks are validated one at a time."""

    tracks: list[Any] = Field(default_factory=list)
    errors: list[BatchApiError] = Field(default_factory=list)
    success_count: int | None = None
    failed_count: int | None = None

    def to_result(self) -> BatchResult:
        items: list[ResolvedLinkSet] = []
        for raw in self.tracks:
            try:
                items.append(BatchApiTrack.model_validate(raw).to_link_set())
            except ValidationError as e:
                logger.warning(f"Skipping unparsable batch track: {e}")

        errors = [item.error or "Unknown error" for item in self.errors]

        return BatchResult(
            items=items,
            success_count=self.success_count if self.success_count is not None else len(items),
            failed_count=self.failed_count if self.failed_count is not None else len(errors),
            errors=errors,
        )


class BatchApiClient:
    """
    Client for the hosted batch conversion endpoint.

    The service resolves up to 10 URLs server-side in one request. Unlike
    ``BatchResolver`` there is no per-item retry: any transport or HTTP
    failure returns None for the whole batch.

    Example:
        >>> async with BatchApiClient(config) as api:
        ...     result = await api.convert_batch(urls)
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
                timeout=self.config.batch_timeout,
                headers={
                    "Accept": "application/json",
                    "User-Agent": self.config.user_agent,
                },
            )
            self._owns_client = True
        return self._client

    @property
    def endpoint(self) -> str:
        return f"{self.config.batch_api_base_url}{BATCH_PATH}"

    async def convert_batch(self, urls: Sequence[str]) -> BatchResult | None:
        """
        Convert 1-10 URLs through the batch service.

        Args:
            urls: Music URLs

        Returns:
            BatchResult, or None if the request failed

        Raises:
            InvalidArgumentError: Empty input or more than 10 URLs
        """
        check_batch_size(urls)

        float_event("batch_api.request", count=len(urls))

        try:
            response = await self.client.post(
                self.endpoint,
                json={"urls": list(urls)},
                timeout=self.config.batch_timeout,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Batch request failed: {e!r}")
            float_event("batch_api.failed", reason="transport")
            return None

        if response.status_code != 200:
            logger.warning(f"Batch request rejected: status={response.status_code}")
            float_event("batch_api.failed", reason="status", status=response.status_code)
            return None

        try:
            parsed = BatchApiResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning(f"Unparsable batch response: {e}")
            float_event("batch_api.failed", reason="malformed")
            return None

        result = parsed.to_result()
        float_event(
            "batch_api.completed",
            success=result.success_count,
            failed=result.failed_count,
        )
        return result

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


__all__ = ["BATCH_PATH", "BatchApiClient", "BatchApiResponse", "BatchApiTrack"]
