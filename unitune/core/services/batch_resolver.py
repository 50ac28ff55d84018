"""
Batch Resolution - resolve a small list of music URLs with partial success.

Purpose:
- Fan out up to 10 URLs to the resolution client concurrently
- Optionally consult/populate the link cache per item
- Resilience: one failed item never aborts the others

Design:
- Size checked before any network call (InvalidArgumentError)
- Async parallel resolution bounded by a semaphore
- Results keep input order; failures are counted and described
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from unitune.core.exceptions import InvalidArgumentError
from unitune.core.float_controller import float_event
from unitune.core.models import BatchResult, Platform, ResolvedLinkSet

if TYPE_CHECKING:
    from collections.abc import Sequence

    from unitune.core.cache import LinkCache
    from unitune.core.client import ResolutionClient

logger = logging.getLogger(__name__)

MIN_BATCH_SIZE = 1
MAX_BATCH_SIZE = 10


def check_batch_size(urls: Sequence[str]) -> None:
    """
    Raises:
        InvalidArgumentError: Unless 1-10 URLs were given
    """
    if isinstance(urls, str):
        raise InvalidArgumentError("Expected a list of URLs, got a single string")
    if not MIN_BATCH_SIZE <= len(urls) <= MAX_BATCH_SIZE:
        raise InvalidArgumentError(
            f"Must provide {MIN_BATCH_SIZE}-{MAX_BATCH_SIZE} URLs, got {len(urls)}"
        )


class BatchResolver:
    """
    Batch link resolution with partial-failure semantics.

    Usage:
        resolver = BatchResolver(client, cache=cache)

        result = await resolver.resolve_batch(
            ["https://open.spotify.com/track/...", "https://tidal.com/track/..."],
            preferred=Platform.DEEZER,
        )
        result.success_count, result.failed_count, result.errors
    """

    def __init__(
        self,
        client: ResolutionClient,
        cache: LinkCache | None = None,
        max_parallel: int = MAX_BATCH_SIZE,
    ):
        """
        Initialize Batch Resolver.

        Args:
            client: Resolution client (anything with ``async resolve(url)``)
            cache: Optional link cache consulted before and filled after lookups
            max_parallel: Max concurrent lookups
        """
        if max_parallel <= 0:
            raise ValueError(f"max_parallel must be positive, got {max_parallel}")

        self._client = client
        self._cache = cache
        self._max_parallel = max_parallel
        self._semaphore = asyncio.Semaphore(max_parallel)

    async def resolve_batch(
        self,
        urls: Sequence[str],
        preferred: Platform | None = None,
    ) -> BatchResult:
        """
        Resolve 1-10 URLs concurrently.

        Args:
            urls: Music URLs, resolved independently
            preferred: Preferred platform hint used for cache keys

        Returns:
            BatchResult with successful items in input order

        Raises:
            InvalidArgumentError: Empty input or more than 10 URLs
        """
        check_batch_size(urls)

        float_event("batch_resolver.started", count=len(urls))

        tasks = [self._resolve_single(url, preferred) for url in urls]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        items: list[ResolvedLinkSet] = []
        errors: list[str] = []

        for url, result in zip(urls, results, strict=True):
            if isinstance(result, BaseException):
                logger.error(f"Batch item failed unexpectedly: {url}", exc_info=result)
                errors.append(f"Could not resolve {url}")
            elif result is None:
                errors.append(f"Could not resolve {url}")
            else:
                items.append(result)

        float_event(
            "batch_resolver.completed",
            requested=len(urls),
            resolved=len(items),
            errors=len(errors),
        )

        if errors:
            logger.info(f"Batch resolved {len(items)}/{len(urls)} URLs")

        return BatchResult(
            items=items,
            success_count=len(items),
            failed_count=len(errors),
            errors=errors,
        )

    async def _resolve_single(
        self,
        url: str,
        preferred: Platform | None,
    ) -> ResolvedLinkSet | None:
        async with self._semaphore:
            if self._cache is not None:
                cached = await self._cache.get(url, preferred)
                if cached is not None:
                    return cached

            result = await self._client.resolve(url)

            if result is not None and self._cache is not None:
                await self._cache.put(url, preferred, result)

            return result

    def get_stats(self) -> dict[str, Any]:
        """Get resolver configuration."""
        return {
            "max_parallel": self._max_parallel,
            "uses_cache": self._cache is not None,
        }


__all__ = ["MAX_BATCH_SIZE", "MIN_BATCH_SIZE", "BatchResolver", "check_batch_size"]
