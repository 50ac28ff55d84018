"""Resolution client for the cross-platform link lookup API."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Self

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from unitune.core.exceptions import (
    ClientRejectedError,
    MalformedResponseError,
    NetworkTimeoutError,
    RateLimitedError,
    ResolutionError,
    RetryableResolutionError,
    ServerUnavailableError,
)
from unitune.core.float_controller import float_event
from unitune.core.models import ResolutionApiResponse, ResolvedLinkSet

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from unitune.core.config import UniTuneConfig

logger = logging.getLogger(__name__)


class ResolutionClient:
    """
    Client for the cross-platform lookup API (``GET <endpoint>?url=<music url>``).

    Handles:
    - Connection management
    - Bounded retry with exponential backoff (429, 5xx, transport errors)
    - Immediate give-up on other 4xx, redirect loops and unparsable bodies
    - Per-attempt request timeout

    Failures never escape ``resolve``: a None result is the error signal.

    Example:
        >>> async with ResolutionClient(config) as client:
        ...     links = await client.resolve("https://open.spotify.com/track/3n3Ppam7vgaVa1iaRUc9Lp")
        >>> links.url_for(Platform.TIDAL) if links else None
    """

    def __init__(
        self,
        config: UniTuneConfig,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize resolution client.

        Args:
            config: UniTuneConfig instance
            http_client: Optional pre-built client (tests pass a MockTransport)
            sleep: Coroutine used for backoff delays
        """
        self.config = config
        self._client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout,
                headers=self._get_headers(),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    def _get_headers(self) -> dict[str, str]:
        return {
            "Accept": "application/json",
            "User-Agent": self.config.user_agent,
        }

    async def close(self) -> None:
        """Close HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            logger.info("Closed resolution client")

    async def resolve(self, url: str) -> ResolvedLinkSet | None:
        """
        Resolve a music URL into links on every supported platform.

        Attempts are sequential: the first is immediate, each retry waits
        ``initial_backoff * 2**(n-1)`` seconds (0.5s, 1.0s with defaults).

        Args:
            url: Music streaming URL

        Returns:
            ResolvedLinkSet, or None if the lookup failed for any reason
        """
        float_event("resolution.started", url=url)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=wait_exponential(multiplier=self.config.initial_backoff),
            retry=retry_if_exception_type(RetryableResolutionError),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

        try:
            result = await retrying(self._fetch, url)
        except RetryableResolutionError as e:
            logger.warning(
                f"Lookup gave up after {self.config.max_attempts} attempts for {url}: {e}"
            )
            float_event("resolution.exhausted", url=url, kind=e.kind.value)
            return None
        except ResolutionError as e:
            logger.warning(f"Lookup failed for {url} (status={e.status_code}): {e}")
            float_event("resolution.failed", url=url, kind=e.kind.value, status=e.status_code)
            return None

        float_event("resolution.succeeded", url=url, platforms=len(result.links_by_platform))
        return result

    async def _fetch(self, url: str) -> ResolvedLinkSet:
        """
        Perform a single lookup attempt.

        Raises:
            RateLimitedError: 429
            ServerUnavailableError: 5xx
            NetworkTimeoutError: Timeout or connection failure
            ClientRejectedError: Any other non-200 status, or a redirect loop
            MalformedResponseError: Body is not a valid lookup response or
                cannot be decoded
        """
        float_event("resolution.attempt", url=url)

        try:
            response = await self.client.get(
                self.config.api_base_url,
                params={"url": url},
                timeout=self.config.timeout,
            )
        except httpx.TimeoutException as e:
            raise NetworkTimeoutError(f"Lookup timed out: {e!r}") from e
        except httpx.TransportError as e:
            raise NetworkTimeoutError(f"Lookup connection failed: {e!r}") from e
        except httpx.DecodingError as e:
            raise MalformedResponseError(f"Undecodable lookup response: {e!r}") from e
        except httpx.TooManyRedirects as e:
            # a redirect loop will not clear up between attempts
            raise ClientRejectedError(f"Lookup redirected too many times: {e!r}") from e
        except httpx.HTTPError as e:
            raise ClientRejectedError(f"Lookup request failed: {e!r}") from e

        status = response.status_code
        logger.debug(f"Lookup response: status={status}, bytes={len(response.content)}")

        if status == 429:
            raise RateLimitedError("Lookup API rate limit exceeded", status_code=status)
        if status >= 500:
            raise ServerUnavailableError("Lookup API server error", status_code=status)
        if status != 200:
            raise ClientRejectedError("Lookup API rejected the request", status_code=status)

        try:
            payload = response.json()
            parsed = ResolutionApiResponse.model_validate(payload)
        except (ValueError, ValidationError) as e:
            raise MalformedResponseError(
                f"Unparsable lookup response: {e}", status_code=status
            ) from e

        return ResolvedLinkSet.from_api(parsed, original_url=url)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        kind = getattr(error, "kind", None)
        logger.warning(
            f"Lookup attempt {retry_state.attempt_number} failed ({error}); "
            f"retrying in {delay:.2f}s"
        )
        float_event(
            "resolution.retry",
            attempt=retry_state.attempt_number,
            delay=delay,
            kind=kind.value if kind else None,
        )

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        """String representation of client."""
        return (
            f"ResolutionClient({self.config.api_base_url}, "
            f"max_attempts={self.config.max_attempts})"
        )
