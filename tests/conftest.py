"""Shared fixtures: fake time, recorded backoff, mocked HTTP."""

from datetime import UTC, datetime, timedelta

import httpx
import pytest

from unitune.core.client import ResolutionClient
from unitune.core.config import UniTuneConfig
from unitune.core.store import InMemoryKeyValueStore

SPOTIFY_URL = "https://open.spotify.com/track/3n3Ppam7vgaVa1iaRUc9Lp"
SPOTIFY_TOKEN = "c3BvdGlmeTp0cmFjazozbjNQcGFtN3ZnYVZhMWlhUlVjOUxw"

LOOKUP_PAYLOAD = {
    "entityUniqueId": "SPOTIFY_SONG::3n3Ppam7vgaVa1iaRUc9Lp",
    "entitiesByUniqueId": {
        "TIDAL_SONG::1781887": {"title": "Mr Brightside (Live)", "artistName": "Someone"},
        "SPOTIFY_SONG::3n3Ppam7vgaVa1iaRUc9Lp": {
            "title": "Mr. Brightside",
            "artistName": "The Killers",
            "thumbnailUrl": "https://i.scdn.co/image/ab67616d0000b273",
        },
    },
    "linksByPlatform": {
        "spotify": {
            "url": SPOTIFY_URL,
            "entityUniqueId": "SPOTIFY_SONG::3n3Ppam7vgaVa1iaRUc9Lp",
        },
        "tidal": {"url": "https://tidal.com/browse/track/1781887"},
        "deezer": {"url": "https://www.deezer.com/track/3135556"},
    },
}


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta | float) -> None:
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        self.now += delta


class RecordingSleep:
    """Backoff sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class SequencedHandler:
    """MockTransport handler replaying a list of responses (or exceptions)."""

    def __init__(self, *responses):
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self._responses)) - 1
        outcome = self._responses[index]
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, int):
            return httpx.Response(outcome, json={"error": "nope"})
        return outcome


def ok(payload=None) -> httpx.Response:
    return httpx.Response(200, json=LOOKUP_PAYLOAD if payload is None else payload)


@pytest.fixture
def config() -> UniTuneConfig:
    return UniTuneConfig()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def make_client(config, sleep):
    """Build a ResolutionClient whose HTTP layer is a MockTransport."""

    def factory(handler) -> ResolutionClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return ResolutionClient(config, http_client=http_client, sleep=sleep)

    return factory
