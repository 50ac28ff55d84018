"""Tests for LinkCache: TTL, size bound, key derivation and corruption handling."""

from datetime import timedelta
import json

import pytest

from conftest import SPOTIFY_URL
from unitune.core.cache import LinkCache, cache_key
from unitune.core.float_controller import FloatContext
from unitune.core.models import Platform, ResolvedLinkSet
from unitune.core.store import InMemoryKeyValueStore

TTL = timedelta(days=7)
EPSILON = timedelta(seconds=1)


def link_set(title: str = "Mr. Brightside") -> ResolvedLinkSet:
    return ResolvedLinkSet(
        title=title,
        artist="The Killers",
        links_by_platform={"spotify": SPOTIFY_URL},
    )


@pytest.fixture
def cache(store, clock) -> LinkCache:
    return LinkCache(store, max_age=TTL, clock=clock)


def test_cache_key_includes_preferred_platform():
    assert cache_key(SPOTIFY_URL, None) == f"any|{SPOTIFY_URL}"
    assert cache_key(SPOTIFY_URL, Platform.TIDAL) == f"tidal|{SPOTIFY_URL}"
    assert cache_key(SPOTIFY_URL, Platform.TIDAL) != cache_key(SPOTIFY_URL, Platform.DEEZER)


async def test_put_then_get(cache):
    await cache.put(SPOTIFY_URL, Platform.TIDAL, link_set())

    assert await cache.get(SPOTIFY_URL, Platform.TIDAL) == link_set()
    assert await cache.get(SPOTIFY_URL, None) is None
    assert await cache.get(SPOTIFY_URL, Platform.DEEZER) is None


async def test_entry_alive_just_before_and_at_max_age(cache, clock):
    await cache.put(SPOTIFY_URL, None, link_set())

    clock.advance(TTL - EPSILON)
    assert await cache.get(SPOTIFY_URL) is not None

    clock.advance(EPSILON)
    assert await cache.get(SPOTIFY_URL) is not None


async def test_entry_expires_after_max_age(cache, clock):
    await cache.put(SPOTIFY_URL, None, link_set())

    clock.advance(TTL + EPSILON)

    with FloatContext() as fc:
        assert await cache.get(SPOTIFY_URL) is None
        assert fc.has_float("cache.expired")

    assert await cache.size() == 0
    assert cache.stats["evictions"] == 1


async def test_size_bound_keeps_newest_entries(cache, clock):
    for i in range(55):
        await cache.put(f"https://www.deezer.com/track/{i}", None, link_set(f"Song {i}"))
        clock.advance(1)

    assert await cache.size() == 50
    for i in range(5):
        assert await cache.get(f"https://www.deezer.com/track/{i}") is None
    for i in range(5, 55):
        cached = await cache.get(f"https://www.deezer.com/track/{i}")
        assert cached is not None
        assert cached.title == f"Song {i}"


async def test_same_timestamp_trims_oldest_insert(store, clock):
    cache = LinkCache(store, max_age=TTL, max_entries=2, clock=clock)

    await cache.put("https://deezer.com/track/1", None, link_set("1"))
    await cache.put("https://deezer.com/track/2", None, link_set("2"))
    await cache.put("https://deezer.com/track/3", None, link_set("3"))

    assert await cache.get("https://deezer.com/track/1") is None
    assert (await cache.get("https://deezer.com/track/3")).title == "3"


async def test_overwrite_replaces_entry(cache, clock):
    await cache.put(SPOTIFY_URL, None, link_set("old"))
    clock.advance(10)
    await cache.put(SPOTIFY_URL, None, link_set("new"))

    assert await cache.size() == 1
    assert (await cache.get(SPOTIFY_URL)).title == "new"


async def test_invalidate(cache):
    await cache.put(SPOTIFY_URL, None, link_set())

    assert await cache.invalidate(SPOTIFY_URL) is True
    assert await cache.invalidate(SPOTIFY_URL) is False
    assert await cache.get(SPOTIFY_URL) is None


async def test_clear_expired(cache, clock):
    await cache.put("https://deezer.com/track/1", None, link_set())
    clock.advance(TTL)
    await cache.put("https://deezer.com/track/2", None, link_set())
    clock.advance(EPSILON)

    assert await cache.clear_expired() == 1
    assert await cache.size() == 1


async def test_clear_all_resets_stats(cache, store):
    await cache.put(SPOTIFY_URL, None, link_set())
    await cache.get(SPOTIFY_URL)

    await cache.clear_all()

    assert await store.get("unitune_link_cache") is None
    assert cache.stats["hits"] == 0


async def test_entries_persist_across_instances(store, clock):
    first = LinkCache(store, clock=clock)
    await first.put(SPOTIFY_URL, None, link_set())

    second = LinkCache(store, clock=clock)
    assert await second.get(SPOTIFY_URL) == link_set()


async def test_corrupted_namespace_is_a_miss(clock):
    store = InMemoryKeyValueStore({"unitune_link_cache": "{not json"})
    cache = LinkCache(store, clock=clock)

    with FloatContext() as fc:
        assert await cache.get(SPOTIFY_URL) is None
        assert fc.has_float("cache.unreadable")

    assert cache.stats["unreadable"] == 1

    await cache.put(SPOTIFY_URL, None, link_set())
    assert await cache.get(SPOTIFY_URL) == link_set()


async def test_non_object_namespace_is_a_miss(clock):
    store = InMemoryKeyValueStore({"unitune_link_cache": "[1, 2, 3]"})
    cache = LinkCache(store, clock=clock)

    assert await cache.get(SPOTIFY_URL) is None
    assert cache.stats["unreadable"] == 1


async def test_unreadable_entry_is_skipped(cache, store):
    await cache.put(SPOTIFY_URL, None, link_set())

    data = json.loads(await store.get("unitune_link_cache"))
    data["any|https://broken.example"] = {"result": "garbage"}
    await store.set("unitune_link_cache", json.dumps(data))

    assert await cache.get(SPOTIFY_URL) == link_set()
    assert await cache.size() == 1


async def test_store_write_failure_is_not_raised(clock):
    class ReadOnlyStore(InMemoryKeyValueStore):
        async def set(self, key: str, value: str) -> None:
            raise OSError("disk full")

    cache = LinkCache(ReadOnlyStore(), clock=clock)

    await cache.put(SPOTIFY_URL, None, link_set())
    assert await cache.get(SPOTIFY_URL) is None


def test_rejects_invalid_bounds(store):
    with pytest.raises(ValueError):
        LinkCache(store, max_entries=0)
    with pytest.raises(ValueError):
        LinkCache(store, max_age=timedelta(0))


async def test_stats_hit_rate(cache):
    await cache.put(SPOTIFY_URL, None, link_set())
    await cache.get(SPOTIFY_URL)
    await cache.get("https://deezer.com/track/404")

    stats = cache.stats
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == "50.00%"
