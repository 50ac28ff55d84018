"""Tests for the mini playlist repository."""

import base64

import pytest

from unitune.core.exceptions import InvalidArgumentError
from unitune.core.models import MiniPlaylist, PlaylistTrack, ResolvedLinkSet
from unitune.core.services.playlists import (
    PLAYLISTS_KEY,
    REMOTE_PLAYLISTS_KEY,
    PlaylistRepository,
    decode_shared_playlist,
    encode_for_sharing,
)


def track(n: int) -> PlaylistTrack:
    return PlaylistTrack(
        id=f"t{n}",
        title=f"Track {n}",
        artist=f"Artist {n % 2}",
        original_url=f"https://www.deezer.com/track/{n}",
    )


@pytest.fixture
def playlists(store, clock) -> PlaylistRepository:
    return PlaylistRepository(store, max_history=3, clock=clock)


async def test_create_stores_playlist(playlists, clock):
    playlist = await playlists.create("Road trip", [track(1)], description="Desc")

    stored = await playlists.get(playlist.id)

    assert await playlists.get_all() == [playlist]
    assert stored.title == "Road trip"
    assert stored.description == "Desc"
    assert stored.created_at == clock.now
    assert stored.last_modified == clock.now


async def test_get_unknown_id(playlists):
    assert await playlists.get("missing") is None


async def test_save_replaces_and_stamps_last_modified(playlists, clock):
    playlist = await playlists.create("Old", [track(1)])
    clock.advance(90)

    saved = await playlists.save(playlist.model_copy(update={"title": "New"}))

    assert [p.title for p in await playlists.get_all()] == ["New"]
    assert saved.last_modified == clock.now
    assert saved.created_at == playlist.created_at


async def test_add_and_remove_tracks(playlists):
    playlist = await playlists.create("Mix", [track(1)])

    await playlists.add_track(playlist.id, track(2))
    updated = await playlists.remove_track(playlist.id, "t1")

    assert [t.id for t in updated.tracks] == ["t2"]
    assert (await playlists.get(playlist.id)).tracks == updated.tracks


async def test_reorder_moves_track(playlists):
    playlist = await playlists.create("Mix", [track(1), track(2), track(3)])

    updated = await playlists.reorder_tracks(playlist.id, 0, 2)

    assert [t.id for t in updated.tracks] == ["t2", "t3", "t1"]


@pytest.mark.parametrize(("old", "new"), [(3, 0), (0, 3), (-1, 0)])
async def test_reorder_rejects_out_of_range(playlists, old, new):
    playlist = await playlists.create("Mix", [track(1), track(2), track(3)])

    with pytest.raises(InvalidArgumentError):
        await playlists.reorder_tracks(playlist.id, old, new)

    assert [t.id for t in (await playlists.get(playlist.id)).tracks] == ["t1", "t2", "t3"]


async def test_track_edits_on_unknown_playlist(playlists):
    with pytest.raises(InvalidArgumentError):
        await playlists.add_track("missing", track(1))
    with pytest.raises(InvalidArgumentError):
        await playlists.remove_track("missing", "t1")


async def test_received_and_shared_history_are_separate(playlists):
    playlist = await playlists.create("Imported", [track(2)])

    await playlists.save_received(playlist)
    await playlists.save_shared(playlist)

    assert len(await playlists.get_received_history()) == 1
    assert len(await playlists.get_shared_history()) == 1
    assert len(await playlists.get_all()) == 1


async def test_history_is_bounded_newest_first(playlists, clock):
    for n in range(5):
        await playlists.save_shared(
            MiniPlaylist(id=f"p{n}", title=f"P{n}", tracks=[track(n)], created_at=clock.now)
        )

    assert [p.id for p in await playlists.get_shared_history()] == ["p4", "p3", "p2"]


async def test_received_again_moves_to_front_once(playlists, clock):
    first = MiniPlaylist(id="a", title="A", created_at=clock.now)
    second = MiniPlaylist(id="b", title="B", created_at=clock.now)

    await playlists.save_received(first)
    await playlists.save_received(second)
    await playlists.save_received(first)

    assert [p.id for p in await playlists.get_received_history()] == ["a", "b"]


async def test_create_received_skips_created_list(playlists):
    playlist = await playlists.create_received("From a friend", [track(1)])

    assert await playlists.get_all() == []
    assert (await playlists.get_received_history())[0].id == playlist.id


async def test_delete_removes_from_created_and_received(playlists):
    playlist = await playlists.create("Delete me", [track(3)])
    await playlists.save_received(playlist)

    assert await playlists.delete(playlist.id) is True
    assert await playlists.get_all() == []
    assert await playlists.get_received_history() == []
    assert await playlists.delete(playlist.id) is False


async def test_remote_ref_round_trip(playlists, clock):
    assert await playlists.get_remote_ref("local") is None

    await playlists.save_remote_ref("local", "remote-1", "secret")
    ref = await playlists.get_remote_ref("local")

    assert ref.remote_id == "remote-1"
    assert ref.delete_token == "secret"
    assert ref.saved_at == clock.now


async def test_corrupt_documents_read_as_empty(store, playlists):
    await store.set(PLAYLISTS_KEY, "{not json")
    await store.set(REMOTE_PLAYLISTS_KEY, '{"local": 5}')

    assert await playlists.get_all() == []
    assert await playlists.get_remote_ref("local") is None


def test_max_history_must_be_positive(store):
    with pytest.raises(ValueError):
        PlaylistRepository(store, max_history=0)


def test_artists_are_distinct_in_order(clock):
    tracks = [track(1), track(2), track(3)]
    playlist = MiniPlaylist(title="Mix", tracks=tracks, created_at=clock.now)

    assert playlist.artists == ["Artist 1", "Artist 0"]
    assert playlist.is_valid
    assert not MiniPlaylist(title="Empty", created_at=clock.now).is_valid


def test_track_from_link_set():
    links = ResolvedLinkSet(
        artist="The Killers",
        links_by_platform={"tidal": "https://tidal.com/browse/track/1781887"},
        original_url="https://open.spotify.com/track/3n3Ppam7vgaVa1iaRUc9Lp",
    )

    built = PlaylistTrack.from_link_set(links)

    assert built.title == "Unknown Track"
    assert built.original_url == links.original_url
    assert built.converted_links == {"tidal": "https://tidal.com/browse/track/1781887"}

    with pytest.raises(ValueError):
        PlaylistTrack.from_link_set(ResolvedLinkSet(title="No url"))


def test_encoded_playlist_decodes_without_padding(clock):
    playlist = MiniPlaylist(title="Mix", tracks=[track(1)], created_at=clock.now)

    encoded = encode_for_sharing(playlist)

    assert decode_shared_playlist(encoded) == playlist
    assert decode_shared_playlist(encoded.rstrip("=")) == playlist


@pytest.mark.parametrize(
    "encoded",
    [
        "%%%",
        base64.urlsafe_b64encode(b'{"title": 1}').decode(),
        base64.urlsafe_b64encode(b"\xff").decode(),
    ],
)
def test_decode_rejects_garbage(encoded):
    assert decode_shared_playlist(encoded) is None
