"""Tests for URL parsing, share tokens and share links."""

import base64

import pytest

from conftest import SPOTIFY_TOKEN, SPOTIFY_URL
from unitune.core.exceptions import ErrorKind, UnsupportedFormatError
from unitune.core.models import CanonicalIdentifier, ContentType, Platform
from unitune.core.services import codec


def ident(platform: Platform, content_type: ContentType, content_id: str) -> CanonicalIdentifier:
    return CanonicalIdentifier(platform=platform, content_type=content_type, id=content_id)


def raw_token(text: str | bytes) -> str:
    data = text.encode("utf-8") if isinstance(text, str) else text
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        (SPOTIFY_URL, ident(Platform.SPOTIFY, ContentType.TRACK, "3n3Ppam7vgaVa1iaRUc9Lp")),
        (
            "https://open.spotify.com/intl-de/album/4OHNH3sDzIxnmUADXzv2kT?si=abc",
            ident(Platform.SPOTIFY, ContentType.ALBUM, "4OHNH3sDzIxnmUADXzv2kT"),
        ),
        (
            "open.spotify.com/playlist/37i9dQZF1DXcBWIGoYBM5M",
            ident(Platform.SPOTIFY, ContentType.PLAYLIST, "37i9dQZF1DXcBWIGoYBM5M"),
        ),
        (
            "https://music.apple.com/us/album/hot-fuss/1440857781?i=1440857795",
            ident(Platform.APPLE_MUSIC, ContentType.TRACK, "1440857795"),
        ),
        (
            "https://music.apple.com/de/album/hot-fuss/1440857781",
            ident(Platform.APPLE_MUSIC, ContentType.ALBUM, "1440857781"),
        ),
        (
            "https://music.apple.com/us/song/mr-brightside/1440857795",
            ident(Platform.APPLE_MUSIC, ContentType.TRACK, "1440857795"),
        ),
        (
            "https://music.apple.com/us/playlist/todays-hits/pl.f4d106fed2bd41149aaacabb233eb5eb",
            ident(Platform.APPLE_MUSIC, ContentType.PLAYLIST, "pl.f4d106fed2bd41149aaacabb233eb5eb"),
        ),
        (
            "https://tidal.com/browse/track/258735410/u",
            ident(Platform.TIDAL, ContentType.TRACK, "258735410"),
        ),
        (
            "https://listen.tidal.com/album/258735409/track/258735410",
            ident(Platform.TIDAL, ContentType.TRACK, "258735410"),
        ),
        (
            "https://tidal.com/playlist/0c5e2c35-0a4f-4b2d-9d43-4c9e2b1a7f11",
            ident(Platform.TIDAL, ContentType.PLAYLIST, "0c5e2c35-0a4f-4b2d-9d43-4c9e2b1a7f11"),
        ),
        (
            "https://music.youtube.com/watch?v=dQw4w9WgXcQ&feature=share",
            ident(Platform.YOUTUBE_MUSIC, ContentType.TRACK, "dQw4w9WgXcQ"),
        ),
        (
            "https://music.youtube.com/playlist?list=OLAK5uy_abc-123",
            ident(Platform.YOUTUBE_MUSIC, ContentType.PLAYLIST, "OLAK5uy_abc-123"),
        ),
        (
            "https://music.youtube.com/browse/MPREb_4pL8gzRtw1p",
            ident(Platform.YOUTUBE_MUSIC, ContentType.ALBUM, "MPREb_4pL8gzRtw1p"),
        ),
        (
            "https://www.deezer.com/fr/album/302127",
            ident(Platform.DEEZER, ContentType.ALBUM, "302127"),
        ),
        (
            "https://deezer.com/track/3135556",
            ident(Platform.DEEZER, ContentType.TRACK, "3135556"),
        ),
        (
            "https://music.amazon.com/albums/B00123ABCD?trackAsin=B00999WXYZ",
            ident(Platform.AMAZON_MUSIC, ContentType.TRACK, "B00999WXYZ"),
        ),
        (
            "https://www.amazon.com/music/player/albums/B00123ABCD",
            ident(Platform.AMAZON_MUSIC, ContentType.ALBUM, "B00123ABCD"),
        ),
        (
            "https://music.amazon.com/user-playlists/abc123def",
            ident(Platform.AMAZON_MUSIC, ContentType.PLAYLIST, "abc123def"),
        ),
    ],
)
def test_parse_known_formats(url, expected):
    assert codec.parse(url) == expected


@pytest.mark.parametrize(
    "url",
    [
        "https://example.com/track/1",
        "https://open.spotify.com/show/4rOoJ6Egrf8K2IrywzwOMk",
        "https://www.amazon.com/dp/B00123ABCD",
        "https://youtu.be/dQw4w9WgXcQ",
        "https://www.deezer.com/track/not-a-number",
        "ftp://open.spotify.com/track/abc",
        "",
    ],
)
def test_parse_rejects_unsupported(url):
    with pytest.raises(UnsupportedFormatError) as exc_info:
        codec.parse(url)
    assert exc_info.value.kind == ErrorKind.UNSUPPORTED_FORMAT


def test_parse_lookalike_domain_is_not_claimed():
    with pytest.raises(UnsupportedFormatError):
        codec.parse("https://notspotify.com/track/3n3Ppam7vgaVa1iaRUc9Lp")


def test_encode_known_token():
    assert codec.encode(codec.parse(SPOTIFY_URL)) == SPOTIFY_TOKEN


def test_decode_known_token():
    assert codec.decode(SPOTIFY_TOKEN) == ident(
        Platform.SPOTIFY, ContentType.TRACK, "3n3Ppam7vgaVa1iaRUc9Lp"
    )


def test_encode_is_url_safe_and_unpadded():
    token = codec.encode(ident(Platform.DEEZER, ContentType.TRACK, "1"))
    assert "=" not in token
    assert set(token) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")


def test_decode_accepts_padded_token():
    token = codec.encode(ident(Platform.DEEZER, ContentType.TRACK, "1"))
    padded = token + "=" * (-len(token) % 4)
    assert padded != token
    assert codec.decode(padded) == ident(Platform.DEEZER, ContentType.TRACK, "1")


@pytest.mark.parametrize(
    "token",
    [
        "",
        "!!!notbase64",
        "abc/def",
        raw_token("https://open.spotify.com/track/3n3Ppam7vgaVa1iaRUc9Lp"),
        raw_token("spotify:track"),
        raw_token("napster:track:123"),
        raw_token("spotify:podcast:abc"),
        raw_token("deezer:track:not-numeric"),
        raw_token(b"\xff\xfe\xfd"),
        "A",
    ],
)
def test_decode_malformed_returns_none(token):
    assert codec.decode(token) is None


def test_decode_legacy_aliases_and_case():
    decoded = codec.decode(raw_token("SPOTIFY:song:3n3Ppam7vgaVa1iaRUc9Lp"))
    assert decoded == ident(Platform.SPOTIFY, ContentType.TRACK, "3n3Ppam7vgaVa1iaRUc9Lp")

    decoded = codec.decode(raw_token("youtubemusic:video:dQw4w9WgXcQ"))
    assert decoded == ident(Platform.YOUTUBE_MUSIC, ContentType.TRACK, "dQw4w9WgXcQ")


def test_decode_id_keeps_everything_after_second_colon():
    decoded = codec.decode(raw_token("appleMusic:playlist:pl.abc.def"))
    assert decoded is not None
    assert decoded.id == "pl.abc.def"


@pytest.mark.parametrize(
    "identifier",
    [
        ident(Platform.SPOTIFY, ContentType.ARTIST, "0C0XlULifJtAgn6ZNCW2eu"),
        ident(Platform.APPLE_MUSIC, ContentType.TRACK, "1440857795"),
        ident(Platform.APPLE_MUSIC, ContentType.PLAYLIST, "pl.u-abc123"),
        ident(Platform.TIDAL, ContentType.PLAYLIST, "0c5e2c35-0a4f-4b2d-9d43-4c9e2b1a7f11"),
        ident(Platform.YOUTUBE_MUSIC, ContentType.TRACK, "dQw4w9WgXcQ"),
        ident(Platform.YOUTUBE_MUSIC, ContentType.ARTIST, "UCbulh9WdLtEXiooRcYK7SWw"),
        ident(Platform.DEEZER, ContentType.PLAYLIST, "908622995"),
        ident(Platform.AMAZON_MUSIC, ContentType.ARTIST, "B000QJPWA4"),
    ],
)
def test_reconstructed_url_parses_back(identifier):
    url = codec.reconstruct_url(identifier)
    assert codec.parse(url) == identifier
    assert codec.decode(codec.encode(identifier)) == identifier


def test_reconstruct_url_formats():
    assert (
        codec.reconstruct_url(ident(Platform.SPOTIFY, ContentType.TRACK, "3n3Ppam7vgaVa1iaRUc9Lp"))
        == SPOTIFY_URL
    )
    assert (
        codec.reconstruct_url(ident(Platform.YOUTUBE_MUSIC, ContentType.PLAYLIST, "PLx"))
        == "https://music.youtube.com/playlist?list=PLx"
    )


def test_share_link_from_url():
    assert codec.share_link_from_url(SPOTIFY_URL) == f"https://unitune.art/s/{SPOTIFY_TOKEN}"
    assert (
        codec.share_link_from_url(SPOTIFY_URL, base_url="https://share.example.org/")
        == f"https://share.example.org/s/{SPOTIFY_TOKEN}"
    )


def test_share_link_from_unsupported_url_raises():
    with pytest.raises(UnsupportedFormatError):
        codec.share_link_from_url("https://example.com/song")


@pytest.mark.parametrize(
    ("link", "expected"),
    [
        (f"https://unitune.art/s/{SPOTIFY_TOKEN}", SPOTIFY_TOKEN),
        (f"https://www.unitune.art/s/{SPOTIFY_TOKEN}/", SPOTIFY_TOKEN),
        (f"unitune.art/s/{SPOTIFY_TOKEN}", SPOTIFY_TOKEN),
        (f"https://evil.example/s/{SPOTIFY_TOKEN}", None),
        (f"https://unitune.art/x/{SPOTIFY_TOKEN}", None),
        ("https://unitune.art/s/", None),
        (f"https://unitune.art/s/{SPOTIFY_TOKEN}/extra", None),
    ],
)
def test_extract_token(link, expected):
    assert codec.extract_token(link) == expected


def test_decode_share_link_legacy_payload_fails_closed():
    legacy = f"https://unitune.art/s/{raw_token(SPOTIFY_URL)}"
    assert codec.decode_share_link(legacy) is None


def test_identifier_rejects_path_characters():
    with pytest.raises(ValueError):
        ident(Platform.SPOTIFY, ContentType.TRACK, "abc/def")
    with pytest.raises(ValueError):
        ident(Platform.SPOTIFY, ContentType.TRACK, "")


@pytest.mark.parametrize(
    ("link", "expected"),
    [
        ("https://unitune.art/p/r1", "r1"),
        ("https://www.unitune.art/p/r1/", "r1"),
        ("https://unitune.art/s/r1", None),
        ("https://unitune.art/p/", None),
        ("https://unitune.art.evil.example/p/r1", None),
    ],
)
def test_extract_playlist_id(link, expected):
    assert codec.extract_playlist_id(link) == expected


def test_playlist_link_round_trip():
    link = codec.build_playlist_link("r1", base_url="https://share.example.com/")

    assert link == "https://share.example.com/p/r1"
    assert codec.extract_playlist_id(link, share_domain="share.example.com") == "r1"
