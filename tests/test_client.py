"""End-to-end tests for the Client against the offline fake host."""

import asyncio
import logging
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fakes import (
    DESCRAMBLED_SIGNATURE,
    THROTTLED_N,
    FakeYouTube,
    ciphered,
    media_url,
    player_response,
    playlist_first_page,
    playlist_item,
)

from tubefetch import Client
from tubefetch.client import range_header, with_deadline
from tubefetch.core.cipher import CipherCache
from tubefetch.errors import (
    InvalidCharactersError,
    PlayabilityError,
    TransportError,
    VideoIDTooShortError,
)
from tubefetch.models.enums import PlayabilityStatus, TransportErrorKind
from tubefetch.models.video import Format

KNOWN_VIDEO = "rFejpH_tAHM"
LIVE_VIDEO = "5qap5aO4i9A"
STREAM_VIDEO = "BaW_jenozKc"

MEDIA = bytes(range(256)) * 8628  # 2208768 bytes


def _known_video(fake: FakeYouTube):
    fake.players[KNOWN_VIDEO] = {
        "android_vr": player_response(
            KNOWN_VIDEO,
            title="dotGo 2015 - Rob Pike - Simplicity is Complicated",
            author="dotconferences",
            length_seconds=1392,
            formats=[{"itag": 18, "url": media_url(18), "mimeType": 'video/mp4; codecs="avc1.42001E, mp4a.40.2"', "audioChannels": 2}],
            adaptive_formats=[{"itag": 140, "signatureCipher": ciphered(140), "mimeType": 'audio/mp4; codecs="mp4a.40.2"', "audioChannels": 2}],
        )
    }


def _live_video(fake: FakeYouTube):
    fake.players[LIVE_VIDEO] = {
        "*": player_response(
            LIVE_VIDEO,
            title="lofi hip hop radio",
            author="Lofi Girl",
            hls=f"https://manifest.googlevideo.com/api/manifest/hls_variant/id/{LIVE_VIDEO}/file/index.m3u8",
            dash=f"https://manifest.googlevideo.com/api/manifest/dash/id/{LIVE_VIDEO}/source/yt_live_broadcast",
        )
    }


def _stream_video(fake: FakeYouTube):
    fake.players[STREAM_VIDEO] = {
        "*": player_response(
            STREAM_VIDEO,
            title="youtube-dl test video",
            length_seconds=10,
            formats=[{"itag": 18, "url": media_url(18), "mimeType": "video/mp4", "contentLength": str(len(MEDIA))}],
        )
    }
    fake.media["18"] = MEDIA


def _run(client, coro):
    async def main():
        async with client:
            return await coro

    return asyncio.run(main())


class TestExtractVideoID:
    @pytest.mark.parametrize("value", [f"https://www.youtube.com/watch?v={KNOWN_VIDEO}", KNOWN_VIDEO])
    def test_valid(self, value):
        assert Client.extract_video_id(value) == KNOWN_VIDEO

    def test_invalid_characters(self):
        with pytest.raises(InvalidCharactersError):
            Client.extract_video_id("<M13")

    def test_too_short(self):
        with pytest.raises(VideoIDTooShortError):
            Client.extract_video_id("rFejpH")


class TestGetVideo:
    def test_known_video(self, client, fake_youtube):
        _known_video(fake_youtube)
        video = _run(client, client.get_video(f"https://www.youtube.com/watch?v={KNOWN_VIDEO}"))

        assert video.id == KNOWN_VIDEO
        assert video.title == "dotGo 2015 - Rob Pike - Simplicity is Complicated"
        assert video.author == "dotconferences"
        assert video.duration == timedelta(seconds=1392)
        assert len(video.thumbnails) > 0
        assert video.hls_manifest_url == ""
        assert video.dash_manifest_url == ""
        assert [f.itag for f in video.formats] == [18, 140]

        for fmt in video.formats:
            assert fmt.url
            assert fmt.cipher is None
            assert parse_qs(urlparse(fmt.url).query)["n"] == [THROTTLED_N]
        audio = video.formats.find_by_itag(140)
        assert parse_qs(urlparse(audio.url).query)["sig"] == [DESCRAMBLED_SIGNATURE]

    def test_live_video_has_manifests(self, client, fake_youtube):
        _live_video(fake_youtube)
        video = _run(client, client.get_video(LIVE_VIDEO))
        assert video.hls_manifest_url
        assert video.dash_manifest_url
        assert len(video.thumbnails) > 0
        assert len(video.formats) == 0

    def test_unplayable_video(self, client, fake_youtube):
        fake_youtube.players["xxxxxxxxxxx"] = {"*": player_response("xxxxxxxxxxx", status="UNPLAYABLE", reason="Private video")}
        with pytest.raises(PlayabilityError) as exc_info:
            _run(client, client.get_video("xxxxxxxxxxx"))
        assert exc_info.value.status is PlayabilityStatus.UNPLAYABLE

    def test_invalid_id_makes_no_requests(self, client, fake_youtube):
        with pytest.raises(VideoIDTooShortError):
            _run(client, client.get_video("https://www.youtube.com/watch?v=I8oGsuQ"))
        assert fake_youtube.requests == []

    def test_cipher_cache_shared_between_lookups(self, fake_youtube, cipher_cache):
        _known_video(fake_youtube)

        async def two_clients():
            for _ in range(2):
                async with Client(transport=httpx.MockTransport(fake_youtube.handler), cache=cipher_cache) as client:
                    await client.get_video(KNOWN_VIDEO)

        asyncio.run(two_clients())
        assert len(cipher_cache) == 2  # signature + throttle for one player version

    def test_concurrent_lookups(self, client, fake_youtube):
        _known_video(fake_youtube)
        _live_video(fake_youtube)

        async def both():
            return await asyncio.gather(client.get_video(KNOWN_VIDEO), client.get_video(LIVE_VIDEO))

        known, live = _run(client, both())
        assert known.id == KNOWN_VIDEO
        assert live.id == LIVE_VIDEO


class TestDeadline:
    def test_deadline_exceeded(self):
        async def slow_handler(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json={})

        client = Client(transport=httpx.MockTransport(slow_handler), cache=CipherCache())
        with pytest.raises(TransportError) as exc_info:
            _run(client, client.get_video(KNOWN_VIDEO, timeout=0.05))
        assert exc_info.value.kind is TransportErrorKind.TIMEOUT

    def test_with_deadline_passthrough(self):
        async def value():
            return 42

        assert asyncio.run(with_deadline(value(), None, "test")) == 42

    def test_cancellation_propagates(self):
        async def run():
            task = asyncio.ensure_future(with_deadline(asyncio.sleep(5), 10, "sleep"))
            await asyncio.sleep(0)
            task.cancel()
            await task

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(run())


class TestStreams:
    def test_stream_size_and_body(self, client, fake_youtube):
        _stream_video(fake_youtube)

        async def download():
            video = await client.get_video(STREAM_VIDEO)
            async with await client.open_stream(video, video.formats[0]) as stream:
                return stream.size, await stream.read()

        size, data = _run(client, download())
        assert size == 2208768
        assert len(data) == size

    def test_range(self, client, fake_youtube):
        _stream_video(fake_youtube)

        async def download():
            video = await client.get_video(STREAM_VIDEO)
            async with await client.open_stream(video, video.formats[0], start=100, end=199) as stream:
                return await stream.read()

        assert _run(client, download()) == MEDIA[100:200]
        assert fake_youtube.requests[-1].headers["Range"] == "bytes=100-199"

    def test_get_stream_url_resolves_ciphered_format(self, client, fake_youtube):
        _known_video(fake_youtube)

        async def resolve():
            video = await client.get_video(KNOWN_VIDEO)
            raw = Format(itag=140, cipher=ciphered(140))
            return await client.get_stream_url(video, raw)

        url = _run(client, resolve())
        assert parse_qs(urlparse(url).query)["sig"] == [DESCRAMBLED_SIGNATURE]

    def test_missing_media(self, client, fake_youtube):
        _stream_video(fake_youtube)
        del fake_youtube.media["18"]

        async def download():
            video = await client.get_video(STREAM_VIDEO)
            await client.open_stream(video, video.formats[0])

        with pytest.raises(TransportError) as exc_info:
            _run(client, download())
        assert exc_info.value.status_code == 404

    @pytest.mark.parametrize(
        ("start", "end", "expected"),
        [
            (None, None, None),
            (0, 99, "bytes=0-99"),
            (100, None, "bytes=100-"),
            (None, 99, "bytes=0-99"),
        ],
    )
    def test_range_header(self, start, end, expected):
        assert range_header(start, end) == expected


class TestPlaylistEntries:
    def test_video_from_playlist_entry(self, client, fake_youtube):
        _known_video(fake_youtube)
        fake_youtube.pages["VLPL59FEE129ADFF2B12"] = playlist_first_page(
            "Test Playlist", "", "GoogleVoice", [playlist_item(KNOWN_VIDEO, "dotGo", "dotconferences", 1392)]
        )

        async def lookup():
            playlist = await client.get_playlist("PL59FEE129ADFF2B12")
            return await client.get_video_from_playlist_entry(playlist.videos[0])

        video = _run(client, lookup())
        assert video.id == KNOWN_VIDEO
        assert video.author == "dotconferences"


class TestDebugLogging:
    def test_debug_enables_package_logging(self):
        Client(debug=True, transport=httpx.MockTransport(lambda request: httpx.Response(404)))
        assert logging.getLogger("tubefetch").level == logging.DEBUG
