"""
Client entry point.

Ties the identifier resolver, the extractors and the transport together:

    async with Client() as client:
        video = await client.get_video("https://www.youtube.com/watch?v=rFejpH_tAHM")
        fmt = video.formats.with_audio_channels().sort_best()[0]
        async with await client.open_stream(video, fmt) as stream:
            async for chunk in stream:
                ...
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

import httpx

from .config import configure_logging
from .core.cipher import CipherCache, get_cipher_cache
from .core.http_client import HTTPClient
from .core.stream import Stream
from .core.url_matcher import extract_playlist_id, extract_video_id
from .errors import NoPlayableFormatsError, TransportError
from .extractors.playlist import PlaylistExtractor
from .extractors.youtube import PlayerScript, YouTubeExtractor
from .models.enums import TransportErrorKind
from .models.playlist import Playlist, PlaylistEntry
from .models.video import Format, Video

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_deadline(awaitable: Awaitable[T], timeout: float | None, what: str) -> T:
    """Await *awaitable*, raising TransportError(TIMEOUT) once *timeout* seconds pass."""
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except asyncio.TimeoutError as e:
        raise TransportError(TransportErrorKind.TIMEOUT, f"{what} exceeded deadline of {timeout}s") from e


def range_header(start: int | None, end: int | None) -> str | None:
    """HTTP Range value for an inclusive byte span; None for the whole body."""
    if start is None and end is None:
        return None
    return f"bytes={start or 0}-{'' if end is None else end}"


class Client:
    """
    Resolves videos and playlists into metadata and fetchable streams.

    One instance can serve concurrent lookups. Derived cipher programs are
    shared through the process-wide CipherCache unless *cache* is given.
    """

    def __init__(
        self,
        debug: bool = False,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: int | None = None,
        max_retries: int | None = None,
        cache: CipherCache | None = None,
    ):
        if debug:
            configure_logging(debug=True)
        self.http = HTTPClient(timeout=timeout, max_retries=max_retries, transport=transport)
        self.cache = cache if cache is not None else get_cipher_cache()
        self._videos = YouTubeExtractor(self.http, self.cache)
        self._playlists = PlaylistExtractor(self.http)

    @staticmethod
    def extract_video_id(url_or_id: str) -> str:
        return extract_video_id(url_or_id)

    async def get_video(self, url_or_id: str, timeout: float | None = None) -> Video:
        video_id = extract_video_id(url_or_id)
        logger.debug("Fetching video %s", video_id)
        return await with_deadline(self._videos.extract(video_id), timeout, f"video {video_id}")

    async def get_playlist(self, url_or_id: str, timeout: float | None = None) -> Playlist:
        playlist_id = extract_playlist_id(url_or_id)
        logger.debug("Fetching playlist %s", playlist_id)
        return await with_deadline(self._playlists.extract(playlist_id), timeout, f"playlist {playlist_id}")

    async def get_video_from_playlist_entry(self, entry: PlaylistEntry, timeout: float | None = None) -> Video:
        return await self.get_video(entry.id, timeout=timeout)

    async def get_stream_url(self, video: Video, fmt: Format, timeout: float | None = None) -> str:
        """
        The fetchable URL of *fmt*. Formats returned by get_video are already
        resolved; a still-ciphered format is resolved against the player
        script now.
        """
        if fmt.url and not fmt.cipher:
            return fmt.url
        script = PlayerScript(self._videos, video.id)
        resolved = await with_deadline(
            self._videos.resolve_format(fmt, script), timeout, f"format {fmt.itag} of {video.id}"
        )
        if not resolved.url:
            raise NoPlayableFormatsError(f"format {fmt.itag} of {video.id} has no URL")
        return resolved.url

    async def open_stream(
        self,
        video: Video,
        fmt: Format,
        start: int | None = None,
        end: int | None = None,
        timeout: float | None = None,
    ) -> Stream:
        """
        Start fetching the bytes of *fmt*. The body is transferred lazily as
        the returned Stream is read; close it to release the connection.
        *start*/*end* select an inclusive byte range.
        """
        url = await self.get_stream_url(video, fmt, timeout=timeout)
        headers = {}
        byte_range = range_header(start, end)
        if byte_range:
            headers["Range"] = byte_range

        logger.debug("Opening stream for %s itag %s (%s)", video.id, fmt.itag, byte_range or "full")
        return await with_deadline(
            self.http.open_stream(url, headers=headers, timeout=timeout),
            timeout,
            f"stream {video.id}/{fmt.itag}",
        )

    async def aclose(self):
        await self.http.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()
