"""
Playlist extraction by walking continuation-linked browse pages.

The paginator is an explicit state machine:

    START -> FETCHING_PAGE -> HAS_CONTINUATION -> FETCHING_PAGE ... -> DONE

Pages are fetched strictly one after another, since each continuation token
comes from the previous response. A failing page aborts the walk with
PaginationError and discards whatever was collected: a partial playlist is
never returned.
"""

import logging
from typing import Any

from ..config import get_settings
from ..errors import ExtractionError, PaginationError
from ..models.enums import PaginationState
from ..models.playlist import Playlist, PlaylistEntry
from ..utils.helpers import get_text, parse_duration, traverse_obj
from .base import BaseExtractor
from .youtube import parse_thumbnails

logger = logging.getLogger(__name__)

_CLIENT = "web"


def parse_video_entry(item: dict) -> PlaylistEntry | None:
    """Build an entry from a ``playlistVideoRenderer`` item."""
    renderer = item.get("playlistVideoRenderer")
    if not renderer or not renderer.get("videoId"):
        return None
    return PlaylistEntry(
        id=renderer["videoId"],
        title=get_text(renderer.get("title")) or "",
        author=get_text(renderer.get("shortBylineText")) or "",
        duration=parse_duration(renderer.get("lengthSeconds") or get_text(renderer.get("lengthText"))),
        thumbnails=parse_thumbnails(traverse_obj(renderer, ("thumbnail", "thumbnails"))),
    )


def continuation_token(item: dict) -> str | None:
    return traverse_obj(
        item,
        ("continuationItemRenderer", "continuationEndpoint", "continuationCommand", "token"),
    )


def parse_page_items(items: list[dict]) -> tuple[list[PlaylistEntry], str | None]:
    """Split a page's item list into entries and the next continuation token."""
    entries: list[PlaylistEntry] = []
    token = None
    for item in items or []:
        if not isinstance(item, dict):
            continue
        entry = parse_video_entry(item)
        if entry is not None:
            entries.append(entry)
            continue
        token = continuation_token(item) or token
    return entries, token


def first_page_items(data: dict) -> list[dict] | None:
    """Items of the first browse page; None when the response has no playlist."""
    tabs = traverse_obj(data, ("contents", "twoColumnBrowseResultsRenderer", "tabs")) or []
    for tab in tabs:
        sections = traverse_obj(tab, ("tabRenderer", "content", "sectionListRenderer", "contents")) or []
        for section in sections:
            for content in traverse_obj(section, ("itemSectionRenderer", "contents")) or []:
                items = traverse_obj(content, ("playlistVideoListRenderer", "contents"))
                if items is not None:
                    return items
    return None


def continuation_page_items(data: dict) -> list[dict]:
    for action in data.get("onResponseReceivedActions") or []:
        items = traverse_obj(action, ("appendContinuationItemsAction", "continuationItems"))
        if items is not None:
            return items
    return []


def parse_playlist_metadata(data: dict) -> dict[str, str]:
    metadata = traverse_obj(data, ("metadata", "playlistMetadataRenderer")) or {}
    header = traverse_obj(data, ("header", "playlistHeaderRenderer")) or {}

    author = get_text(header.get("ownerText"))
    if not author:
        for item in traverse_obj(data, ("sidebar", "playlistSidebarRenderer", "items")) or []:
            owner = traverse_obj(
                item, ("playlistSidebarSecondaryInfoRenderer", "videoOwner", "videoOwnerRenderer", "title")
            )
            if owner:
                author = get_text(owner)
                break

    return {
        "title": metadata.get("title") or get_text(header.get("title")) or "",
        "description": metadata.get("description") or get_text(header.get("descriptionText")) or "",
        "author": author or "",
    }


class PlaylistPaginator:
    """Walks the pages of one playlist. Use once per playlist lookup."""

    def __init__(self, extractor: "PlaylistExtractor", playlist_id: str, max_pages: int | None = None):
        self._extractor = extractor
        self.playlist_id = playlist_id
        self.max_pages = max_pages or get_settings().max_playlist_pages
        self.state = PaginationState.START
        self.pages_fetched = 0
        self.metadata: dict[str, str] = {}
        self.videos: list[PlaylistEntry] = []
        self._token: str | None = None

    async def step(self):
        """Fetch one page and advance the state machine."""
        if self.state is PaginationState.DONE:
            return
        if self.pages_fetched >= self.max_pages:
            raise PaginationError(f"Playlist {self.playlist_id} exceeds {self.max_pages} pages")

        first = self.state is PaginationState.START
        self.state = PaginationState.FETCHING_PAGE
        try:
            if first:
                data = await self._extractor.browse({"browseId": f"VL{self.playlist_id}"})
                items = first_page_items(data)
                if items is None:
                    raise PaginationError(f"No playlist contents for {self.playlist_id}")
                self.metadata = parse_playlist_metadata(data)
            else:
                data = await self._extractor.browse({"continuation": self._token})
                items = continuation_page_items(data)
        except PaginationError:
            raise
        except (ExtractionError, ValueError) as e:
            raise PaginationError(
                f"Failed to fetch page {self.pages_fetched + 1} of playlist {self.playlist_id}: {e}"
            ) from e

        entries, token = parse_page_items(items)
        self.pages_fetched += 1
        self.videos.extend(entries)
        logger.debug(
            "Playlist %s page %d: %d entries, continuation=%s",
            self.playlist_id,
            self.pages_fetched,
            len(entries),
            bool(token),
        )

        self._token = token
        self.state = PaginationState.HAS_CONTINUATION if token else PaginationState.DONE

    async def run(self) -> Playlist:
        try:
            while self.state is not PaginationState.DONE:
                await self.step()
        except BaseException:
            self.videos = []
            raise

        return Playlist(id=self.playlist_id, videos=self.videos, **self.metadata)


class PlaylistExtractor(BaseExtractor):
    """Resolves a playlist id into a Playlist."""

    async def browse(self, payload: dict[str, Any]) -> dict:
        return await self._call_innertube("browse", _CLIENT, payload)

    async def extract(self, playlist_id: str, max_pages: int | None = None) -> Playlist:
        playlist = await PlaylistPaginator(self, playlist_id, max_pages).run()
        logger.info("Resolved playlist %s: %r with %d videos", playlist_id, playlist.title, len(playlist.videos))
        return playlist
