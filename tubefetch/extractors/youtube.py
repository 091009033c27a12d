"""
Video extractor: player-response fetching/parsing and format resolution.
Ported from yt-dlp's youtube extractor and cobalt's youtube.js.

Flow for one video lookup:
1. Fetch the player response, trying the InnerTube ``player`` endpoint with
   several client descriptors, then the watch page, then the legacy
   ``get_video_info`` form. The first response with playability ``OK`` wins.
2. Parse metadata, thumbnails, raw formats and manifest URLs.
3. Resolve formats: plain URLs are kept; ciphered formats are descrambled
   with operations derived from the player script; the ``n`` throttling
   parameter is rewritten when the script is available, and left untouched
   when the rewrite cannot be derived.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse

from ..core.cipher import CipherCache, CipherOperations, apply_signature, derive_operations
from ..core.nsig import ThrottleFunction, apply_throttle, derive_throttle
from ..errors import (
    CipherDerivationError,
    ExtractionError,
    NoPlayableFormatsError,
    PlayabilityError,
    TransportError,
)
from ..models.enums import PlayabilityStatus
from ..models.video import Format, FormatList, Thumbnail, Video
from ..utils.helpers import get_text, int_or_none, parse_date, parse_duration, str_or_none, traverse_obj
from .base import INNERTUBE_CLIENTS, WEB_USER_AGENT, BaseExtractor

logger = logging.getLogger(__name__)

# Player response request shapes, in the order they are tried
_PLAYER_CLIENTS = ["android_vr", "web", "ios"]

_WATCH_URL = "https://www.youtube.com/watch?v={video_id}&bpctr=9999999999&has_verified=1"
_EMBED_URL = "https://www.youtube.com/embed/{video_id}"
_LEGACY_VIDEO_INFO_URL = "https://www.youtube.com/get_video_info"

_PLAYER_URL_PATTERNS = [
    r'"(?:PLAYER_JS_URL|jsUrl)"\s*:\s*"([^"]+)"',
    r'"js"\s*:\s*"([^"]+)"',
    r"(/s/player/[a-zA-Z0-9_-]+/player_ias\.vflset/[^\"']+/base\.js)",
]

_SIGNATURE = "signature"
_THROTTLE = "throttle"


def extract_player_url(page: str) -> str | None:
    """Extract the player JS URL from a watch or embed page."""
    for pattern in _PLAYER_URL_PATTERNS:
        match = re.search(pattern, page)
        if match:
            js_url = match.group(1).replace("\\/", "/")
            if js_url.startswith("//"):
                js_url = f"https:{js_url}"
            elif not js_url.startswith("http"):
                js_url = f"https://www.youtube.com{js_url}"
            return js_url
    return None


def player_version(player_url: str) -> str:
    """The version token in ``/s/player/<version>/...``; the whole URL otherwise."""
    match = re.search(r"/s/player/([a-zA-Z0-9_-]+)/", player_url)
    return match.group(1) if match else player_url


class PlayerScript:
    """
    The player script for one video lookup, fetched at most once.

    Only the derived cipher programs outlive the lookup (in CipherCache); the
    script text itself is dropped with this object.
    """

    def __init__(self, extractor: "YouTubeExtractor", video_id: str):
        self._extractor = extractor
        self.video_id = video_id
        self.url: str | None = None
        self.text: str | None = None
        self.signature_error: CipherDerivationError | None = None
        self.throttle_error: CipherDerivationError | None = None
        self.load_error: Exception | None = None

    @property
    def loaded(self) -> bool:
        return self.text is not None

    @property
    def version(self) -> str:
        return player_version(self.url or "")

    @property
    def signature_timestamp(self) -> int | None:
        if not self.text:
            return None
        return int_or_none(
            self._extractor._search_regex(r"(?:signatureTimestamp|sts)\s*:\s*(\d{5})", self.text, default="")
        )

    async def load(self) -> "PlayerScript":
        """Fetch the script once; a failed fetch is re-raised without another request."""
        if self.text is not None:
            return self
        if self.load_error is not None:
            raise self.load_error
        try:
            if self.url is None:
                page = await self._extractor._download_webpage(_EMBED_URL.format(video_id=self.video_id))
                self.url = extract_player_url(page)
                if self.url is None:
                    raise CipherDerivationError("Could not find player script URL")
            logger.debug("Fetching player script %s", self.url)
            self.text = await self._extractor._download_webpage(self.url, headers={"User-Agent": WEB_USER_AGENT})
        except (ExtractionError, ValueError) as e:
            self.load_error = e
            raise
        return self


@dataclass
class ParsedPlayerResponse:
    status: PlayabilityStatus
    reason: str = ""
    title: str = ""
    author: str = ""
    channel_id: str | None = None
    description: str = ""
    duration: timedelta = field(default_factory=timedelta)
    publish_date: datetime | None = None
    views: int | None = None
    thumbnails: list[Thumbnail] = field(default_factory=list)
    raw_formats: list[dict] = field(default_factory=list)
    hls_manifest_url: str = ""
    dash_manifest_url: str = ""


def playability_of(data: dict) -> tuple[PlayabilityStatus, str]:
    status = traverse_obj(data, ("playabilityStatus", "status"))
    reason = traverse_obj(
        data,
        ("playabilityStatus", "reason"),
        ("playabilityStatus", "errorScreen", "playerErrorMessageRenderer", "reason", "simpleText"),
        default="",
    )
    return PlayabilityStatus.parse(status), get_text(reason) or ""


def parse_thumbnails(items: Any) -> list[Thumbnail]:
    thumbnails = []
    for item in items or []:
        url = item.get("url") if isinstance(item, dict) else None
        if not url:
            continue
        if url.startswith("//"):
            url = f"https:{url}"
        thumbnails.append(
            Thumbnail(url=url, width=int_or_none(item.get("width")), height=int_or_none(item.get("height")))
        )
    return thumbnails


def parse_player_response(data: dict) -> ParsedPlayerResponse:
    """Turn a raw player response into metadata and unresolved formats."""
    status, reason = playability_of(data)
    video_details = data.get("videoDetails") or {}
    microformat = traverse_obj(data, ("microformat", "playerMicroformatRenderer")) or {}
    streaming_data = data.get("streamingData") or {}

    thumbnails = parse_thumbnails(
        traverse_obj(video_details, ("thumbnail", "thumbnails"), ("thumbnails",))
        or traverse_obj(microformat, ("thumbnail", "thumbnails"))
    )

    return ParsedPlayerResponse(
        status=status,
        reason=reason,
        title=video_details.get("title") or get_text(microformat.get("title")) or "",
        author=video_details.get("author") or microformat.get("ownerChannelName") or "",
        channel_id=video_details.get("channelId") or microformat.get("externalChannelId"),
        description=video_details.get("shortDescription") or get_text(microformat.get("description")) or "",
        duration=parse_duration(video_details.get("lengthSeconds") or microformat.get("lengthSeconds")),
        publish_date=parse_date(microformat.get("publishDate") or microformat.get("uploadDate")),
        views=int_or_none(video_details.get("viewCount")),
        thumbnails=thumbnails,
        raw_formats=list(streaming_data.get("formats") or []) + list(streaming_data.get("adaptiveFormats") or []),
        hls_manifest_url=streaming_data.get("hlsManifestUrl") or "",
        dash_manifest_url=streaming_data.get("dashManifestUrl") or "",
    )


def parse_format(raw: dict) -> Format | None:
    """Map a raw streamingData entry onto a Format; DRM entries give None."""
    if raw.get("drmFamilies"):
        return None
    itag = int_or_none(raw.get("itag"))
    if itag is None:
        return None

    url = str_or_none(raw.get("url"))
    cipher = None if url else str_or_none(raw.get("signatureCipher") or raw.get("cipher"))
    if not url and not cipher:
        return None

    return Format(
        itag=itag,
        mime_type=raw.get("mimeType") or "",
        bitrate=int_or_none(raw.get("bitrate")),
        average_bitrate=int_or_none(raw.get("averageBitrate")),
        quality=raw.get("quality"),
        quality_label=raw.get("qualityLabel"),
        width=int_or_none(raw.get("width")),
        height=int_or_none(raw.get("height")),
        fps=int_or_none(raw.get("fps")),
        content_length=int_or_none(raw.get("contentLength")),
        audio_quality=raw.get("audioQuality"),
        audio_sample_rate=int_or_none(raw.get("audioSampleRate")),
        audio_channels=int_or_none(raw.get("audioChannels")),
        approx_duration_ms=int_or_none(raw.get("approxDurationMs")),
        url=url,
        cipher=cipher,
    )


def set_query_param(url: str, name: str, value: str) -> str:
    parsed = urlparse(url)
    qs = parse_qs(parsed.query, keep_blank_values=True)
    qs[name] = [value]
    return parsed._replace(query=urlencode(qs, doseq=True)).geturl()


class YouTubeExtractor(BaseExtractor):
    """Resolves a video id into a Video with playable formats."""

    def __init__(self, http, cache: CipherCache):
        super().__init__(http)
        self._cache = cache

    async def extract(self, video_id: str) -> Video:
        script = PlayerScript(self, video_id)
        data = await self.fetch_video_info(video_id, script)
        parsed = parse_player_response(data)
        formats = await self.resolve_formats(parsed.raw_formats, script)

        logger.info("Resolved %s: %r with %d formats", video_id, parsed.title, len(formats))
        return Video(
            id=video_id,
            title=parsed.title,
            author=parsed.author,
            channel_id=parsed.channel_id,
            description=parsed.description,
            duration=parsed.duration,
            publish_date=parsed.publish_date,
            views=parsed.views,
            thumbnails=parsed.thumbnails,
            formats=formats,
            hls_manifest_url=parsed.hls_manifest_url,
            dash_manifest_url=parsed.dash_manifest_url,
        )

    # ------------------------------------------------------------------
    # Player response
    # ------------------------------------------------------------------

    async def fetch_video_info(self, video_id: str, script: PlayerScript | None = None) -> dict:
        """
        Return the first player response with playability OK.

        A failed or refused shape moves on to the next one. When every shape
        fails, the first refusal is raised as PlayabilityError; without any
        refusal, the last transport/parse error is raised.
        """
        script = script or PlayerScript(self, video_id)
        shapes = [
            *((name, self._innertube_fetcher(name)) for name in _PLAYER_CLIENTS),
            ("watch_page", self._fetch_watch_page_player),
            ("get_video_info", self._fetch_legacy_video_info),
        ]

        refusal: PlayabilityError | None = None
        last_error: Exception | None = None
        for name, fetch in shapes:
            try:
                data = await fetch(video_id, script)
            except (ExtractionError, ValueError) as e:
                logger.warning("Player request %s failed for %s: %s", name, video_id, e)
                last_error = e
                continue

            status, reason = playability_of(data)
            if status is PlayabilityStatus.OK:
                logger.debug("Player response for %s from %s", video_id, name)
                return data

            logger.warning("Client %s returned %s for %s: %s", name, status.value, video_id, reason)
            if refusal is None:
                refusal = PlayabilityError(status, reason)

        if refusal is not None:
            raise refusal
        if isinstance(last_error, ExtractionError):
            raise last_error
        raise ExtractionError(f"Could not retrieve video info for {video_id}: {last_error}") from last_error

    def _innertube_fetcher(self, client_name: str):
        async def fetch(video_id: str, script: PlayerScript) -> dict:
            return await self._fetch_innertube_player(video_id, client_name, script)

        return fetch

    async def _fetch_innertube_player(self, video_id: str, client_name: str, script: PlayerScript) -> dict:
        """Fetch player response from the InnerTube API."""
        content_context: dict[str, Any] = {"html5Preference": "HTML5_PREF_WANTS"}
        if INNERTUBE_CLIENTS[client_name]["requires_js_player"]:
            # Signatures must match the player version we will descramble with
            await script.load()
            sts = script.signature_timestamp
            if sts:
                content_context["signatureTimestamp"] = sts

        payload = {
            "videoId": video_id,
            "playbackContext": {"contentPlaybackContext": content_context},
            "contentCheckOk": True,
            "racyCheckOk": True,
        }
        return await self._call_innertube(
            "player", client_name, payload, referer=f"https://www.youtube.com/watch?v={video_id}"
        )

    async def _fetch_watch_page_player(self, video_id: str, script: PlayerScript) -> dict:
        page = await self._download_webpage(_WATCH_URL.format(video_id=video_id))
        if script.url is None:
            script.url = extract_player_url(page)
        data = self._search_json("ytInitialPlayerResponse", page, "player response", default={})
        if not data:
            raise ExtractionError("Watch page has no player response")
        return data

    async def _fetch_legacy_video_info(self, video_id: str, script: PlayerScript) -> dict:
        body = await self._download_webpage(
            _LEGACY_VIDEO_INFO_URL,
            params={
                "video_id": video_id,
                "eurl": f"https://youtube.googleapis.com/v/{video_id}",
                "html5": "1",
                "c": "TVHTML5",
                "cver": "7.20220325",
            },
        )
        info = parse_qs(body)
        player_response = info.get("player_response", [None])[0]
        if not player_response:
            raise ExtractionError(f"get_video_info returned no player response: {info.get('reason', [''])[0]}")
        return json.loads(player_response)

    # ------------------------------------------------------------------
    # Format resolution
    # ------------------------------------------------------------------

    async def resolve_formats(self, raw_formats: list[dict], script: PlayerScript) -> FormatList:
        """
        Resolve raw formats into playable ones. Failing formats are dropped;
        when none of several formats resolves, NoPlayableFormatsError is raised.
        """
        parsed = []
        for raw in raw_formats:
            fmt = parse_format(raw)
            if fmt is None:
                logger.debug("Skipping format %s (DRM or no URL)", raw.get("itag"))
                continue
            parsed.append(fmt)

        formats = FormatList()
        last_error: Exception | None = None
        if any(fmt.is_ciphered for fmt in parsed):
            # Loaded once up front so plain formats get the n rewrite too
            try:
                await script.load()
            except (ExtractionError, ValueError) as e:
                logger.warning("Could not load player script: %s", e)
                last_error = e

        for fmt in parsed:
            try:
                formats.append(await self.resolve_format(fmt, script))
            except (CipherDerivationError, TransportError) as e:
                logger.warning("Dropping format %s: %s", fmt.itag, e)
                last_error = e

        if parsed and not formats:
            raise NoPlayableFormatsError() from last_error
        return formats

    async def resolve_format(self, fmt: Format, script: PlayerScript) -> Format:
        url = fmt.url
        if fmt.is_ciphered:
            await script.load()
            url = self._decipher_url(fmt.cipher or "", script)

        if url and script.loaded:
            url = self._throttle_url(url, script)
        return fmt.model_copy(update={"url": url, "cipher": None})

    def signature_operations(self, script: PlayerScript) -> CipherOperations:
        if script.signature_error is not None:
            raise script.signature_error
        try:
            return self._cache.get_or_derive(
                script.version, _SIGNATURE, lambda: derive_operations(script.text or "", script.version)
            )
        except CipherDerivationError as e:
            script.signature_error = e
            raise

    def throttle_function(self, script: PlayerScript) -> ThrottleFunction:
        if script.throttle_error is not None:
            raise script.throttle_error
        try:
            return self._cache.get_or_derive(script.version, _THROTTLE, lambda: derive_throttle(script.text or ""))
        except CipherDerivationError as e:
            script.throttle_error = e
            raise

    def _decipher_url(self, cipher: str, script: PlayerScript) -> str:
        """Assemble the URL of a ciphered format (url, s, sp)."""
        params = parse_qs(cipher)
        base_url = params.get("url", [None])[0]
        scrambled = params.get("s", [None])[0]
        sp = params.get("sp", ["signature"])[0]
        if not base_url or not scrambled:
            raise CipherDerivationError(f"Incomplete signature cipher: {cipher[:80]!r}")

        signature = apply_signature(self.signature_operations(script), scrambled)
        return set_query_param(base_url, sp, signature)

    def _throttle_url(self, url: str, script: PlayerScript) -> str:
        """Rewrite the ``n`` parameter; keep the raw value when that fails."""
        raw = parse_qs(urlparse(url).query).get("n", [None])[0]
        if not raw:
            return url
        try:
            value = apply_throttle(self.throttle_function(script), raw)
        except CipherDerivationError as e:
            logger.warning("Keeping raw n parameter (downloads may be throttled): %s", e)
            return url
        logger.debug("n parameter %s -> %s", raw, value)
        return set_query_param(url, "n", value)
