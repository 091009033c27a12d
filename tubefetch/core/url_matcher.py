"""
Identifier resolution for video and playlist references.

Accepts full watch-page URLs, short links, embed/shorts/live URLs and bare
identifiers. URLs are normalized (scheme added, short-link and mobile domains
aliased) and matched against the registered patterns; the extracted candidate
is then validated against the host's identifier grammar.
"""

import logging
import re
from urllib.parse import urlparse, urlunparse

from ..errors import InvalidCharactersError, InvalidPlaylistIDError, VideoIDTooShortError

logger = logging.getLogger(__name__)

VIDEO_ID_MIN_LENGTH = 10

_VIDEO_ID_INVALID_RE = re.compile(r"[^A-Za-z0-9_-]")
_PLAYLIST_ID_RE = re.compile(r"^[A-Za-z0-9_-]{13,42}$")

# Characters whose presence means the input is a URL rather than a bare id
_URL_HINT_CHARS = set('"?&/<%=')

# Candidate id inside a URL: anything up to the next URL delimiter
_ID = r"(?P<id>[^\"&?/=%#\s]+)"


class URLPattern:
    """A URL pattern with a named group holding the identifier."""

    def __init__(self, pattern: str, id_group: str = "id"):
        self.pattern = re.compile(pattern, re.IGNORECASE)
        self.id_group = id_group


# URL alias mappings (short links and alternate domains)
URL_ALIASES: dict[str, str] = {
    "m.youtube.com": "youtube.com",
    "music.youtube.com": "youtube.com",
    "youtube-nocookie.com": "youtube.com",
}

_VIDEO_PATTERNS: list[URLPattern] = [
    URLPattern(rf"(?:https?://)?(?:www\.)?youtube\.com/watch\?(?:.*?&)?v={_ID}"),
    URLPattern(rf"(?:https?://)?(?:www\.)?youtube\.com/(?:embed|v|shorts|live|e)/{_ID}"),
    URLPattern(rf"(?:https?://)?youtu\.be/{_ID}"),
    # Anything else carrying a v= parameter (attribution links and the like)
    URLPattern(rf"[?&]v={_ID}"),
]

_PLAYLIST_PATTERNS: list[URLPattern] = [
    URLPattern(r"[?&]list=(?P<id>[A-Za-z0-9_-]+)"),
]


def normalize_url(url: str) -> str:
    """Add a scheme and resolve domain aliases so one pattern set fits all hosts."""
    url = url.strip()

    if not url.startswith(("http://", "https://")):
        url = "https://" + url

    parsed = urlparse(url)
    hostname = (parsed.hostname or "").removeprefix("www.")

    if hostname in URL_ALIASES:
        parsed = parsed._replace(netloc=URL_ALIASES[hostname])

    return urlunparse(parsed)


def looks_like_url(value: str) -> bool:
    return "youtu" in value or any(c in _URL_HINT_CHARS for c in value)


def _match(patterns: list[URLPattern], url: str) -> str | None:
    try:
        normalized = normalize_url(url)
    except ValueError:
        # e.g. an unbalanced "[" in the host part
        return None
    for pattern in patterns:
        match = pattern.pattern.search(normalized)
        if match and match.group(pattern.id_group):
            return match.group(pattern.id_group)
    return None


def extract_video_id(value: str) -> str:
    """
    Return the canonical video id for a URL or a bare id.

    Raises InvalidCharactersError if the candidate has a character outside
    [A-Za-z0-9_-], VideoIDTooShortError if it has fewer than 10 characters.
    """
    candidate = value.strip()
    if looks_like_url(candidate):
        matched = _match(_VIDEO_PATTERNS, candidate)
        if matched:
            candidate = matched
        else:
            logger.debug("No video id pattern matched %r", value)

    if _VIDEO_ID_INVALID_RE.search(candidate):
        raise InvalidCharactersError()
    if len(candidate) < VIDEO_ID_MIN_LENGTH:
        raise VideoIDTooShortError()
    return candidate


def extract_playlist_id(value: str) -> str:
    """Return the playlist id from a URL's list= parameter or a bare id."""
    candidate = value.strip()
    if looks_like_url(candidate):
        candidate = _match(_PLAYLIST_PATTERNS, candidate) or ""

    if not _PLAYLIST_ID_RE.match(candidate):
        raise InvalidPlaylistIDError(f"invalid playlist id: {value!r}")
    return candidate
