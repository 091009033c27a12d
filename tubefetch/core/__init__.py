"""Core utilities: HTTP transport, identifier resolution and the cipher engine."""

from .cipher import CipherCache, get_cipher_cache
from .http_client import HTTPClient
from .stream import Stream
from .url_matcher import extract_playlist_id, extract_video_id

__all__ = [
    "CipherCache",
    "HTTPClient",
    "Stream",
    "extract_playlist_id",
    "extract_video_id",
    "get_cipher_cache",
]
