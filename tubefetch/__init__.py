"""tubefetch: resolve video and playlist references into metadata and streams."""

from .client import Client
from .config import Settings, get_settings
from .core.stream import Stream
from .errors import (
    CipherDerivationError,
    ExtractionError,
    InvalidCharactersError,
    InvalidPlaylistIDError,
    NoPlayableFormatsError,
    PaginationError,
    PlayabilityError,
    ThrottleError,
    TransportError,
    VideoIDTooShortError,
)
from .models import (
    Format,
    FormatList,
    FormatType,
    PlayabilityStatus,
    Playlist,
    PlaylistEntry,
    Thumbnail,
    TransportErrorKind,
    Video,
)

__all__ = [
    "CipherDerivationError",
    "Client",
    "ExtractionError",
    "Format",
    "FormatList",
    "FormatType",
    "InvalidCharactersError",
    "InvalidPlaylistIDError",
    "NoPlayableFormatsError",
    "PaginationError",
    "PlayabilityError",
    "PlayabilityStatus",
    "Playlist",
    "PlaylistEntry",
    "Settings",
    "Stream",
    "Thumbnail",
    "ThrottleError",
    "TransportError",
    "TransportErrorKind",
    "Video",
    "VideoIDTooShortError",
    "get_settings",
]
