from .enums import FormatType, PaginationState, PlayabilityStatus, TransportErrorKind
from .playlist import Playlist, PlaylistEntry
from .video import Format, FormatList, Thumbnail, Video

__all__ = [
    "Format",
    "FormatList",
    "FormatType",
    "PaginationState",
    "PlayabilityStatus",
    "Playlist",
    "PlaylistEntry",
    "Thumbnail",
    "TransportErrorKind",
    "Video",
]
