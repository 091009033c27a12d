from enum import Enum


class PlayabilityStatus(str, Enum):
    OK = "OK"
    LOGIN_REQUIRED = "LOGIN_REQUIRED"
    UNPLAYABLE = "UNPLAYABLE"
    ERROR = "ERROR"
    LIVE_STREAM_OFFLINE = "LIVE_STREAM_OFFLINE"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: str | None) -> "PlayabilityStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class TransportErrorKind(str, Enum):
    UNSUPPORTED_SCHEME = "unsupported_scheme"
    INVALID_URL = "invalid_url"
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"


class PaginationState(str, Enum):
    START = "start"
    FETCHING_PAGE = "fetching_page"
    HAS_CONTINUATION = "has_continuation"
    DONE = "done"


class FormatType(str, Enum):
    VIDEO_ONLY = "video_only"
    AUDIO_ONLY = "audio_only"
    COMBINED = "combined"
