"""
Error taxonomy.

Every failure surfaced to callers is an ExtractionError subclass with a fixed,
machine-readable ``error_code``. The set is closed: callers can handle each
class explicitly.
"""

from .models.enums import PlayabilityStatus, TransportErrorKind


class ExtractionError(Exception):
    """Root of all tubefetch failures."""

    error_code: str | None = None

    def __init__(self, message: str, error_code: str | None = None):
        super().__init__(message)
        if error_code is not None:
            self.error_code = error_code


class InvalidCharactersError(ExtractionError):
    """Video id contains characters outside [A-Za-z0-9_-]."""

    error_code = "id.invalid_characters"

    def __init__(self, message: str = "invalid characters in video id"):
        super().__init__(message)


class VideoIDTooShortError(ExtractionError):
    """Video id is shorter than 10 characters."""

    error_code = "id.too_short"

    def __init__(self, message: str = "the video id must be at least 10 characters long"):
        super().__init__(message)


class InvalidPlaylistIDError(ExtractionError):
    error_code = "id.invalid_playlist"

    def __init__(self, message: str = "no playlist id found in input"):
        super().__init__(message)


class PlayabilityError(ExtractionError):
    """The host refused to serve the video."""

    error_code = "youtube.playability"

    def __init__(self, status: PlayabilityStatus, reason: str = ""):
        super().__init__(f"cannot playback and download, status: {status.value}, reason: {reason}")
        self.status = status
        self.reason = reason


class CipherDerivationError(ExtractionError):
    """The player script did not match any recognized function shape."""

    error_code = "youtube.cipher_derivation"


class ThrottleError(CipherDerivationError):
    """The n-parameter program could not be derived or evaluated."""

    error_code = "youtube.throttle"


class NoPlayableFormatsError(ExtractionError):
    error_code = "youtube.no_playable_formats"

    def __init__(self, message: str = "no playable formats could be resolved"):
        super().__init__(message)


class TransportError(ExtractionError):
    """Network or HTTP-level failure."""

    def __init__(
        self,
        kind: TransportErrorKind,
        detail: str,
        status_code: int | None = None,
    ):
        super().__init__(detail, error_code=f"transport.{kind.value}")
        self.kind = kind
        self.detail = detail
        self.status_code = status_code


class PaginationError(ExtractionError):
    """A playlist page could not be fetched or parsed."""

    error_code = "playlist.pagination"
