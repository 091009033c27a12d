import re
from datetime import datetime, timedelta

from pydantic import BaseModel, Field, field_validator

from .enums import FormatType

_MIME_RE = re.compile(r'(?P<type>video|audio)/(?P<container>[\w-]+)(?:;\s*codecs="(?P<codecs>[^"]*)")?')


class Thumbnail(BaseModel):
    """A single preview image."""

    url: str = Field(..., description="Image URL")
    width: int | None = Field(None, description="Width in pixels")
    height: int | None = Field(None, description="Height in pixels")


class Format(BaseModel):
    """One encoded rendition of a video.

    Before resolution exactly one of ``url`` / ``cipher`` is set. After the
    format resolver has run, ``url`` is directly fetchable and ``cipher`` is
    cleared.
    """

    itag: int = Field(..., description="Numeric format id")
    mime_type: str = Field("", description='Mime type, e.g. video/mp4; codecs="avc1.4d401f"')
    bitrate: int | None = Field(None, description="Peak bitrate in bits/s")
    average_bitrate: int | None = Field(None, description="Average bitrate in bits/s")
    quality: str | None = Field(None, description="Host quality keyword (medium, hd720, ...)")
    quality_label: str | None = Field(None, description="Quality label (e.g. '1080p60')")
    width: int | None = Field(None, description="Video width in pixels")
    height: int | None = Field(None, description="Video height in pixels")
    fps: int | None = Field(None, description="Frames per second")
    content_length: int | None = Field(None, description="Size in bytes, when known")
    audio_quality: str | None = Field(None, description="AUDIO_QUALITY_* keyword")
    audio_sample_rate: int | None = Field(None, description="Sample rate in Hz")
    audio_channels: int | None = Field(None, description="Number of audio channels")
    approx_duration_ms: int | None = Field(None, description="Approximate duration in ms")
    url: str | None = Field(None, description="Resolved, playable URL")
    cipher: str | None = Field(None, description="Raw scrambled signature parameters")

    @property
    def is_ciphered(self) -> bool:
        return not self.url and bool(self.cipher)

    @property
    def codecs(self) -> list[str]:
        match = _MIME_RE.match(self.mime_type)
        if not match or not match.group("codecs"):
            return []
        return [c.strip() for c in match.group("codecs").split(",") if c.strip()]

    @property
    def has_video(self) -> bool:
        return self.mime_type.startswith("video/")

    @property
    def has_audio(self) -> bool:
        if self.mime_type.startswith("audio/"):
            return True
        # Progressive video formats carry both codecs
        return self.has_video and (len(self.codecs) > 1 or self.audio_channels is not None)

    @property
    def is_audio_only(self) -> bool:
        return self.has_audio and not self.has_video

    @property
    def is_video_only(self) -> bool:
        return self.has_video and not self.has_audio

    @property
    def format_type(self) -> FormatType:
        if self.has_video and self.has_audio:
            return FormatType.COMBINED
        if self.has_video:
            return FormatType.VIDEO_ONLY
        return FormatType.AUDIO_ONLY


class FormatList(list):
    """List of formats with the lookup helpers callers usually need."""

    def find_by_itag(self, itag: int) -> Format | None:
        for fmt in self:
            if fmt.itag == itag:
                return fmt
        return None

    def find_by_quality(self, quality: str) -> Format | None:
        """First format whose quality keyword or label equals *quality*."""
        for fmt in self:
            if fmt.quality == quality or fmt.quality_label == quality:
                return fmt
        return None

    def with_audio_channels(self) -> "FormatList":
        return FormatList(f for f in self if f.audio_channels)

    def by_mime_type(self, prefix: str) -> "FormatList":
        return FormatList(f for f in self if f.mime_type.startswith(prefix))

    def type(self, format_type: FormatType) -> "FormatList":
        return FormatList(f for f in self if f.format_type == format_type)

    def sort_best(self) -> "FormatList":
        """Highest resolution first, then fps, then bitrate."""
        return FormatList(
            sorted(
                self,
                key=lambda f: (f.height or 0, f.width or 0, f.fps or 0, f.bitrate or 0),
                reverse=True,
            )
        )


class Video(BaseModel):
    """Resolved video metadata and streamable formats."""

    id: str = Field(..., description="Video identifier")
    title: str = Field("", description="Video title")
    author: str = Field("", description="Channel name")
    channel_id: str | None = Field(None, description="Channel identifier")
    description: str = Field("", description="Video description")
    duration: timedelta = Field(default_factory=timedelta, description="Duration")
    publish_date: datetime | None = Field(None, description="Publish date (UTC)")
    views: int | None = Field(None, description="View count")
    thumbnails: list[Thumbnail] = Field(default_factory=list, description="Thumbnails, smallest first")
    formats: FormatList = Field(default_factory=FormatList, description="Resolved formats")
    hls_manifest_url: str = Field("", description="HLS manifest, live/DVR content only")
    dash_manifest_url: str = Field("", description="DASH manifest, live/DVR content only")

    model_config = {"arbitrary_types_allowed": True}

    @field_validator("formats", mode="before")
    @classmethod
    def _wrap_formats(cls, v):
        return FormatList(Format.model_validate(f) if isinstance(f, dict) else f for f in v or [])
