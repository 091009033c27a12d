from datetime import timedelta

from pydantic import BaseModel, Field

from .video import Thumbnail


class PlaylistEntry(BaseModel):
    """Lightweight video entry as listed on a playlist page (no formats)."""

    id: str = Field(..., description="Video identifier")
    title: str = Field("", description="Video title")
    author: str = Field("", description="Channel name")
    duration: timedelta = Field(default_factory=timedelta, description="Duration")
    thumbnails: list[Thumbnail] = Field(default_factory=list, description="Thumbnails")


class Playlist(BaseModel):
    """A playlist with every entry, in host pagination order."""

    id: str = Field(..., description="Playlist identifier")
    title: str = Field("", description="Playlist title")
    description: str = Field("", description="Playlist description")
    author: str = Field("", description="Owner channel name")
    videos: list[PlaylistEntry] = Field(default_factory=list, description="Entries")
