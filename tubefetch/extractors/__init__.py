"""
Extractors for the video host.

YouTubeExtractor resolves single videos; PlaylistExtractor walks playlist
pages. Both share the InnerTube plumbing in BaseExtractor.
"""

from .base import BaseExtractor
from .playlist import PlaylistExtractor
from .youtube import YouTubeExtractor

__all__ = ["BaseExtractor", "PlaylistExtractor", "YouTubeExtractor"]
