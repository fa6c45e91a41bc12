"""
Media Acquisition Layer.

This package contains the collaborators that perform a single download attempt:
the yt-dlp process driver for audio and video, and a plain HTTP downloader for
direct file links.
"""

from .acquirer import Acquirer, MediaAcquirer
from .http_downloader import HttpDownloader
from .ytdlp import YtDlpAcquirer

__all__ = ["Acquirer", "MediaAcquirer", "HttpDownloader", "YtDlpAcquirer"]
