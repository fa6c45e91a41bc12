"""
Filesystem helpers shared by the acquisition collaborators.
"""

import logging
from pathlib import Path
from urllib.parse import unquote, urlparse

from pathvalidate import sanitize_filename as _sanitize

log = logging.getLogger(__name__)


def create_dir(path: Path) -> None:
    """Creates a directory (and parents) if it does not exist."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        log.error(f"[red]Failed to create directory '{path}': {e}[/red]")
        raise


def sanitize_filename(name: str, fallback: str = "download") -> str:
    """Replaces characters that are not allowed in file names on any platform."""
    cleaned = _sanitize(name, replacement_text="_", platform="universal").strip(" .")
    return cleaned or fallback


def filename_from_url(url: str, fallback: str = "download") -> str:
    """Derives a safe local file name from the last path segment of a URL."""
    segment = unquote(urlparse(url).path.rstrip("/").rsplit("/", 1)[-1])
    return sanitize_filename(segment, fallback)
