"""
The contract between the download queue and the tools that actually fetch media.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from tubetoolkit.models.job import Job

ProgressCallback = Callable[[float, str, str], None]
ProxyFailureCallback = Callable[[str], None]


class Acquirer(Protocol):
    """
    Performs one download attempt for a job.

    Implementations return on success and raise on failure. They may call
    ``on_progress(percent, rate, eta)`` any number of times and
    ``on_proxy_failure(proxy)`` at most once, when blocking or rate limiting is tied
    to the proxy in use. Cancellation of the awaiting task must stop the attempt.
    """

    async def attempt(
        self,
        job: Job,
        proxy: str | None,
        output_dir: Path,
        on_progress: ProgressCallback,
        on_proxy_failure: ProxyFailureCallback,
    ) -> None: ...


class MediaAcquirer:
    """Routes direct file downloads to HTTP and everything else to yt-dlp."""

    def __init__(self, ytdlp: Acquirer, http: Acquirer):
        self.ytdlp = ytdlp
        self.http = http

    async def attempt(
        self,
        job: Job,
        proxy: str | None,
        output_dir: Path,
        on_progress: ProgressCallback,
        on_proxy_failure: ProxyFailureCallback,
    ) -> None:
        backend = self.http if job.variant == "file" else self.ytdlp
        await backend.attempt(job, proxy, output_dir, on_progress, on_proxy_failure)
