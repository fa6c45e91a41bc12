"""
Handles direct file downloads over HTTP, streamed through the proxy chosen for the
attempt.
"""

import asyncio
import logging
import os
import time
from pathlib import Path

import aiofiles
import aiohttp

from tubetoolkit.exceptions import AcquisitionError, ProxyBlockedError
from tubetoolkit.models.job import UNKNOWN_TITLE, Job
from tubetoolkit.utils.formatting import format_duration, format_rate
from tubetoolkit.utils.path import create_dir, filename_from_url

from .acquirer import ProgressCallback, ProxyFailureCallback

log = logging.getLogger(__name__)

BLOCKING_STATUSES = {403, 429}


class HttpDownloader:
    """Streams a single URL to disk, reporting throttled progress."""

    CHUNK_SIZE = 262144  # 256 KB

    def __init__(
        self,
        progress_interval: float = 0.2,
        connect_timeout: float = 15,
        read_timeout: float = 90,
    ):
        self.progress_interval = progress_interval
        self.timeout = aiohttp.ClientTimeout(
            total=None, sock_connect=connect_timeout, sock_read=read_timeout
        )

    async def attempt(
        self,
        job: Job,
        proxy: str | None,
        output_dir: Path,
        on_progress: ProgressCallback,
        on_proxy_failure: ProxyFailureCallback,
    ) -> None:
        await asyncio.to_thread(create_dir, output_dir)
        filename = filename_from_url(job.url, fallback=f"download_{job.id[:8]}")
        if job.title == UNKNOWN_TITLE:
            job.title = Path(filename).stem or filename
        destination = output_dir / filename
        temp_path = destination.with_name(f"{destination.name}.{job.id[:8]}.part")

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(
                    job.url, proxy=proxy, allow_redirects=True
                ) as response:
                    if response.status in BLOCKING_STATUSES:
                        if proxy:
                            on_proxy_failure(proxy)
                        raise ProxyBlockedError(
                            f"HTTP Error {response.status}: {response.reason}"
                        )
                    response.raise_for_status()

                    total_size = response.content_length or 0
                    if total_size:
                        job.size_bytes = total_size
                    await self._stream_to_file(
                        response, temp_path, total_size, on_progress
                    )

            await asyncio.to_thread(os.replace, temp_path, destination)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AcquisitionError(f"Network error: {e}") from e
        finally:
            if temp_path.exists():
                try:
                    os.remove(temp_path)
                except OSError:
                    log.debug(f"Could not remove partial file '{temp_path}'.")

        job.output_path = str(destination)
        log.debug(f"Saved '{destination}'")

    async def _stream_to_file(
        self,
        response: aiohttp.ClientResponse,
        temp_path: Path,
        total_size: int,
        on_progress: ProgressCallback,
    ) -> None:
        start = time.monotonic()
        last_emit = 0.0
        bytes_downloaded = 0

        async with aiofiles.open(temp_path, "wb") as f:
            async for chunk in response.content.iter_chunked(self.CHUNK_SIZE):
                await f.write(chunk)
                bytes_downloaded += len(chunk)

                now = time.monotonic()
                if now - last_emit < self.progress_interval:
                    continue
                last_emit = now
                elapsed = max(now - start, 1e-6)
                speed = bytes_downloaded / elapsed
                if total_size:
                    percent = min(100.0, bytes_downloaded / total_size * 100)
                    eta = format_duration((total_size - bytes_downloaded) / speed)
                else:
                    percent, eta = 0.0, "Unknown"
                on_progress(percent, format_rate(speed), eta)

        speed = bytes_downloaded / max(time.monotonic() - start, 1e-6)
        on_progress(100.0, format_rate(speed), "0s")
