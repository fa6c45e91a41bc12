"""
Drives the external yt-dlp tool as a subprocess and translates its output into
progress reports and attempt outcomes.
"""

import asyncio
import logging
import re
import time
from pathlib import Path
from typing import NamedTuple

from tubetoolkit.exceptions import (
    AcquisitionError,
    ConfigurationError,
    ProxyBlockedError,
)
from tubetoolkit.models.config import get_quality_preset
from tubetoolkit.models.job import UNKNOWN_TITLE, Job
from tubetoolkit.utils.formatting import parse_size

from .acquirer import ProgressCallback, ProxyFailureCallback

log = logging.getLogger(__name__)

YTDLP_ARGS_BASE = ["--newline", "--no-playlist", "--restrict-filenames"]

PROGRESS_RE = re.compile(
    r"\[download\]\s+(?P<percent>\d+(?:\.\d+)?)%"
    r"(?:\s+of\s+~?\s*(?P<size>\S+))?"
    r".*?\s+at\s+(?P<rate>\S+)"
    r"(?:\s+ETA\s+(?P<eta>\S+))?"
)
DESTINATION_RE = re.compile(
    r"\[(?:download|ExtractAudio|Merger)\].*?Destination:\s+(.+)$"
)
MERGING_RE = re.compile(r'\[Merger\] Merging formats into "(.+)"')

BLOCKING_MARKERS = (
    "HTTP Error 429",
    "Too Many Requests",
    "HTTP Error 403",
    "blocked",
)

TERMINATE_GRACE_SECONDS = 5.0


class ProgressLine(NamedTuple):
    percent: float
    size: str | None
    rate: str
    eta: str


def parse_progress_line(line: str) -> ProgressLine | None:
    """Extracts percent, total size, rate and ETA from a '[download]' line."""
    match = PROGRESS_RE.search(line)
    if not match:
        return None
    return ProgressLine(
        percent=float(match.group("percent")),
        size=match.group("size"),
        rate=match.group("rate"),
        eta=match.group("eta") or "",
    )


def parse_destination(line: str) -> str | None:
    """Returns the output path announced by yt-dlp, if the line carries one."""
    match = DESTINATION_RE.search(line) or MERGING_RE.search(line)
    return match.group(1).strip() if match else None


def is_blocking_error(text: str) -> bool:
    """True when stderr output suggests the proxy in use is blocked or rate-limited."""
    return any(marker in text for marker in BLOCKING_MARKERS)


class YtDlpAcquirer:
    """Runs one yt-dlp process per attempt."""

    def __init__(
        self,
        binary: str = "yt-dlp",
        cookies_file: str | None = None,
        progress_interval: float = 0.2,
    ):
        self.binary = binary
        self.cookies_file = cookies_file or None
        self.progress_interval = progress_interval

    def build_args(self, job: Job, proxy: str | None, output_dir: Path) -> list[str]:
        """Builds the yt-dlp command line for a job."""
        args = list(YTDLP_ARGS_BASE)
        if self.cookies_file:
            args += ["--cookies", str(Path(self.cookies_file).expanduser().resolve())]

        preset = get_quality_preset(job.variant, job.quality)
        if job.variant == "mp3":
            args += [
                "--extract-audio",
                "--audio-format",
                "mp3",
                "--audio-quality",
                preset["arg"],
            ]
        elif job.variant == "mp4":
            args += ["--format", preset["arg"], "--merge-output-format", "mp4"]

        args += ["--output", str(output_dir / "%(title)s.%(ext)s")]
        if proxy:
            args += ["--proxy", proxy]
        args.append(job.url)
        return args

    async def attempt(
        self,
        job: Job,
        proxy: str | None,
        output_dir: Path,
        on_progress: ProgressCallback,
        on_proxy_failure: ProxyFailureCallback,
    ) -> None:
        try:
            args = self.build_args(job, proxy, output_dir)
        except ConfigurationError as e:
            raise AcquisitionError(str(e)) from e

        log.debug(f"🌐 {'Using proxy ' + proxy if proxy else 'Direct connection'}")
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise AcquisitionError(f"Failed to start {self.binary}: {e}") from e

        stderr_lines: list[str] = []
        blocked = False

        async def read_stdout() -> None:
            last_emit = 0.0
            async for raw in process.stdout:
                line = raw.decode("utf-8", errors="replace").strip()
                if not line:
                    continue
                if destination := parse_destination(line):
                    job.output_path = destination
                    if job.title == UNKNOWN_TITLE:
                        job.title = Path(destination).stem
                progress = parse_progress_line(line)
                if progress is None:
                    continue
                if progress.size and (size := parse_size(progress.size)):
                    job.size_bytes = int(size)
                now = time.monotonic()
                if (
                    now - last_emit >= self.progress_interval
                    or progress.percent >= 100
                ):
                    last_emit = now
                    on_progress(progress.percent, progress.rate, progress.eta)

        async def read_stderr() -> None:
            nonlocal blocked
            async for raw in process.stderr:
                line = raw.decode("utf-8", errors="replace").rstrip()
                if not line:
                    continue
                stderr_lines.append(line)
                if not blocked and is_blocking_error(line):
                    blocked = True
                    log.warning(
                        "[yellow]🚫 Detected blocking/rate limiting - rotating proxy...[/]"
                    )
                    if proxy:
                        on_proxy_failure(proxy)

        readers = [
            asyncio.create_task(read_stdout()),
            asyncio.create_task(read_stderr()),
        ]
        try:
            await asyncio.gather(*readers)
            code = await process.wait()
        except ValueError as e:
            # StreamReader rejects lines longer than its buffer limit
            await self._stop(process, readers)
            raise AcquisitionError(f"Unreadable {self.binary} output: {e}") from e
        except BaseException:
            await self._stop(process, readers)
            raise

        error_output = "\n".join(stderr_lines[-10:]).strip()
        if blocked:
            raise ProxyBlockedError(
                f"{self.binary} was blocked or rate-limited (code {code}): {error_output}"
            )
        if code != 0:
            raise AcquisitionError(
                f"{self.binary} failed with code {code}: {error_output}"
            )

    async def _stop(
        self, process: asyncio.subprocess.Process, readers: list[asyncio.Task]
    ) -> None:
        """Cancels the output readers and ends the process behind them."""
        for reader in readers:
            reader.cancel()
        await asyncio.gather(*readers, return_exceptions=True)
        await self._terminate(process)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Stops a running yt-dlp process, killing it if it does not exit in time."""
        if process.returncode is not None:
            return
        try:
            process.terminate()
            await asyncio.wait_for(process.wait(), timeout=TERMINATE_GRACE_SECONDS)
        except ProcessLookupError:
            return
        except asyncio.TimeoutError:
            log.debug(f"{self.binary} did not exit after terminate; killing it.")
            process.kill()
            await process.wait()
