"""
Structured logging for queue sessions.
Writes one JSON object per line so a session can be analysed after the fact.
"""

import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any

from tubetoolkit.models.events import EventBus, EventType, QueueEvent

log = logging.getLogger(__name__)


class StructuredLogger:
    """
    Writes named events with arbitrary fields as JSON lines, mirroring them to the
    console logger at debug level.

    Usage:
        logger = StructuredLogger(log_dir=Path("logs"))
        logger.info("job_completed", job_id="ab12", title="Intro", attempts=1)
    """

    def __init__(self, log_dir: Path | None = None, name: str = "tubetoolkit"):
        self.name = name
        self.log_dir = log_dir
        self.path: Path | None = None
        self._logger = logging.getLogger(name)
        self._file = None

        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.path = log_dir / f"{name}_{timestamp}.jsonl"
            self._file = open(self.path, "a", encoding="utf-8")  # noqa: SIM115

        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
            "start_time": datetime.now().isoformat(),
        }

    @property
    def enabled(self) -> bool:
        return self._file is not None and not self._file.closed

    def set_session_context(self, **kwargs) -> None:
        """Adds fields that are written with every entry."""
        self._session_context.update(kwargs)

    def _write(self, level: str, event: str, **fields) -> None:
        self._logger.debug(
            f"[{event}] " + " ".join(f"{k}={v}" for k, v in fields.items())
        )
        if not self.enabled:
            return

        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            **self._session_context,
            **fields,
        }
        try:
            self._file.write(json.dumps(entry, default=str) + "\n")
            self._file.flush()
        except (OSError, TypeError, ValueError) as e:
            log.warning(f"[yellow]JSON logging failed:[/] {e}")

    def info(self, event: str, **fields) -> None:
        self._write("INFO", event, **fields)

    def warning(self, event: str, **fields) -> None:
        self._write("WARNING", event, **fields)

    def error(self, event: str, **fields) -> None:
        self._write("ERROR", event, **fields)

    def close(self) -> None:
        if self._file and not self._file.closed:
            self._file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class QueueEventLogger:
    """Journals job lifecycle events published by a download queue."""

    EVENTS = (
        EventType.JOB_STARTED,
        EventType.JOB_COMPLETED,
        EventType.JOB_RETRY,
        EventType.JOB_FAILED,
    )

    def __init__(self, logger: StructuredLogger):
        self.logger = logger
        self._unsubscribe = None

    def attach(self, events: EventBus) -> None:
        self.detach()
        self._unsubscribe = events.subscribe(self.handle, *self.EVENTS)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def handle(self, event: QueueEvent) -> None:
        job = event.job
        if job is None:
            return
        fields = {
            "job_id": job.id,
            "url": job.url,
            "title": job.title,
            "format": job.variant,
            "attempt": job.attempts,
        }

        if event.type is EventType.JOB_STARTED:
            self.logger.info("job_started", **fields, quality=job.quality)
        elif event.type is EventType.JOB_COMPLETED:
            duration = (
                round(job.finished_at - job.started_at, 2)
                if job.finished_at and job.started_at
                else None
            )
            self.logger.info(
                "job_completed",
                **fields,
                size_bytes=job.size_bytes,
                duration_s=duration,
                output_path=job.output_path,
            )
        elif event.type is EventType.JOB_RETRY:
            self.logger.warning("job_retry", **fields, error=event.error)
        elif event.type is EventType.JOB_FAILED:
            self.logger.error("job_failed", **fields, error=event.error)
