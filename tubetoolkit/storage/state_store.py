"""
Persists the scheduler's queue, completed and failed lists to a JSON state file so that
an interrupted session can be resumed.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from tubetoolkit.models.job import Job, JobState

log = logging.getLogger(__name__)


@dataclass
class SchedulerSnapshot:
    """The durable projection of the scheduler's job collections."""

    queue: list[Job] = field(default_factory=list)
    completed: list[Job] = field(default_factory=list)
    failed: list[Job] = field(default_factory=list)
    start_time: float | None = None
    last_saved: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.queue or self.completed or self.failed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "queue": [job.to_dict() for job in self.queue],
            "completed": [job.to_dict() for job in self.completed],
            "failed": [job.to_dict() for job in self.failed],
            "startTime": int(self.start_time * 1000) if self.start_time else None,
            "lastSaved": self.last_saved,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SchedulerSnapshot":
        """
        Rebuilds a snapshot. Jobs that were mid-attempt when the state was saved
        cannot have survived the restart, so they are returned to the queue.
        """
        queue = [Job.from_dict(item) for item in data.get("queue") or []]
        for job in queue:
            if job.state is not JobState.QUEUED:
                job.state = JobState.QUEUED
                job.started_at = None
                job.progress = None

        start_ms = data.get("startTime")
        return cls(
            queue=queue,
            completed=[Job.from_dict(item) for item in data.get("completed") or []],
            failed=[Job.from_dict(item) for item in data.get("failed") or []],
            start_time=start_ms / 1000 if start_ms else None,
            last_saved=data.get("lastSaved"),
        )


class StateStore:
    """
    Reads and writes the scheduler snapshot. Persistence is best-effort: every
    failure is logged and never raised to the scheduler.
    """

    def __init__(self, state_file: Path):
        self.path = Path(state_file)

    def save(self, snapshot: SchedulerSnapshot) -> bool:
        """Writes the snapshot atomically. Returns False if the write failed."""
        snapshot.last_saved = datetime.now().isoformat()
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            payload = json.dumps(snapshot.to_dict(), indent=2)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.path)
            return True
        except (TypeError, ValueError, OSError) as e:
            log.warning(f"[yellow]Could not save queue state:[/] {e}")
            return False

    def load(self) -> SchedulerSnapshot:
        """
        Loads the last snapshot. A missing or corrupt state file is treated as a
        cold start.
        """
        if not self.path.is_file():
            log.debug(f"No queue state found at '{self.path}'. Starting fresh.")
            return SchedulerSnapshot()

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("state file does not contain an object")
            snapshot = SchedulerSnapshot.from_dict(data)
        except (OSError, UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
            log.warning(
                f"[yellow]Queue state at '{self.path}' is unreadable, "
                f"starting fresh:[/] {e}"
            )
            return SchedulerSnapshot()

        if snapshot.queue:
            log.info(
                f"📂 Loaded {len(snapshot.queue)} pending job(s) from previous session."
            )
        return snapshot

    def clear(self) -> bool:
        """Deletes the state file."""
        try:
            self.path.unlink(missing_ok=True)
            return True
        except OSError as e:
            log.error(f"[red]Failed to delete queue state: {e}[/red]")
            return False
