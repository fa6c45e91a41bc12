"""
The job entity and its lifecycle state machine.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from tubetoolkit.exceptions import InvalidTransitionError

UNKNOWN_TITLE = "Unknown"


class JobState(Enum):
    """Lifecycle states of a job."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


_ALLOWED_TRANSITIONS = {
    JobState.QUEUED: {JobState.PROCESSING},
    JobState.PROCESSING: {JobState.QUEUED, JobState.COMPLETED, JobState.FAILED},
    JobState.COMPLETED: set(),
    JobState.FAILED: set(),
}


def new_job_id() -> str:
    return uuid.uuid4().hex


@dataclass
class ProgressSample:
    """The latest progress report of a running attempt."""

    percent: float = 0.0
    rate: str = ""
    eta: str = ""
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "percent": self.percent,
            "rate": self.rate,
            "eta": self.eta,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProgressSample":
        return cls(
            percent=float(data.get("percent", 0.0) or 0.0),
            rate=str(data.get("rate", "") or ""),
            eta=str(data.get("eta", "") or ""),
            timestamp=float(data.get("timestamp", 0.0) or 0.0),
        )


@dataclass
class Job:
    """A single submitted download, tracked from submission to a terminal state."""

    url: str
    variant: str = "mp3"
    quality: str = "best"
    title: str = UNKNOWN_TITLE
    max_attempts: int = 3
    id: str = field(default_factory=new_job_id)
    added_at: str = field(default_factory=lambda: datetime.now().isoformat())
    attempts: int = 0
    state: JobState = JobState.QUEUED
    progress: ProgressSample | None = None
    size_bytes: int | None = None
    error: str | None = None
    started_at: float | None = None
    finished_at: float | None = None
    output_path: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.FAILED)

    @property
    def display_name(self) -> str:
        """The title once known, the source URL before that."""
        return self.title if self.title != UNKNOWN_TITLE else self.url

    def _transition(self, new_state: JobState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Job {self.id} cannot move from '{self.state.value}' "
                f"to '{new_state.value}'."
            )
        self.state = new_state

    def mark_processing(self) -> None:
        self._transition(JobState.PROCESSING)
        self.started_at = time.time()
        self.progress = None

    def mark_completed(self) -> None:
        self._transition(JobState.COMPLETED)
        self.finished_at = time.time()
        self.error = None
        if self.progress is not None:
            self.progress.percent = 100.0

    def mark_failed(self, error: str) -> None:
        self._transition(JobState.FAILED)
        self.finished_at = time.time()
        self.error = error

    def requeue(self, error: str | None = None) -> None:
        """Returns a processing job to the queue, keeping the last error if given."""
        self._transition(JobState.QUEUED)
        self.started_at = None
        self.progress = None
        if error is not None:
            self.error = error

    def summary(self) -> dict[str, Any]:
        """A compact view used by status output."""
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "format": self.variant,
            "quality": self.quality,
            "attempts": self.attempts,
            "progress": self.progress.to_dict() if self.progress else None,
            "error": self.error,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "variant": self.variant,
            "quality": self.quality,
            "added_at": self.added_at,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "state": self.state.value,
            "progress": self.progress.to_dict() if self.progress else None,
            "size_bytes": self.size_bytes,
            "error": self.error,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "output_path": self.output_path,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        """Rebuilds a job from its persisted form. Unknown states load as queued."""
        try:
            state = JobState(data.get("state", JobState.QUEUED.value))
        except ValueError:
            state = JobState.QUEUED
        progress = data.get("progress")
        return cls(
            id=str(data.get("id") or new_job_id()),
            url=str(data["url"]),
            title=data.get("title") or UNKNOWN_TITLE,
            variant=data.get("variant", "mp3"),
            quality=data.get("quality", "best"),
            added_at=data.get("added_at") or datetime.now().isoformat(),
            attempts=int(data.get("attempts", 0)),
            max_attempts=int(data.get("max_attempts", 3)),
            state=state,
            progress=ProgressSample.from_dict(progress) if progress else None,
            size_bytes=data.get("size_bytes"),
            error=data.get("error"),
            started_at=data.get("started_at"),
            finished_at=data.get("finished_at"),
            output_path=data.get("output_path"),
        )
