"""
Combines per-job progress samples into a single session-wide view.
"""

import time
from collections.abc import Iterable
from dataclasses import dataclass

from tubetoolkit.models.job import ProgressSample
from tubetoolkit.utils.formatting import format_duration, format_rate, parse_rate

ETA_UNKNOWN = "Calculating..."


@dataclass(frozen=True)
class StateCounts:
    queued: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.queued + self.processing + self.completed + self.failed

    @property
    def done(self) -> int:
        return self.completed + self.failed

    @property
    def remaining(self) -> int:
        return self.queued + self.processing


@dataclass(frozen=True)
class AggregateView:
    """A derived snapshot of session progress. Never stored."""

    average_percent: float
    active_count: int
    combined_rate: float
    overall_progress: float
    eta: str

    @property
    def combined_rate_text(self) -> str:
        return format_rate(self.combined_rate)


class ProgressAggregator:
    """
    Keeps the latest sample of every running job and derives the aggregate view.

    No throttling happens here; collaborators are expected to limit how often they
    report, and the aggregate always reflects the newest sample.
    """

    def __init__(self, start_time: float | None = None, done_before: int = 0):
        self.start_time = start_time if start_time is not None else time.time()
        # Jobs that finished before start_time, e.g. in an earlier session
        self.done_before = done_before
        self._samples: dict[str, ProgressSample] = {}

    def record(self, job_id: str, sample: ProgressSample) -> None:
        self._samples[job_id] = sample

    def discard(self, job_id: str) -> None:
        self._samples.pop(job_id, None)

    def aggregate(
        self,
        counts: StateCounts,
        active_ids: Iterable[str],
        now: float | None = None,
    ) -> AggregateView:
        """
        Derives the aggregate view.

        Args:
            counts: Number of jobs per lifecycle state.
            active_ids: IDs of the jobs currently processing. A running job that has
                not reported yet counts as 0%.
            now: Current epoch time, injectable for tests.
        """
        active = list(active_ids)
        samples = [self._samples.get(job_id) for job_id in active]

        average_percent = (
            sum(s.percent for s in samples if s is not None) / len(active)
            if active
            else 0.0
        )
        combined_rate = sum(parse_rate(s.rate) for s in samples if s is not None)
        overall_progress = counts.done / counts.total if counts.total else 0.0

        return AggregateView(
            average_percent=average_percent,
            active_count=len(active),
            combined_rate=combined_rate,
            overall_progress=overall_progress,
            eta=self.estimate_eta(counts, now),
        )

    def estimate_eta(self, counts: StateCounts, now: float | None = None) -> str:
        """
        Extrapolates the average time per job finished since `start_time` to the
        remaining jobs. Until one has finished there is nothing to extrapolate from.
        """
        finished = counts.done - self.done_before
        if finished <= 0:
            return ETA_UNKNOWN
        elapsed = (now if now is not None else time.time()) - self.start_time
        per_job = max(elapsed, 0.0) / finished
        return format_duration(per_job * counts.remaining)
