"""
The download queue: owns the job lifecycle, enforces the concurrency bound, drives
retries and proxy rotation, and reports everything it does as events.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable
from contextlib import suppress
from pathlib import Path
from typing import Any

from rich.markup import escape

from tubetoolkit.exceptions import AcquisitionError, ProxyBlockedError
from tubetoolkit.media.acquirer import Acquirer
from tubetoolkit.models.config import QueueConfig
from tubetoolkit.models.events import EventBus, EventType, QueueEvent
from tubetoolkit.models.job import Job, ProgressSample
from tubetoolkit.network.proxy_rotator import ProxyRotator
from tubetoolkit.storage.state_store import SchedulerSnapshot, StateStore
from tubetoolkit.utils.formatting import format_duration

from .aggregator import AggregateView, ProgressAggregator, StateCounts

log = logging.getLogger(__name__)

RECENT_LIMIT = 5


async def _reraise_timeouts(attempt: Awaitable[None]) -> None:
    """
    Turns a timeout raised inside the acquirer into an ordinary acquisition error, so
    that a TimeoutError reaching the scheduler always means its own deadline fired.
    """
    try:
        await attempt
    except asyncio.TimeoutError as e:
        raise AcquisitionError(str(e) or "Acquirer timed out") from e


class DownloadQueue:
    """
    Schedules download jobs onto a bounded number of concurrent attempts.

    All bookkeeping runs on the event loop thread. Admission in `advance()` has no
    suspension point between the capacity check and the insertion into the
    processing map, so back-to-back resolutions can never exceed the bound.
    """

    def __init__(
        self,
        config: QueueConfig,
        acquirer: Acquirer,
        rotator: ProxyRotator | None = None,
        store: StateStore | None = None,
        events: EventBus | None = None,
    ):
        self.config = config
        self.acquirer = acquirer
        self.rotator = rotator if rotator is not None else ProxyRotator(config.proxies)
        self.store = store if store is not None else StateStore(Path(config.state_file))
        self.events = events if events is not None else EventBus()
        self.output_dir = Path(config.output_dir)

        # Fixed for the lifetime of the queue
        self._max_concurrent = config.max_concurrent
        self._max_attempts = config.max_attempts
        self._retry_delay = config.retry_delay
        self._attempt_timeout = config.attempt_timeout
        self._save_interval = config.save_interval

        self.queue: deque[Job] = deque()
        self.processing: dict[str, Job] = {}
        self.completed: list[Job] = []
        self.failed: list[Job] = []
        self._tasks: dict[str, asyncio.Task] = {}
        self._autosave_task: asyncio.Task | None = None
        self._accepting = True

        snapshot = self.store.load()
        self.start_time = snapshot.start_time or time.time()
        self.queue.extend(snapshot.queue)
        self.completed.extend(snapshot.completed)
        self.failed.extend(snapshot.failed)
        # Uptime spans every session; the ETA only this run's own throughput
        self.aggregator = ProgressAggregator(
            time.time(), done_before=len(self.completed) + len(self.failed)
        )

    # --- Submission and scheduling ---

    def submit(
        self,
        url: str,
        variant: str | None = None,
        quality: str | None = None,
        title: str | None = None,
    ) -> str:
        """
        Adds a job to the tail of the queue and tries to start it.
        The reference is not validated here; that is the acquirer's job.
        """
        job = Job(
            url=url,
            variant=variant or self.config.default_format,
            quality=quality or self.config.default_quality,
            max_attempts=self._max_attempts,
        )
        if title:
            job.title = title
        self.queue.append(job)
        log.debug(f"Queued {job.variant} job {job.id} for {url}")
        self._state_changed()
        self.advance()
        return job.id

    def advance(self) -> None:
        """
        Starts queued jobs until the concurrency bound is reached or the queue is
        empty. Never blocks and never raises.
        """
        if not self._accepting:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("No running event loop; jobs stay queued.")
            return

        started = False
        while self.queue and len(self.processing) < self._max_concurrent:
            job = self.queue.popleft()
            job.mark_processing()
            self.processing[job.id] = job
            proxy = self.rotator.current()
            self._tasks[job.id] = loop.create_task(
                self._run_attempt(job, proxy), name=f"attempt-{job.id}"
            )
            started = True
            log.info(
                f"[cyan]⬇ Starting[/] {escape(job.display_name)} "
                f"[dim]({job.variant}, attempt {job.attempts + 1}/{job.max_attempts}, "
                f"{'proxy ' + proxy if proxy else 'direct'})[/dim]"
            )
            self.events.emit(QueueEvent(EventType.JOB_STARTED, job=job))

        if started:
            self._state_changed()

    async def _run_attempt(self, job: Job, proxy: str | None) -> None:
        """Runs one attempt and routes its outcome back into the queue."""
        flagged: set[str] = set()

        def on_progress(percent: float, rate: str = "", eta: str = "") -> None:
            if job.id not in self.processing:
                return
            sample = ProgressSample(
                percent=max(0.0, min(100.0, float(percent))), rate=rate, eta=eta
            )
            job.progress = sample
            self.aggregator.record(job.id, sample)
            self.events.emit(QueueEvent(EventType.PROGRESS, job=job, sample=sample))
            self.events.emit(
                QueueEvent(EventType.AGGREGATE_PROGRESS, aggregate=self.aggregate())
            )

        def on_proxy_failure(address: str) -> None:
            if address and address not in flagged:
                flagged.add(address)
                self.rotator.mark_failed(address)

        error: str | None = None
        try:
            attempt = _reraise_timeouts(
                self.acquirer.attempt(
                    job,
                    proxy,
                    self.output_dir / job.variant,
                    on_progress,
                    on_proxy_failure,
                )
            )
            if self._attempt_timeout:
                await asyncio.wait_for(attempt, timeout=self._attempt_timeout)
            else:
                await attempt
        except asyncio.TimeoutError:
            error = f"Attempt timed out after {self._attempt_timeout:g}s"
        except ProxyBlockedError as e:
            error = str(e) or "Blocked by remote host"
            if proxy:
                on_proxy_failure(proxy)
        except Exception as e:
            error = str(e) or type(e).__name__
            log.debug(f"Attempt for job {job.id} raised", exc_info=True)

        self._tasks.pop(job.id, None)
        if self.processing.pop(job.id, None) is None:
            # Cancelled by cancel_all() while the attempt was finishing
            return
        self.aggregator.discard(job.id)

        if error is None:
            self._on_success(job)
        else:
            self._on_failure(job, error)

        asyncio.get_running_loop().call_later(self._retry_delay, self.advance)

    def _on_success(self, job: Job) -> None:
        job.mark_completed()
        self.completed.append(job)
        log.info(f"[green]✓ Completed:[/] {escape(job.display_name)}")
        self.events.emit(QueueEvent(EventType.JOB_COMPLETED, job=job))
        self._state_changed()

    def _on_failure(self, job: Job, error: str) -> None:
        job.attempts += 1
        if job.attempts < job.max_attempts:
            job.requeue(error)
            # Retries go to the head so they are serviced before untried jobs
            self.queue.appendleft(job)
            log.warning(
                f"[yellow]↻ Attempt {job.attempts}/{job.max_attempts} failed for "
                f"{escape(job.display_name)}:[/] {escape(error)}"
            )
            self.events.emit(QueueEvent(EventType.JOB_RETRY, job=job, error=error))
        else:
            job.mark_failed(error)
            self.failed.append(job)
            log.error(
                f"[red]✗ Failed permanently after {job.attempts} attempt(s):[/] "
                f"{escape(job.display_name)} ({escape(error)})"
            )
            self.events.emit(QueueEvent(EventType.JOB_FAILED, job=job, error=error))
        self._state_changed()

    def _state_changed(self) -> None:
        self.save()
        self.events.emit(QueueEvent(EventType.QUEUE_CHANGED, status=self.status()))

    # --- Queue maintenance ---

    def add_proxy(self, proxy: str) -> bool:
        return self.rotator.add(proxy)

    def clear_queue(self) -> int:
        """Drops every job that has not started yet. Running attempts are untouched."""
        count = len(self.queue)
        self.queue.clear()
        if count:
            log.info(f"Cleared {count} queued job(s).")
            self._state_changed()
        return count

    async def cancel_all(self) -> int:
        """
        Stops every running attempt and returns those jobs to the head of the queue
        without counting the attempt, so they resume on the next start. No new
        attempts are admitted afterwards.
        """
        self._accepting = False
        jobs = list(self.processing.values())
        tasks = [self._tasks.pop(job.id) for job in jobs if job.id in self._tasks]
        self.processing.clear()

        for job in reversed(jobs):
            job.requeue()
            self.aggregator.discard(job.id)
            self.queue.appendleft(job)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if jobs:
            log.info(f"⏹ Paused {len(jobs)} running download(s).")
        self._state_changed()
        return len(jobs)

    async def wait_until_idle(self, poll_interval: float = 0.1) -> None:
        """Waits until nothing is queued or running, or admission has stopped."""
        while self.processing or (self.queue and self._accepting):
            await asyncio.sleep(poll_interval)

    # --- Persistence ---

    def snapshot(self) -> SchedulerSnapshot:
        """Copies the job collections. Running jobs are listed first."""
        return SchedulerSnapshot(
            queue=[*self.processing.values(), *self.queue],
            completed=list(self.completed),
            failed=list(self.failed),
            start_time=self.start_time,
        )

    def save(self) -> bool:
        return self.store.save(self.snapshot())

    async def _autosave_loop(self) -> None:
        """Saves the queue state periodically in the background."""
        while True:
            try:
                await asyncio.sleep(self._save_interval)
                self.save()
            except asyncio.CancelledError:
                log.debug("Queue autosave task cancelled.")
                break

    async def close(self) -> None:
        """Stops running attempts, the autosave task, and writes the final state."""
        if self.processing:
            await self.cancel_all()
        self._accepting = False
        if self._autosave_task and not self._autosave_task.done():
            self._autosave_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._autosave_task
        self.save()

    async def __aenter__(self):
        self._autosave_task = asyncio.create_task(self._autosave_loop())
        self.advance()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # --- Read-only views ---

    def counts(self) -> StateCounts:
        return StateCounts(
            queued=len(self.queue),
            processing=len(self.processing),
            completed=len(self.completed),
            failed=len(self.failed),
        )

    def aggregate(self) -> AggregateView:
        return self.aggregator.aggregate(self.counts(), list(self.processing))

    def status(self) -> dict[str, Any]:
        counts = self.counts()
        view = self.aggregate()
        return {
            "queue": counts.queued,
            "processing": counts.processing,
            "completed": counts.completed,
            "failed": counts.failed,
            "overall_progress": view.overall_progress * 100,
            "eta": view.eta,
            "uptime": format_duration(time.time() - self.start_time),
        }

    def detailed_status(self) -> dict[str, Any]:
        status = self.status()
        status.update(self.rotator.stats())

        formats: dict[str, dict[str, int]] = {}
        groups = (
            ("queue", self.queue),
            ("processing", self.processing.values()),
            ("completed", self.completed),
            ("failed", self.failed),
        )
        for key, jobs in groups:
            for job in jobs:
                counts = formats.setdefault(
                    job.variant,
                    {"queue": 0, "processing": 0, "completed": 0, "failed": 0},
                )
                counts[key] += 1

        status["formats"] = formats
        status["processing_items"] = [job.summary() for job in self.processing.values()]
        status["recent_completed"] = [
            job.summary() for job in reversed(self.completed[-RECENT_LIMIT:])
        ]
        status["recent_failed"] = [
            job.summary() for job in reversed(self.failed[-RECENT_LIMIT:])
        ]
        status["aggregate"] = self.aggregate()
        return status
