"""
Typed scheduler events and the observer list that delivers them.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .job import Job, ProgressSample

if TYPE_CHECKING:
    from tubetoolkit.core.aggregator import AggregateView

log = logging.getLogger(__name__)


class EventType(Enum):
    """Everything the scheduler reports to presentation and monitoring layers."""

    QUEUE_CHANGED = "queue_changed"
    JOB_STARTED = "job_started"
    JOB_COMPLETED = "job_completed"
    JOB_RETRY = "job_retry"
    JOB_FAILED = "job_failed"
    PROGRESS = "progress"
    AGGREGATE_PROGRESS = "aggregate_progress"


@dataclass(frozen=True)
class QueueEvent:
    """
    A single scheduler event. Which payload fields are set depends on the type:

    - QUEUE_CHANGED: status
    - JOB_STARTED / JOB_COMPLETED: job
    - JOB_RETRY / JOB_FAILED: job, error
    - PROGRESS: job, sample
    - AGGREGATE_PROGRESS: aggregate
    """

    type: EventType
    job: Job | None = None
    error: str | None = None
    sample: ProgressSample | None = None
    status: dict[str, Any] | None = None
    aggregate: "AggregateView | None" = None


Listener = Callable[[QueueEvent], None]


class EventBus:
    """An observer list keyed by event type."""

    def __init__(self):
        self._listeners: list[tuple[Listener, frozenset[EventType] | None]] = []

    def subscribe(self, listener: Listener, *types: EventType) -> Callable[[], None]:
        """
        Registers a listener for the given event types (all types if none given).

        Returns:
            A callable that removes the listener again.
        """
        entry = (listener, frozenset(types) if types else None)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def emit(self, event: QueueEvent) -> None:
        """Delivers an event. A failing listener is logged and does not stop delivery."""
        for listener, types in list(self._listeners):
            if types is not None and event.type not in types:
                continue
            try:
                listener(event)
            except Exception as e:
                log.warning(
                    f"[yellow]Event listener failed on '{event.type.value}':[/] {e}",
                    exc_info=log.getEffectiveLevel() == logging.DEBUG,
                )
