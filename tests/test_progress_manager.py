import asyncio
import io

from rich.console import Console

from tubetoolkit.cli.progress_manager import ProgressManager
from tubetoolkit.core.aggregator import AggregateView
from tubetoolkit.models.events import EventBus, EventType, QueueEvent
from tubetoolkit.models.job import Job, ProgressSample


def test_dashboard_follows_queue_events():
    bus = EventBus()
    console = Console(file=io.StringIO(), width=120)
    job = Job(url="https://youtu.be/abc", title="Intro")

    async def scenario():
        async with ProgressManager(console) as manager:
            manager.attach(bus)
            bus.emit(QueueEvent(EventType.JOB_STARTED, job=job))
            bus.emit(
                QueueEvent(
                    EventType.QUEUE_CHANGED,
                    status={"queue": 1, "processing": 1, "completed": 0, "failed": 0},
                )
            )
            bus.emit(
                QueueEvent(
                    EventType.PROGRESS,
                    job=job,
                    sample=ProgressSample(percent=40.0, rate="1.0MiB/s", eta="00:09"),
                )
            )
            bus.emit(
                QueueEvent(
                    EventType.AGGREGATE_PROGRESS,
                    aggregate=AggregateView(40.0, 1, 1024.0**2, 0.0, "Calculating..."),
                )
            )
            assert len(manager._active_tasks) == 1
            bus.emit(QueueEvent(EventType.JOB_RETRY, job=job, error="reset"))
            assert manager._active_tasks == {}
        return manager.get_statistics()

    stats = asyncio.run(scenario())
    assert stats["retries"] == 1
    assert stats["peak_concurrent"] == 1
    assert stats["peak_speed"] == 1024.0**2
    assert "Queue Statistics" in console.file.getvalue()
