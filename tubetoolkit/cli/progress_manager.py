"""
Manages a Rich Live display for a running download queue.
Shows session time, combined speed, queue statistics and every active download, all
driven by the events the queue publishes.
"""

import asyncio
import time
from typing import Any

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
)
from rich.table import Table
from rich.text import Text

from tubetoolkit.core.aggregator import ETA_UNKNOWN, AggregateView
from tubetoolkit.models.events import EventBus, EventType, QueueEvent
from tubetoolkit.utils.formatting import format_duration, truncate_title


FORMAT_COLORS = {"mp3": "yellow", "mp4": "cyan", "file": "magenta"}


class ProgressManager:
    """
    A live dashboard for the download queue. Attach it to a queue's event bus and it
    keeps its own view of the session up to date.
    """

    def __init__(self, console: Console, enabled: bool = True):
        self.console = console
        self.enabled = enabled

        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=20),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            TextColumn("[blue]{task.fields[rate]}", justify="right"),
            "•",
            TextColumn("[yellow]ETA {task.fields[eta]}"),
            console=console,
            transient=False,
        )
        self.overall_progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            "[progress.percentage]{task.percentage:>3.0f}%",
            console=console,
        )
        self._overall_task_id = self.overall_progress.add_task(
            "Overall Progress", total=100, start=True
        )

        self._live: Live | None = None
        self._layout: Layout | None = None
        self._unsubscribe = None

        self._start_time = time.time()
        self._status: dict[str, Any] = {
            "queue": 0,
            "processing": 0,
            "completed": 0,
            "failed": 0,
        }
        self._aggregate: AggregateView | None = None
        self._stats = {"retries": 0, "peak_concurrent": 0, "peak_speed": 0.0}
        self._active_tasks: dict[str, TaskID] = {}

    def attach(self, events: EventBus, start_time: float | None = None) -> None:
        if start_time:
            self._start_time = start_time
        self._unsubscribe = events.subscribe(self.handle_event)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def handle_event(self, event: QueueEvent) -> None:
        if event.type is EventType.QUEUE_CHANGED and event.status:
            self._status.update(event.status)
            self._stats["peak_concurrent"] = max(
                self._stats["peak_concurrent"], self._status["processing"]
            )
        elif event.type is EventType.JOB_STARTED and event.job:
            self._add_job_task(event.job.id, event.job.display_name, event.job.variant)
        elif event.type is EventType.PROGRESS and event.job and event.sample:
            job = event.job
            task_id = self._active_tasks.get(job.id)
            if task_id is not None:
                self.progress.update(
                    task_id,
                    completed=event.sample.percent,
                    description=self._describe(job.display_name, job.variant),
                    rate=event.sample.rate or "-",
                    eta=event.sample.eta or "-",
                )
        elif event.type is EventType.AGGREGATE_PROGRESS and event.aggregate:
            self._aggregate = event.aggregate
            self._stats["peak_speed"] = max(
                self._stats["peak_speed"], event.aggregate.combined_rate
            )
        elif event.type in (
            EventType.JOB_COMPLETED,
            EventType.JOB_RETRY,
            EventType.JOB_FAILED,
        ) and event.job:
            if event.type is EventType.JOB_RETRY:
                self._stats["retries"] += 1
            self._remove_job_task(event.job.id)
        else:
            return
        self._update_display()

    def _describe(self, name: str, variant: str) -> str:
        color = FORMAT_COLORS.get(variant, "white")
        return f"{escape(truncate_title(name, 45))} [{color}]{variant}[/{color}]"

    def _add_job_task(self, job_id: str, name: str, variant: str) -> None:
        self._remove_job_task(job_id)
        self._active_tasks[job_id] = self.progress.add_task(
            self._describe(name, variant), total=100, start=True, rate="-", eta="-"
        )

    def _remove_job_task(self, job_id: str) -> None:
        task_id = self._active_tasks.pop(job_id, None)
        if task_id is not None:
            self.progress.remove_task(task_id)

    def _create_layout(self) -> Layout:
        layout = Layout()
        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="stats", size=9),
            Layout(name="progress", ratio=1),
        )
        return layout

    def _generate_header(self) -> Panel:
        elapsed = int(time.time() - self._start_time)
        header_text = Text()
        header_text.append("📺 TubeToolkit ", style="bold cyan")
        header_text.append("│ ", style="dim")
        header_text.append(
            f"Session: {elapsed // 3600:02d}:{elapsed % 3600 // 60:02d}:"
            f"{elapsed % 60:02d}",
            style="yellow",
        )
        if self._aggregate and self._aggregate.combined_rate > 0:
            header_text.append(" │ ", style="dim")
            header_text.append(
                f"⚡ {self._aggregate.combined_rate_text}", style="magenta"
            )
        return Panel(header_text, border_style="cyan")

    def _generate_stats_panel(self) -> Panel:
        stats_table = Table.grid(padding=(0, 2))
        stats_table.add_column(style="bold cyan", justify="right")
        stats_table.add_column(style="white")
        stats_table.add_column(style="bold cyan", justify="right")
        stats_table.add_column(style="white")
        stats_table.add_row(
            "Completed:",
            f"[green]{self._status['completed']}[/green]",
            "Failed:",
            f"[red]{self._status['failed']}[/red]",
        )
        stats_table.add_row(
            "Queued:",
            f"[cyan]{self._status['queue']}[/cyan]",
            "Retries:",
            f"[yellow]{self._stats['retries']}[/yellow]",
        )
        stats_table.add_row(
            "Active:",
            f"[cyan]{self._status['processing']}[/cyan]",
            "Peak:",
            f"[magenta]{self._stats['peak_concurrent']}[/magenta]",
        )
        eta = self._aggregate.eta if self._aggregate else ETA_UNKNOWN
        stats_table.add_row(
            "Avg Progress:",
            f"[blue]{self._aggregate.average_percent if self._aggregate else 0:.1f}%"
            "[/blue]",
            "ETA:",
            f"[yellow]{eta}[/yellow]",
        )

        overall = self._aggregate.overall_progress if self._aggregate else 0.0
        self.overall_progress.update(self._overall_task_id, completed=overall * 100)
        combined = Table.grid()
        combined.add_row(stats_table)
        combined.add_row("")
        combined.add_row(self.overall_progress)
        return Panel(
            combined, title="[bold]📊 Queue Statistics[/bold]", border_style="blue"
        )

    def _generate_progress_panel(self) -> Panel:
        if not self._active_tasks:
            return Panel(
                Text(
                    "Waiting for downloads to start...",
                    style="dim italic",
                    justify="center",
                ),
                title="[bold]📥 Active Downloads[/bold]",
                border_style="green",
            )
        return Panel(
            self.progress,
            title=f"[bold]📥 Active Downloads ({len(self._active_tasks)})[/bold]",
            border_style="green",
        )

    def _update_display(self):
        """Updates all panels; the Live object handles the refresh rate."""
        if not self.enabled or not self._layout:
            return
        self._layout["header"].update(self._generate_header())
        self._layout["stats"].update(self._generate_stats_panel())
        self._layout["progress"].update(self._generate_progress_panel())

    def get_statistics(self) -> dict[str, Any]:
        stats = dict(self._stats)
        stats["duration"] = format_duration(time.time() - self._start_time)
        return stats

    async def __aenter__(self):
        if not self.enabled:
            return self
        self._layout = self._create_layout()
        self._update_display()
        self._live = Live(
            self._layout,
            console=self.console,
            refresh_per_second=5,
            vertical_overflow="visible",
        )
        self._live.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.detach()
        if self._live:
            await asyncio.sleep(0.2)
            self._live.stop()
