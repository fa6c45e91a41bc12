"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tubetoolkit.utils.formatting import truncate_title


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "ConfigurationError": [
            "• Check the values in your config.ini.",
            "• Run `tubetoolkit --show-config` to see the effective settings.",
        ],
        "InvalidFormatError": [
            "• Supported formats are mp3, mp4 and file.",
        ],
        "InvalidQualityError": [
            "• mp3 accepts best, good, medium and low.",
            "• mp4 accepts best, 1080p, 720p, 480p and 360p.",
        ],
        "AcquisitionError": [
            "• Make sure yt-dlp is installed and on your PATH.",
            "• Run the command with -v for detailed logs.",
        ],
        "ProxyBlockedError": [
            "• The remote host is rate-limiting or blocking your connection.",
            "• Add more proxies with --proxy or --proxy-file.",
            "• Reduce `--workers` to lower the request rate.",
        ],
        "TimeoutError": [
            "• A download timed out, which may indicate network throttling.",
            "• Raise `--timeout` or leave it unset.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -v for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the effective configuration."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        if isinstance(value, list):
            value = ", ".join(value) if value else "(none)"
        elif value is None or value == "":
            value = "(not set)"
        content += f"{key} = {value}\n"

    source = config_path if config_path.is_file() else f"{config_path}, not found"
    console.print(
        Panel(
            escape(content.strip()),
            title=f"Configuration ([dim]{source}[/dim])",
            border_style="cyan",
        )
    )


def _job_table(title: str, jobs: list[dict[str, Any]], show_error: bool) -> Table:
    table = Table(title=title, box=box.SIMPLE, title_justify="left")
    table.add_column("Title", style="cyan")
    table.add_column("Format")
    table.add_column("Attempts", justify="right")
    table.add_column("Error" if show_error else "Progress", style="dim")
    for job in jobs:
        name = job["title"] if job["title"] != "Unknown" else job["url"]
        if show_error:
            detail = truncate_title(job.get("error") or "", 50)
        else:
            progress = job.get("progress") or {}
            detail = f"{progress.get('percent', 0):.1f}% {progress.get('rate', '')}"
        table.add_row(
            escape(truncate_title(name)),
            job["format"],
            str(job["attempts"]),
            escape(detail.strip()),
        )
    return table


def print_status_panel(status: dict[str, Any], state_file: Path):
    """Displays the detailed status of a download queue."""
    console = Console()

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column()
    table.add_row("Queued:", f"[cyan]{status['queue']}[/cyan]")
    table.add_row("Processing:", f"[yellow]{status['processing']}[/yellow]")
    table.add_row("Completed:", f"[green]{status['completed']}[/green]")
    table.add_row("Failed:", f"[red]{status['failed']}[/red]")
    table.add_row("Progress:", f"{status['overall_progress']:.1f}%")
    table.add_row("Uptime:", status["uptime"])
    table.add_row("", "")
    table.add_row(
        "Proxies:",
        f"{status['total_proxies']} total, {status['failed_proxies']} failed, "
        f"{status['rotation_count']} rotations",
    )

    if formats := status.get("formats"):
        table.add_row("", "")
        for fmt, counts in sorted(formats.items()):
            table.add_row(
                f"{fmt.upper()}:",
                f"[cyan]{counts['queue']}[/cyan] queued • "
                f"[yellow]{counts['processing']}[/yellow] processing • "
                f"[green]{counts['completed']}[/green] completed • "
                f"[red]{counts['failed']}[/red] failed",
            )

    console.print(
        Panel(
            table,
            title=f"📋 [bold]Queue Status[/bold] ([dim]{state_file}[/dim])",
            border_style="cyan",
            expand=False,
        )
    )

    if status.get("processing_items"):
        console.print(_job_table("Processing", status["processing_items"], False))
    if status.get("recent_completed"):
        console.print(
            _job_table("Recently completed", status["recent_completed"], False)
        )
    if status.get("recent_failed"):
        console.print(_job_table("Recently failed", status["recent_failed"], True))


def print_summary_panel(status: dict[str, Any], progress_stats: dict | None = None):
    """Displays the final summary of a download session."""
    console = Console()

    stats_table = Table(show_header=False, box=None, padding=(0, 2))
    stats_table.add_column(style="bold cyan", justify="right", width=20)
    stats_table.add_column(style="white", justify="left")

    stats_table.add_row(
        "✓ Completed:", f"[bold green]{status['completed']}[/bold green]"
    )
    if status["failed"] > 0:
        stats_table.add_row("✗ Failed:", f"[bold red]{status['failed']}[/bold red]")
    if status["queue"] > 0:
        stats_table.add_row(
            "⏸ Still queued:", f"[yellow]{status['queue']}[/yellow]"
        )

    if progress_stats:
        stats_table.add_row("", "")
        stats_table.add_row(
            "Retries:", f"[yellow]{progress_stats.get('retries', 0)}[/yellow]"
        )
        stats_table.add_row(
            "Peak Concurrent:",
            f"[green]{progress_stats.get('peak_concurrent', 0)}[/green]",
        )
        stats_table.add_row(
            "Time Elapsed:", f"[blue]{progress_stats.get('duration', '0s')}[/blue]"
        )

    if status["failed_proxies"] or status["rotation_count"]:
        stats_table.add_row(
            "Proxy Rotations:", f"[magenta]{status['rotation_count']}[/magenta]"
        )

    if status["queue"] > 0:
        title = "⏸ [bold]Session Paused[/bold]"
        border_color = "yellow"
    elif status["failed"] > 0:
        title = "⚠ [bold]Finished With Failures[/bold]"
        border_color = "red"
    else:
        title = "📺 [bold]Download Complete![/bold]"
        border_color = "green"

    console.print()
    console.print(
        Panel(
            stats_table,
            title=title,
            border_style=border_color,
            box=box.DOUBLE,
            expand=False,
        )
    )
    if status["queue"] > 0:
        console.print("[dim]Run `tubetoolkit resume` to continue.[/dim]")
