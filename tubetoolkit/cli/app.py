"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler

from tubetoolkit import __version__
from tubetoolkit.core.scheduler import DownloadQueue
from tubetoolkit.exceptions import TubeToolkitError
from tubetoolkit.media import HttpDownloader, MediaAcquirer, YtDlpAcquirer
from tubetoolkit.models.config import QueueConfig
from tubetoolkit.network import ProxyRotator
from tubetoolkit.storage import ConfigManager, StateStore
from tubetoolkit.utils.structured_logger import QueueEventLogger, StructuredLogger

from .formatters import (
    format_error_with_suggestions,
    print_config,
    print_status_panel,
    print_summary_panel,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("tubetoolkit")

app = typer.Typer(
    name="tubetoolkit",
    help=(
        "Batch downloader for online audio and video with retries, proxy rotation and"
        " resumable queues. Use 'tubetoolkit <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "tubetoolkit"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_config(cli_options: dict[str, Any] | None = None) -> QueueConfig:
    try:
        return ConfigManager(CONFIG_FILE).load_config(cli_options)
    except TubeToolkitError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


def _build_queue(config: QueueConfig) -> DownloadQueue:
    acquirer = MediaAcquirer(
        YtDlpAcquirer(config.ytdlp_binary, config.cookies_file), HttpDownloader()
    )
    return DownloadQueue(config, acquirer)


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (debug output).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """TubeToolkit Downloader CLI"""
    if version:
        console.print(f"[bold]tubetoolkit[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    logging.getLogger("tubetoolkit").setLevel("DEBUG" if verbose >= 1 else "INFO")

    if show_config:
        config = _load_config()
        print_config(CONFIG_FILE, config.model_dump())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


def _url_lines(lines) -> list[str]:
    """Keeps non-empty lines that are not '#' comments."""
    stripped = (line.strip() for line in lines)
    return [line for line in stripped if line and not line.startswith("#")]


def _read_urls_from_stdin() -> list[str]:
    if sys.stdin.isatty():
        console.print(
            "[yellow]⚠️  --stdin expects piped input, e.g.[/yellow] "
            "[cyan]tubetoolkit download --stdin < urls.txt[/cyan]"
        )
        raise typer.Exit(code=1)

    urls = _url_lines(sys.stdin)
    if not urls:
        console.print("[yellow]⚠️  Standard input contained no URLs.[/yellow]")
        raise typer.Exit(code=1)
    log.info(f"Read {len(urls)} URL(s) from standard input.")
    return urls


def expand_sources(sources: list[str]) -> list[str]:
    """
    Expands paths to URL list files into their URLs and drops duplicates, keeping the
    first occurrence. Blank lines and '#' comments in list files are ignored.
    """
    expanded_urls = []
    for source in sources:
        path = Path(source)
        if not path.is_file():
            expanded_urls.extend(_url_lines([source]))
            continue
        log.info(f"Reading URLs from file: [dim]{source}[/dim]")
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
            expanded_urls.extend(_url_lines(lines))
        except (OSError, UnicodeDecodeError) as e:
            log.error(f"[red]Could not read URL list {source}: {e}[/red]")

    unique_urls = list(dict.fromkeys(expanded_urls))
    if duplicates := len(expanded_urls) - len(unique_urls):
        log.info(f"Removed {duplicates} duplicate URL(s).")
    return unique_urls


async def _run_queue(
    config: QueueConfig,
    urls: list[str],
    variant: str | None = None,
    quality: str | None = None,
    json_log: Path | None = None,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Runs the queue until every job has finished, returning the final status."""
    queue = _build_queue(config)
    pending = {job.url for job in queue.queue}
    structured = StructuredLogger(json_log) if json_log else None
    journal = None
    if structured:
        structured.set_session_context(
            max_concurrent=config.max_concurrent, max_attempts=config.max_attempts
        )
        journal = QueueEventLogger(structured)
        journal.attach(queue.events)
        log.info(f"Writing event log to [dim]{structured.path}[/dim]")

    try:
        async with ProgressManager(console) as progress_manager:
            progress_manager.attach(queue.events, queue.start_time)
            async with queue:
                for url in urls:
                    if url in pending:
                        log.info(f"Already queued, skipping: [dim]{url}[/dim]")
                        continue
                    queue.submit(url, variant=variant, quality=quality)
                await queue.wait_until_idle()
            progress_stats = progress_manager.get_statistics()
    finally:
        if journal:
            journal.detach()
        if structured:
            structured.close()

    return queue.detailed_status(), progress_stats


def _run_and_report(config: QueueConfig, urls: list[str], **kwargs) -> None:
    try:
        status, progress_stats = asyncio.run(_run_queue(config, urls, **kwargs))
    except KeyboardInterrupt:
        console.print(
            "\n[yellow]⚠️  Operation cancelled by user. Queue state saved; "
            "run `tubetoolkit resume` to continue.[/yellow]"
        )
        raise typer.Exit() from None
    print_summary_panel(status, progress_stats)


@app.command(name="download")
def download_command(
    urls: list[str] | None = typer.Argument(  # noqa: B008
        None, help="One or more URLs or paths to files containing URLs."
    ),
    fmt: str | None = typer.Option(
        None, "-f", "--format", help="Output format: mp3, mp4 or file."
    ),
    quality: str | None = typer.Option(
        None,
        "-q",
        "--quality",
        help=(
            "Quality preset. mp3: best, good, medium, low. "
            "mp4: best, 1080p, 720p, 480p, 360p."
        ),
    ),
    proxies: list[str] | None = typer.Option(  # noqa: B008
        None, "--proxy", help="Proxy to rotate through (repeatable)."
    ),
    proxy_file: Path | None = typer.Option(  # noqa: B008
        None,
        "--proxy-file",
        help="File with one proxy per line.",
        exists=True,
        dir_okay=False,
    ),
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Number of simultaneous downloads (default 2)."
    ),
    attempts: int | None = typer.Option(
        None, "--attempts", help="Attempts per download before giving up (default 3)."
    ),
    timeout: float | None = typer.Option(
        None, "--timeout", help="Abort a single attempt after this many seconds."
    ),
    output_dir: str | None = typer.Option(
        None, "-o", "--output", help="Directory downloads are saved into."
    ),
    stdin: bool = typer.Option(
        False, "--stdin", help="Read URLs from standard input, one URL per line."
    ),
    json_log: Path | None = typer.Option(  # noqa: B008
        None, "--json-log", help="Write a JSON lines event log into this directory."
    ),
):
    """Download media, resuming anything left from the previous session."""
    if stdin and urls:
        console.print(
            "[yellow]⚠️  Both URLs and --stdin provided. Using --stdin only.[/yellow]"
        )
        urls = _read_urls_from_stdin()
    elif stdin:
        urls = _read_urls_from_stdin()
    elif not urls:
        console.print(
            "[red]✗ No URLs provided.[/red] "
            "Use: [cyan]tubetoolkit download <URL>[/cyan] or [cyan]--stdin[/cyan]"
        )
        raise typer.Exit(code=1)

    proxy_list = list(proxies or [])
    if proxy_file:
        proxy_list.extend(ProxyRotator.from_file(proxy_file).proxies)

    cli_options = {
        key: value
        for key, value in {
            "output_dir": output_dir,
            "max_concurrent": workers,
            "max_attempts": attempts,
            "attempt_timeout": timeout,
            "default_format": fmt,
            "default_quality": quality or ("best" if fmt else None),
            "proxies": proxy_list or None,
        }.items()
        if value is not None
    }
    config = _load_config(cli_options)

    variant, quality = config.default_format, config.default_quality

    unique_urls = expand_sources(urls)
    if not unique_urls:
        log.warning("[yellow]No unique or valid URLs to process. Exiting.[/yellow]")
        raise typer.Exit(code=1)

    console.print(
        f"[bold cyan]📺 Queueing {len(unique_urls)} download(s) as "
        f"{variant.upper()} ({quality})...[/bold cyan]"
    )
    _run_and_report(
        config, unique_urls, variant=variant, quality=quality, json_log=json_log
    )


@app.command()
def resume(
    workers: int | None = typer.Option(
        None, "-w", "--workers", help="Number of simultaneous downloads."
    ),
    json_log: Path | None = typer.Option(  # noqa: B008
        None, "--json-log", help="Write a JSON lines event log into this directory."
    ),
):
    """Continue the downloads left in the saved queue."""
    cli_options = {"max_concurrent": workers} if workers is not None else None
    config = _load_config(cli_options)
    snapshot = StateStore(Path(config.state_file)).load()
    if not snapshot.queue:
        console.print("[green]✓ Nothing to resume. The queue is empty.[/green]")
        raise typer.Exit()

    console.print(
        f"[bold cyan]📂 Resuming {len(snapshot.queue)} queued download(s)...[/bold cyan]"
    )
    _run_and_report(config, [], json_log=json_log)


@app.command()
def status():
    """Show the saved queue state."""
    config = _load_config()
    state_file = Path(config.state_file)
    if not state_file.is_file():
        console.print(f"[yellow]No queue state found at '{state_file}'.[/yellow]")
        raise typer.Exit()
    queue = _build_queue(config)
    print_status_panel(queue.detailed_status(), state_file)


@app.command()
def clear(
    clear_all: bool = typer.Option(
        False,
        "--all",
        help="Also forget completed and failed downloads (deletes the state file).",
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Bypass the confirmation prompt."
    ),
):
    """Remove queued downloads from the saved state."""
    config = _load_config()
    if clear_all:
        if not force and not typer.confirm(
            "Delete the entire queue state, including download history?"
        ):
            console.print("[yellow]Operation cancelled.[/yellow]")
            raise typer.Abort()
        if StateStore(Path(config.state_file)).clear():
            console.print("[green]✓ Queue state deleted.[/green]")
        else:
            raise typer.Exit(code=1)
        return

    queue = _build_queue(config)
    if not queue.queue:
        console.print("[green]✓ The queue is already empty.[/green]")
        return
    if not force and not typer.confirm(
        f"Remove {len(queue.queue)} queued download(s)?"
    ):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Abort()
    count = queue.clear_queue()
    console.print(f"[green]✓ Removed {count} queued download(s).[/green]")
