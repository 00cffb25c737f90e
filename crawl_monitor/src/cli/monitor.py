"""CLI tool for starting a crawl and watching its progress live."""
import asyncio
import sys
import time
from typing import Dict, List, Optional

import typer
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from ..config import settings
from ..exceptions import MonitorError, ValidationError
from ..models import SessionStatus
from ..services import ControlClient, SessionController
from ..utils.logger import redirect_logger

app = typer.Typer(help="Monitor crawl sessions from the terminal.")
console = Console()

STATUS_COLORS = {
    SessionStatus.IDLE: "white",
    SessionStatus.STARTING: "yellow",
    SessionStatus.RUNNING: "blue",
    SessionStatus.PAUSED: "magenta",
    SessionStatus.STOPPING: "yellow",
    SessionStatus.STOPPED: "yellow",
    SessionStatus.COMPLETED: "green",
    SessionStatus.FAILED: "red",
}

LEVEL_COLORS = {"ERROR": "red", "WARN": "yellow", "SUCCESS": "green", "DEBUG": "dim"}


def parse_cookies(values: List[str]) -> Dict[str, str]:
    """Turn repeated ``NAME=VALUE`` options into a cookie map."""
    cookies = {}
    for value in values:
        name, sep, cookie = value.partition("=")
        if not sep or not name.strip():
            raise typer.BadParameter(f"Expected NAME=VALUE, got {value!r}", param_hint="--cookie")
        cookies[name.strip()] = cookie.strip()
    return cookies


def parse_rules(values: List[str]) -> List[Dict[str, str]]:
    """Turn repeated ``NAME|TYPE|SELECTOR[|ATTRIBUTE]`` options into rules."""
    rules = []
    for value in values:
        parts = [p.strip() for p in value.split("|")]
        if len(parts) not in (3, 4):
            raise typer.BadParameter(
                f"Expected NAME|CSS|SELECTOR[|ATTRIBUTE], got {value!r}", param_hint="--rule"
            )
        rules.append(
            {
                "ruleName": parts[0],
                "selectorType": parts[1],
                "selectorValue": parts[2],
                "attributeToExtract": parts[3] if len(parts) == 4 else "text",
            }
        )
    return rules


def create_status_display(controller: SessionController, elapsed: float) -> Group:
    """Create the live view of counters and the newest log lines."""
    state = controller.state
    status = controller.status
    color = STATUS_COLORS.get(status, "white")

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="cyan bold", no_wrap=True)
    table.add_column("Value", style="white")

    table.add_row("Status", f"[{color}]{status.value}[/{color}]")
    table.add_row("Session", controller.session_id or "-")
    table.add_row("Pages", str(state.total_pages))
    table.add_row("Flows", str(state.total_flows))
    table.add_row("Extracted", str(state.total_extracted))
    table.add_row("Downloaded", str(state.total_downloaded))
    table.add_row("External URLs", str(state.total_external_urls))
    table.add_row("Pages/s", f"{state.pages_per_second:.2f}")
    table.add_row("Queue", str(state.queue_size))
    table.add_row(
        "Channel", "[green]connected[/green]" if controller.channel.connected else "[red]down[/red]"
    )
    table.add_row("Elapsed Time", f"{elapsed:.1f}s")

    log = Table(show_header=False, box=None, padding=(0, 1))
    for entry in state.log_buffer[:10]:
        level_color = LEVEL_COLORS.get(entry.level, "white")
        log.add_row(
            f"[dim]{entry.timestamp}[/dim]",
            f"[{level_color}]{entry.level}[/{level_color}]",
            entry.message,
        )

    return Group(
        Panel(table, title="Crawl", border_style=color),
        Panel(log, title="Log", border_style="dim"),
    )


async def watch_session(controller: SessionController, refresh_interval: float) -> SessionStatus:
    """Render the session until it reaches a terminal status."""
    start_time = time.time()

    with Live(create_status_display(controller, 0.0), console=console, refresh_per_second=8) as live:
        try:
            while not controller.status.is_terminal:
                await asyncio.sleep(refresh_interval)
                live.update(create_status_display(controller, time.time() - start_time))
        except (KeyboardInterrupt, asyncio.CancelledError):
            if controller.status in (SessionStatus.RUNNING, SessionStatus.PAUSED):
                console.print("[yellow]Stopping crawl...[/yellow]")
                await controller.stop()

        await controller.wait_finalized()
        live.update(create_status_display(controller, time.time() - start_time))

    return controller.status


@app.command()
def crawl(
    url: str = typer.Argument(..., help="URL to start crawling from"),
    max_depth: int = typer.Option(0, help="Maximum link depth (0 = unbounded)"),
    max_pages: int = typer.Option(0, help="Maximum pages (0 = unbounded)"),
    delay: float = typer.Option(1.0, help="Delay between requests in seconds"),
    threads: int = typer.Option(5, help="Concurrent crawler threads"),
    download_files: bool = typer.Option(True, "--download/--no-download", help="Download linked files"),
    javascript: bool = typer.Option(False, "--javascript", help="Render pages with JavaScript"),
    cookie: List[str] = typer.Option([], help="Cookie as NAME=VALUE (repeatable)"),
    rule: List[str] = typer.Option([], help="Extraction rule NAME|CSS|SELECTOR[|ATTR] (repeatable)"),
    export: List[str] = typer.Option([], help="Export format once finished (repeatable)"),
    api_url: Optional[str] = typer.Option(None, help="Control API base URL"),
    ws_url: Optional[str] = typer.Option(None, help="Event channel WebSocket URL"),
    protocol: Optional[str] = typer.Option(None, help="Channel protocol: 'stomp' or 'json'"),
    refresh_interval: float = typer.Option(0.25, help="Display refresh interval in seconds"),
    log_level: Optional[str] = typer.Option(None, help="Process log level (DEBUG, INFO, WARNING, ...)"),
):
    """
    Start a crawl and watch its progress until it finishes.

    Examples:

        python -m crawl_monitor.src.cli.monitor crawl https://example.com

        python -m crawl_monitor.src.cli.monitor crawl https://example.com --max-depth 2 --rule "Titles|CSS|h1"
    """
    redirect_logger(sys.stderr, log_level)
    if ws_url:
        settings.ws_url = ws_url
    if protocol:
        settings.channel_protocol = protocol

    config = {
        "startUrl": url,
        "maxDepth": max_depth,
        "maxPages": max_pages,
        "requestDelay": delay,
        "concurrentThreads": threads,
        "downloadFiles": download_files,
        "enableJavaScript": javascript,
        "cookies": parse_cookies(cookie),
        "extractionRules": parse_rules(rule),
    }

    console.print(f"\n[bold cyan]Starting crawl of:[/bold cyan] {url}\n")

    async def run() -> SessionStatus:
        async with ControlClient(base_url=api_url) as client:
            controller = SessionController(client=client)
            try:
                session = await controller.start(config)
            except ValidationError as e:
                for err in e.errors:
                    console.print(f"[red]{'.'.join(map(str, err['loc']))}: {err['msg']}[/red]")
                raise typer.Exit(2)
            except MonitorError as e:
                console.print(f"[red]Failed to start crawl: {e}[/red]")
                raise typer.Exit(1)

            console.print(f"[green]Session created:[/green] {session.session_id}\n")
            try:
                status = await watch_session(controller, refresh_interval)

                for error in controller.hydrate_errors:
                    console.print(f"[yellow]{error}[/yellow]")

                if export and status == SessionStatus.COMPLETED:
                    result = await controller.export(export)
                    for fmt, path in result.files.items():
                        console.print(f"[cyan]{fmt}:[/cyan] {path}")
            finally:
                await controller.channel.close()

            return status

    status = asyncio.run(run())
    if status == SessionStatus.FAILED:
        raise typer.Exit(1)


@app.command()
def status(
    session_id: str = typer.Argument(..., help="Session identifier"),
    api_url: Optional[str] = typer.Option(None, help="Control API base URL"),
):
    """Print the server's snapshot of a session."""

    async def run():
        async with ControlClient(base_url=api_url) as client:
            return await client.status(session_id)

    try:
        snapshot = asyncio.run(run())
    except MonitorError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="cyan bold", no_wrap=True)
    table.add_column("Value", style="white")
    for field, value in snapshot.model_dump(exclude_none=True).items():
        table.add_row(field.replace("_", " ").title(), str(value))
    console.print(Panel(table, title=f"Session {session_id}"))


if __name__ == "__main__":
    app()
