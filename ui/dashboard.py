"""
Rich-based terminal dashboard for measurement runs.

All formatting helpers live in ``meter.stats`` -- this module only does
presentation via the ``rich`` library.
"""
from __future__ import annotations

from typing import List

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from meter.errors import SpeedTestError
from meter.history import sparkline, summarize
from meter.models import MeasurementRecord, ProgressEvent, RunState
from meter.stats import format_latency, format_speed

console = Console()

_STATE_LABELS = {
    RunState.IDLE: "Idle",
    RunState.CONNECTING: "Connecting",
    RunState.TESTING_PING: "Ping",
    RunState.TESTING_DOWNLOAD: "Download",
    RunState.TESTING_UPLOAD: "Upload",
    RunState.COMPLETED: "Done",
    RunState.ERROR: "Error",
}


def state_label(state: RunState) -> str:
    return _STATE_LABELS.get(state, state.value)


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------

def print_header() -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]netmeter[/bold cyan]\n"
            "[dim]Latency, jitter, packet loss and throughput[/dim]",
            border_style="cyan",
        )
    )
    console.print()


def print_final_results(record: MeasurementRecord) -> None:
    loss = (
        f"\n[bold white]   Packet Loss:[/bold white]  [bold red]{record.packet_loss_pct:.1f}%[/bold red]"
        if record.packet_loss_pct > 0
        else ""
    )
    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Server:[/bold cyan] {record.server.name} ({record.server.location})\n\n"
            f"[bold white]   Ping:[/bold white]  [bold yellow]{format_latency(record.ping_ms)}[/bold yellow]  "
            f"[dim](jitter: {record.jitter_ms:.0f} ms)[/dim]"
            f"{loss}\n"
            f"[bold white]   Download:[/bold white]  [bold green]{format_speed(record.download_mbps)}[/bold green]\n"
            f"[bold white]   Upload:[/bold white]  [bold blue]{format_speed(record.upload_mbps)}[/bold blue]",
            title="[bold]Results[/bold]",
            border_style="cyan",
        )
    )
    console.print()


def print_error(error: SpeedTestError) -> None:
    console.print(f"\n[red]Error ({error.type.value}): {error.message}[/red]")


def print_history(records: List[MeasurementRecord]) -> None:
    """Table of stored results (newest first) with a summary footer."""
    if not records:
        console.print("[dim]No test history yet.[/dim]")
        return

    table = Table(title="Test History", box=box.ROUNDED)
    table.add_column("When", style="dim")
    table.add_column("Server")
    table.add_column("Ping", justify="right")
    table.add_column("Jitter", justify="right")
    table.add_column("Loss", justify="right")
    table.add_column("Download", justify="right", style="green")
    table.add_column("Upload", justify="right", style="blue")

    for r in records:
        table.add_row(
            r.timestamp.astimezone().strftime("%Y-%m-%d %H:%M"),
            r.server.name,
            format_latency(r.ping_ms),
            f"{r.jitter_ms:.0f} ms",
            f"{r.packet_loss_pct:.1f}%",
            format_speed(r.download_mbps),
            format_speed(r.upload_mbps),
        )
    console.print(table)

    summary = summarize(records)
    oldest_first = list(reversed(records))
    console.print(
        Panel(
            f"Tests: {summary['total_tests']}\n"
            f"Avg download: [green]{format_speed(summary['average_download'])}[/green]  "
            f"[green]{sparkline([r.download_mbps for r in oldest_first])}[/green]\n"
            f"Avg upload:   [blue]{format_speed(summary['average_upload'])}[/blue]  "
            f"[blue]{sparkline([r.upload_mbps for r in oldest_first])}[/blue]\n"
            f"Avg ping:     [yellow]{format_latency(summary['average_ping'])}[/yellow]",
            title="Summary",
        )
    )


# ---------------------------------------------------------------------------
# Progress display
# ---------------------------------------------------------------------------

class ProgressDisplay:
    """A single ``rich`` progress bar fed by orchestrator progress events."""

    def __init__(self) -> None:
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(bar_width=40),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[bold cyan]{task.fields[speed]}[/bold cyan]"),
            TimeElapsedColumn(),
            console=console,
        )
        self._task_id = None

    def start(self) -> None:
        self.progress.start()
        self._task_id = self.progress.add_task("Starting", total=100, speed="")

    def __call__(self, event: ProgressEvent) -> None:
        if self._task_id is None:
            return
        speed = format_speed(event.current_speed) if event.current_speed else ""
        self.progress.update(
            self._task_id,
            completed=event.progress,
            description=state_label(event.state),
            speed=speed,
        )

    def stop(self) -> None:
        self.progress.stop()
        self._task_id = None
