"""
Rich-based terminal dashboard for speed test results.

All formatting helpers live in ``meter.stats`` -- this module only does
presentation via the ``rich`` library.
"""
from __future__ import annotations

import statistics
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

from meter.stats import format_latency, format_speed

console = Console()


# ---------------------------------------------------------------------------
# Histogram helper
# ---------------------------------------------------------------------------

_BARS = "▁▂▃▄▅▆▇█"


def create_histogram(values: List[float]) -> str:
    """Return a single-line Unicode bar-chart."""
    if not values:
        return "No data"

    lo, hi = min(values), max(values)
    span = hi - lo if hi > lo else 1.0
    return "".join(
        _BARS[min(int((v - lo) / span * (len(_BARS) - 1)), len(_BARS) - 1)]
        for v in values
    )


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------

def print_header() -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]speedmeter[/bold cyan]\n"
            "[dim]Adaptive multi-stream bandwidth measurement[/dim]",
            border_style="cyan",
        )
    )
    console.print()


def print_endpoint_info(endpoint, settings) -> None:  # noqa: ANN001 (Endpoint, Settings)
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column(style="dim")
    table.add_column(style="bold")
    table.add_row("Server:", endpoint.name)
    table.add_row("Streams:", str(settings.concurrency))
    table.add_row("Max duration:", f"{settings.max_duration_seconds:.0f} s")
    table.add_row("Auto-shorten:", "on" if settings.auto_shorten else "off")
    console.print(Panel(table, title="[bold]Test Setup[/bold]", border_style="blue"))


def print_latency_details(result) -> None:  # noqa: ANN001 (PingResult)
    """Print latency statistics and a histogram."""
    pings = result.pings
    if not pings:
        console.print("[yellow]No latency samples[/yellow]")
        return

    table = Table(title="Latency Details", box=box.ROUNDED)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Ping (min)", format_latency(result.ping_ms))
    table.add_row("Max", format_latency(max(pings)))
    table.add_row("Mean", format_latency(statistics.mean(pings)))
    table.add_row("Jitter", f"{result.jitter_ms:.2f} ms")
    table.add_row("Samples", f"{len(pings)}/{result.attempts}")
    console.print(table)

    console.print(
        Panel(
            f"[cyan]{create_histogram(pings)}[/cyan]\n"
            f"[dim]Min: {min(pings):.1f} ms  Max: {max(pings):.1f} ms[/dim]",
            title="Ping Histogram",
        )
    )


def print_speed_result(result, title: str, color: str = "green") -> None:  # noqa: ANN001
    """Print a download or upload phase result panel."""
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Speed", f"[bold {color}]{format_speed(result.speed_mbps)}[/bold {color}]")
    table.add_row("Data Measured", f"{result.bytes_total / 1_000_000:.1f} MB")
    table.add_row("Duration", f"{result.duration_ms / 1000:.1f} s")
    table.add_row("Auto-shorten Bonus", f"{result.bonus_time_ms / 1000:.2f} s")
    table.add_row("Streams", str(len(result.connections)))
    console.print(table)

    if result.samples:
        console.print(
            Panel(
                f"[{color}]{create_histogram(result.samples)}[/{color}]\n"
                f"[dim]Min: {min(result.samples):.1f} Mbps  "
                f"Max: {max(result.samples):.1f} Mbps[/dim]",
                title="Speed Over Time",
            )
        )

    if result.connections:
        ct = Table(title="Per-Stream Stats", box=box.SIMPLE)
        ct.add_column("ID", style="dim")
        ct.add_column("Chunks", justify="right")
        ct.add_column("Errors", justify="right")
        ct.add_column("Bytes", justify="right")
        ct.add_column("Speed", justify="right")
        for conn in result.connections:
            ct.add_row(
                str(conn.id),
                str(conn.chunks),
                str(conn.errors),
                f"{conn.bytes_transferred / 1_000_000:.1f} MB",
                format_speed(conn.speed_mbps),
            )
        console.print(ct)


def print_final_results(result, server_name: str) -> None:  # noqa: ANN001 (SpeedTestResult)
    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Server:[/bold cyan] {server_name}\n\n"
            f"[bold white]   Ping:[/bold white]  [bold yellow]{result.ping_ms:.1f} ms[/bold yellow]  "
            f"[dim](jitter: {result.jitter_ms:.2f} ms)[/dim]\n"
            f"[bold white]   Download:[/bold white]  [bold green]{format_speed(result.download_mbps)}[/bold green]\n"
            f"[bold white]   Upload:[/bold white]  [bold blue]{format_speed(result.upload_mbps)}[/bold blue]",
            title="[bold]Results[/bold]",
            border_style="cyan",
        )
    )
    console.print()


# ---------------------------------------------------------------------------
# Progress display
# ---------------------------------------------------------------------------

class ProgressDisplay:
    """Manages a ``rich`` progress bar while a phase is running."""

    def __init__(self) -> None:
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(bar_width=40),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[bold cyan]{task.fields[value]}[/bold cyan]"),
            TimeElapsedColumn(),
            console=console,
        )
        self._task_id = None
        self._last_value = 0.0
        self._last_prog = 0.0

    def start(self, description: str) -> None:
        self.progress.start()
        self._task_id = self.progress.add_task(description, total=100, value="")
        self._last_value = 0.0
        self._last_prog = 0.0

    def update(self, update) -> None:  # noqa: ANN001 (meter.Progress)
        if self._task_id is None:
            return

        if update.current_ping_ms is not None:
            value = update.current_ping_ms
            text = f"{format_latency(value)} (jitter {update.current_jitter_ms or 0:.1f} ms)"
        else:
            value = update.current_speed_mbps
            text = format_speed(value) if value > 0 else "..."

        # Debounce: only update when values change noticeably
        if (
            update.fraction < 1.0
            and abs(update.fraction - self._last_prog) < 0.01
            and abs(value - self._last_value) < 1.0
        ):
            return
        self.progress.update(self._task_id, completed=update.fraction * 100, value=text)
        self._last_prog = update.fraction
        self._last_value = value

    def stop(self) -> None:
        self.progress.stop()
        self._task_id = None
