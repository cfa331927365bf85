#!/usr/bin/env python3
"""
speedmeter -- adaptive multi-stream bandwidth measurement from the terminal.

Usage::

    python speedmeter.py                        # rich dashboard
    python speedmeter.py --simple               # plain text
    python speedmeter.py --json                 # JSON to stdout
    python speedmeter.py -o result.json         # save to file
    python speedmeter.py --connections 8 --duration 10
    python speedmeter.py --server-url https://speed.example.net
    python speedmeter.py --show-config          # effective settings
    python speedmeter.py --set-config concurrency=8
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Any, Dict, Optional

from rich.logging import RichHandler

from meter.config import Settings, config_path, load_settings, set_config_value
from meter.constants import DEFAULT_BASE_URL
from meter.errors import AbortedError, SpeedTestError
from meter.runner import SpeedTest, SpeedTestResult
from meter.session import Phase, Progress
from meter.transport import CLOUDFLARE, Endpoint, HttpTransport
from ui.dashboard import (
    ProgressDisplay,
    console,
    print_endpoint_info,
    print_final_results,
    print_header,
    print_latency_details,
    print_speed_result,
)
from ui.output import create_failure_json, create_result_json, format_text_result, save_json

_PHASE_LABELS = {
    Phase.PING: "Measuring latency",
    Phase.DOWNLOAD: "Downloading",
    Phase.UPLOAD: "Uploading",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Map CLI flags onto recognized settings options (None = not given)."""
    return {
        "max_duration_seconds": args.duration,
        "grace_time_seconds": args.grace,
        "auto_shorten": False if args.no_auto_shorten else None,
        "concurrency": args.connections,
        "stagger_delay_ms": args.stagger,
        "overhead_compensation_factor": args.overhead,
        "min_chunk_bytes": args.min_chunk,
        "max_chunk_bytes": args.max_chunk,
        "ping_probe_count": args.ping_count,
        "top_fraction": args.top_fraction,
    }


def _endpoint_from_args(args: argparse.Namespace) -> Endpoint:
    if args.server_url and args.server_url.rstrip("/") != DEFAULT_BASE_URL:
        return Endpoint.from_base_url(args.server_url)
    return CLOUDFLARE


def _save_option(assignment: str) -> None:
    """Persist ``KEY=VALUE`` (VALUE parsed as JSON) to the config file."""
    key, sep, raw = assignment.partition("=")
    if not sep:
        console.print("[red]Error: expected KEY=VALUE[/red]")
        sys.exit(1)
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        console.print(f"[red]Error: {raw!r} is not a valid value[/red]")
        sys.exit(1)
    try:
        path = set_config_value(key.strip(), value)
    except ValueError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)
    console.print(f"[green]Saved[/green] {key.strip()} = {value!r} to {path}")


class _PhaseProgress:
    """Routes engine progress updates to one progress bar per phase."""

    def __init__(self) -> None:
        self._display: Optional[ProgressDisplay] = None
        self._phase: Optional[Phase] = None

    def __call__(self, update: Progress) -> None:
        if update.phase is not self._phase:
            self.close()
            self._phase = update.phase
            self._display = ProgressDisplay()
            self._display.start(_PHASE_LABELS[update.phase])
        self._display.update(update)

    def close(self) -> None:
        if self._display is not None:
            self._display.stop()
            self._display = None


# ---------------------------------------------------------------------------
# Core test runner
# ---------------------------------------------------------------------------

async def run_speedtest(
    settings: Settings,
    endpoint: Endpoint,
    *,
    json_output: bool = False,
    output_file: Optional[str] = None,
    simple: bool = False,
) -> Optional[dict]:
    """Execute ping, download and upload; return a JSON-serialisable dict."""

    show_ui = not json_output and not simple

    if show_ui:
        print_header()
        print_endpoint_info(endpoint, settings)

    async with HttpTransport(endpoint, connections=settings.concurrency) as transport:
        test = SpeedTest(transport, settings)
        bars = _PhaseProgress()
        if show_ui:
            test.on_progress = bars

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, test.abort)
        except (NotImplementedError, RuntimeError):
            pass  # no signal handlers on this platform

        try:
            result: SpeedTestResult = await test.run()
        except SpeedTestError as exc:
            bars.close()
            phase = getattr(exc.phase, "value", "unknown")
            failure = create_failure_json(
                endpoint.to_dict(), phase, str(exc), aborted=isinstance(exc, AbortedError)
            )
            if json_output:
                print(json.dumps(failure, indent=2))
            if output_file:
                save_json(failure, output_file)
            raise
        finally:
            bars.close()
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except (NotImplementedError, RuntimeError):
                pass

    # -- Presentation -------------------------------------------------------
    if show_ui:
        print_latency_details(result.ping)
        print_speed_result(result.download, "Download Results", "green")
        print_speed_result(result.upload, "Upload Results", "blue")
        print_final_results(result, endpoint.name)
    elif simple:
        print(
            format_text_result(
                ping_ms=result.ping_ms,
                jitter_ms=result.jitter_ms,
                download_mbps=result.download_mbps,
                upload_mbps=result.upload_mbps,
                server_name=endpoint.name,
            )
        )

    result_json = create_result_json(endpoint.to_dict(), settings.to_dict(), result.to_dict())

    if json_output:
        print(json.dumps(result_json, indent=2))

    if output_file:
        save_json(result_json, output_file)
        if not json_output:
            console.print(f"\n[green]Results saved to:[/green] {output_file}")

    return result_json


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="speedmeter -- adaptive multi-stream bandwidth measurement",
    )
    # Output modes
    parser.add_argument("--json", "-j", action="store_true", help="Output results as JSON")
    parser.add_argument("--output", "-o", type=str, metavar="FILE", help="Save results to JSON file")
    parser.add_argument("--simple", "-s", action="store_true", help="Simple output mode (no dashboard)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log engine activity")
    parser.add_argument("--show-config", action="store_true", help="Print effective settings and exit")
    parser.add_argument("--set-config", metavar="KEY=VALUE", help="Save a default option to the config file and exit")

    # Server
    parser.add_argument("--server-url", type=str, metavar="URL", help=f"Base URL of the speed server (default: {DEFAULT_BASE_URL})")

    # Test parameters (unset flags fall back to the config file, then defaults)
    parser.add_argument("--duration", type=float, metavar="SECS", help="Max duration of each transfer phase")
    parser.add_argument("--grace", type=float, metavar="SECS", help="Warm-up excluded from the estimate")
    parser.add_argument("--no-auto-shorten", action="store_true", help="Always run the full duration")
    parser.add_argument("--connections", type=int, metavar="N", help="Number of concurrent streams")
    parser.add_argument("--stagger", type=float, metavar="MS", help="Delay between stream start-ups")
    parser.add_argument("--overhead", type=float, metavar="FACTOR", help="Protocol overhead compensation factor")
    parser.add_argument("--min-chunk", type=int, metavar="BYTES", help="Smallest chunk per request")
    parser.add_argument("--max-chunk", type=int, metavar="BYTES", help="Largest chunk per request")
    parser.add_argument("--ping-count", type=int, metavar="N", help="Number of ping probes")
    parser.add_argument("--top-fraction", type=float, metavar="F", help="Share of best samples averaged")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    _setup_logging(args.verbose)

    if args.set_config:
        _save_option(args.set_config)
        return

    # Validate
    try:
        settings = load_settings(_overrides_from_args(args))
    except ValueError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    if args.show_config:
        console.print(f"[dim]Config file:[/dim] {config_path()}")
        console.print_json(json.dumps(settings.to_dict()))
        return

    endpoint = _endpoint_from_args(args)

    try:
        asyncio.run(
            run_speedtest(
                settings,
                endpoint,
                json_output=args.json,
                output_file=args.output,
                simple=args.simple,
            )
        )
    except AbortedError:
        console.print("\n[yellow]Test cancelled by user[/yellow]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Test cancelled by user[/yellow]")
        sys.exit(1)
    except SpeedTestError as exc:
        phase = getattr(exc.phase, "value", "unknown")
        console.print(f"\n[red]Error in {phase} phase: {exc}[/red]")
        sys.exit(1)
    except Exception as exc:
        console.print(f"\n[red]Error: {exc}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
