#!/usr/bin/env python3
"""
netmeter -- network speed measurement from the terminal.

Usage::

    python netmeter.py                      # rich progress + result panel
    python netmeter.py --simple             # plain text
    python netmeter.py --json               # JSON to stdout
    python netmeter.py -o result.json       # save to file
    python netmeter.py --csv log.csv        # append CSV row
    python netmeter.py --duration 20        # 20 s per throughput phase
    python netmeter.py --history            # show past results
    python netmeter.py --clear-history      # forget past results

Ctrl-C during a run stops it cooperatively; nothing is saved.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import os
import signal
import sys
from typing import Any, Callable, Dict, Optional

from meter.config import data_dir, load_config, load_test_config
from meter.constants import MAX_DURATION, MAX_PING_COUNT, MIN_DURATION, MIN_PING_COUNT
from meter.errors import ErrorType, SpeedTestError
from meter.history import ResultHistoryStore
from meter.logging_setup import configure_logging
from meter.models import MeasurementRecord
from meter.orchestrator import TestOrchestrator
from meter.retry import RetryController
from meter.storage import JsonFileStore
from ui.dashboard import (
    ProgressDisplay,
    console,
    print_error,
    print_final_results,
    print_header,
    print_history,
)
from ui.output import append_csv, format_text_result, record_to_json, save_json


def _history_store() -> ResultHistoryStore:
    return ResultHistoryStore(JsonFileStore(os.path.join(data_dir(), "storage.json")))


def _interrupt(orchestrator: TestOrchestrator, controller: RetryController) -> Callable[[], None]:
    """Ctrl-C handler: stop the active run and any pending retry."""

    def _handler() -> None:
        controller.cancel()
        orchestrator.stop()

    return _handler


# ---------------------------------------------------------------------------
# Core test runner
# ---------------------------------------------------------------------------

async def run_measurement(
    *,
    overrides: Optional[Dict[str, Any]] = None,
    json_output: bool = False,
    output_file: Optional[str] = None,
    csv_file: Optional[str] = None,
    simple: bool = False,
    retry: bool = True,
    history: Optional[ResultHistoryStore] = None,
) -> MeasurementRecord:
    """Execute one measurement (with automatic retries) and report it."""
    show_ui = not json_output and not simple
    config = load_test_config().merged(overrides)

    progress = ProgressDisplay() if show_ui else None
    orchestrator = TestOrchestrator(
        on_progress=progress,
        history=history if history is not None else _history_store(),
        config=config,
    )

    loop = asyncio.get_running_loop()
    controller = RetryController(orchestrator.start, max_retries=config.retry_attempts if retry else 0)
    try:
        loop.add_signal_handler(signal.SIGINT, _interrupt(orchestrator, controller))
    except (NotImplementedError, RuntimeError):
        pass  # no signal handlers on this platform / thread

    if show_ui:
        controller.on_retry = lambda attempt, delay: console.print(
            f"[yellow]Network unavailable -- retry {attempt}/{controller.max_retries} "
            f"in {delay:.0f}s[/yellow]"
        )
        print_header()
        progress.start()

    try:
        record = await controller.run()
    finally:
        if progress is not None:
            progress.stop()
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass

    if show_ui:
        print_final_results(record)
    elif simple:
        print(format_text_result(record))

    result_json = record_to_json(record)
    if json_output:
        print(json.dumps(result_json, indent=2))

    if output_file:
        save_json(result_json, output_file)
        if not json_output:
            console.print(f"[green]Results saved to:[/green] {output_file}")

    if csv_file:
        append_csv(csv_file, record)
        if not json_output:
            console.print(f"[green]CSV row appended to:[/green] {csv_file}")

    return record


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="netmeter -- latency, jitter, packet loss and throughput",
    )
    # Output modes
    parser.add_argument("--json", "-j", action="store_true", help="Output results as JSON")
    parser.add_argument("--output", "-o", type=str, metavar="FILE", help="Save results to JSON file")
    parser.add_argument("--csv", type=str, metavar="FILE", help="Append results as CSV row")
    parser.add_argument("--simple", "-s", action="store_true", help="Simple output mode (no dashboard)")

    # Test parameters
    parser.add_argument("--duration", type=float, metavar="SECS", help=f"Seconds per throughput phase ({MIN_DURATION}-{MAX_DURATION})")
    parser.add_argument("--ping-count", type=int, metavar="N", help=f"Number of ping probes ({MIN_PING_COUNT}-{MAX_PING_COUNT})")
    parser.add_argument("--ping-url", type=str, metavar="URL", help="Ping endpoint (http(s) or ws(s))")
    parser.add_argument("--download-url", type=str, metavar="URL", help="Download endpoint")
    parser.add_argument("--upload-url", type=str, metavar="URL", help="Upload endpoint")
    parser.add_argument("--timeout", type=int, metavar="MS", help="Per-request timeout in milliseconds")
    parser.add_argument("--no-retry", action="store_true", help="Do not retry when the network is unavailable")

    # History
    parser.add_argument("--history", action="store_true", help="Show past test results and exit")
    parser.add_argument("--clear-history", action="store_true", help="Delete past test results and exit")

    parser.add_argument("--log-level", type=str, metavar="LEVEL", help="Logging level (default from config: WARNING)")
    parser.add_argument("--log-file", action="store_true", help="Also log to ~/.netmeter/logs/netmeter.log")
    return parser


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    mapping = {
        "test_duration_seconds": args.duration,
        "ping_count": args.ping_count,
        "ping_endpoint": args.ping_url,
        "download_endpoint": args.download_url,
        "upload_endpoint": args.upload_url,
        "timeout_ms": args.timeout,
    }
    return {k: v for k, v in mapping.items() if v is not None}


def main(argv: Optional[list] = None) -> None:
    args = build_parser().parse_args(argv)

    level = args.log_level or load_config().get("log_level", "WARNING")
    configure_logging(
        level=level,
        log_dir=os.path.join(data_dir(), "logs") if args.log_file else None,
    )

    # History modes
    if args.history:
        print_history(_history_store().load())
        return
    if args.clear_history:
        _history_store().clear()
        console.print("[green]History cleared.[/green]")
        return

    overrides = _overrides(args)
    try:
        load_test_config().merged(overrides).validate()
    except (TypeError, ValueError) as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    try:
        asyncio.run(
            run_measurement(
                overrides=overrides,
                json_output=args.json,
                output_file=args.output,
                csv_file=args.csv,
                simple=args.simple,
                retry=not args.no_retry,
            )
        )
    except SpeedTestError as exc:
        if exc.type is ErrorType.CANCELLED:
            console.print("\n[yellow]Test cancelled by user[/yellow]")
        elif args.json:
            print(json.dumps({"error": exc.to_dict()}, indent=2))
        else:
            print_error(exc)
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Test cancelled by user[/yellow]")
        sys.exit(1)
    except IOError as exc:
        console.print(f"\n[red]Error: {exc}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
