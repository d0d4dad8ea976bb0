"""
Command-line walk-forward runner.

Usage:
    python -m api.walk_forward_worker --trades trades.json [--config config.json]
        [--preset moderate] [--auto-config] [--format json|csv] [--output result.json]

The run config is built in layers: --config (or the default config), then
--preset, then --auto-config from the trade history.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import Callable

from pydantic import TypeAdapter, ValidationError

from api.middleware import configure_structured_logging
from config.settings import get_settings
from config.walk_forward_config import Trade, WalkForwardConfig, WalkForwardProgressEvent
from config.walk_forward_presets import WALK_FORWARD_PRESETS
from engine.cancellation import CancellationToken
from engine.errors import WalkForwardCancelledError
from services.logging_service import configure_file_logging
from services.walk_forward_analyzer import WalkForwardAnalyzer
from services.walk_forward_autoconfig import resolve_walk_forward_config
from services.walk_forward_export import export_computation

logger = logging.getLogger("walkforward.worker")

_TRADES_ADAPTER = TypeAdapter(list[Trade])


def _log_progress(event: WalkForwardProgressEvent) -> None:
    logger.info("Walk-forward progress", extra=event.as_log_fields())


def _install_interrupt_handler(token: CancellationToken) -> Callable[[], None]:
    """
    Route Ctrl-C to the token so the run stops at its next cancellation
    check. Returns a callable restoring the previous handler.
    """
    if threading.current_thread() is not threading.main_thread():
        return lambda: None

    def _on_interrupt(_signum, _frame) -> None:
        logger.warning("Interrupt received; cancelling walk-forward run")
        token.cancel("Interrupted")

    previous = signal.signal(signal.SIGINT, _on_interrupt)
    return lambda: signal.signal(signal.SIGINT, previous)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run one walk-forward analysis")
    parser.add_argument("--trades", required=True, help="JSON file with a list of trades")
    parser.add_argument("--config", help="JSON file with the walk-forward config (default config if omitted)")
    parser.add_argument("--preset", choices=sorted(WALK_FORWARD_PRESETS), help="Apply a named preset")
    parser.add_argument(
        "--auto-config",
        action="store_true",
        help="Size windows and trade minimums from the trade frequency",
    )
    parser.add_argument("--format", choices=("json", "csv"), default="json", help="Output format")
    parser.add_argument("--output", help="Write the result here instead of stdout")
    parser.add_argument("--log-dir", help="Also write logs into this directory")
    args = parser.parse_args(argv)

    settings = get_settings()
    if args.log_dir:
        configure_file_logging(args.log_dir)
    configure_structured_logging(settings.log_level)

    try:
        trades = _TRADES_ADAPTER.validate_json(Path(args.trades).read_bytes())
        base = WalkForwardConfig.model_validate_json(Path(args.config).read_bytes()) if args.config else None
    except (OSError, ValidationError) as exc:
        print(f"Invalid input: {exc}", file=sys.stderr)
        return 2

    config, frequency = resolve_walk_forward_config(
        base,
        preset=args.preset,
        trades=trades if args.auto_config else None,
    )
    if args.auto_config and frequency is None:
        logger.warning("Too few trades to auto-configure; running with the unadjusted config")

    token = CancellationToken()
    restore_interrupt_handler = _install_interrupt_handler(token)
    analyzer = WalkForwardAnalyzer.from_settings(settings)
    try:
        computation = analyzer.analyze(
            trades,
            config,
            cancellation_token=token,
            progress_callback=_log_progress,
        )
    except WalkForwardCancelledError:
        logger.warning("Walk-forward run cancelled: %s", token.reason or "cancelled")
        return 130
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2
    except Exception:
        logger.exception("Walk-forward worker crashed")
        return 1
    finally:
        restore_interrupt_handler()

    payload = export_computation(computation, args.format)
    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        logger.info("Walk-forward result written to %s", args.output)
    else:
        sys.stdout.write(payload if payload.endswith("\n") else payload + "\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
