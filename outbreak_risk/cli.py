"""
Outbreak Risk Engine - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line entry point.

- Loads configuration from YAML and environment
- Polls an observation file on the refresh interval
- Optionally serves the read API
- Optionally exports the snapshot set as CSV

============================================================
USAGE
============================================================
python -m outbreak_risk.cli --observations regions.json
python -m outbreak_risk.cli --observations regions.csv --single-tick --export-csv out.csv
python -m outbreak_risk.cli --observations regions.json --serve --port 8090

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from aiohttp import web

from .alerting import LoggingAlertSink, TelegramAlertSink
from .api import create_app
from .config import OutbreakRiskConfig, SchedulerConfig
from .reporting import format_fleet_summary, snapshots_to_csv
from .scheduler import RefreshScheduler, create_scheduler
from .sources import FileObservationSource


logger = logging.getLogger(__name__)


# ============================================================
# LOGGING
# ============================================================

def setup_logging(level: str = "INFO", log_format: str = "text") -> logging.Logger:
    """
    Set up process logging.

    Args:
        level: Log level
        log_format: Output format (json or text)

    Returns:
        Package logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("outbreak_risk")


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="outbreak-risk",
        description="Outbreak risk scoring and alerting engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --observations regions.json
  %(prog)s --observations regions.csv --single-tick --export-csv out.csv
  %(prog)s --observations regions.json --serve --port 8090
        """
    )

    # --------------------------------------------------------
    # Input
    # --------------------------------------------------------
    input_group = parser.add_argument_group("Input Options")

    input_group.add_argument(
        "--observations", "-o",
        type=str,
        required=True,
        metavar="PATH",
        help="Observation file (.json or .csv), re-read every tick",
    )

    input_group.add_argument(
        "--config", "-c",
        type=str,
        metavar="PATH",
        help="YAML config file (default: environment variables)",
    )

    # --------------------------------------------------------
    # Execution
    # --------------------------------------------------------
    execution_group = parser.add_argument_group("Execution Options")

    execution_group.add_argument(
        "--interval-ms",
        type=int,
        metavar="MS",
        help="Override the refresh interval in milliseconds",
    )

    execution_group.add_argument(
        "--single-tick",
        action="store_true",
        help="Run one tick, print the summary and exit",
    )

    execution_group.add_argument(
        "--export-csv",
        type=str,
        metavar="PATH",
        help="Write the snapshot set to a CSV file after each tick",
    )

    # --------------------------------------------------------
    # API
    # --------------------------------------------------------
    api_group = parser.add_argument_group("API Options")

    api_group.add_argument(
        "--serve",
        action="store_true",
        help="Serve the read API while the scheduler runs",
    )

    api_group.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="API bind host (default: 127.0.0.1)",
    )

    api_group.add_argument(
        "--port",
        type=int,
        default=8090,
        help="API port (default: 8090)",
    )

    # --------------------------------------------------------
    # Logging
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default="text",
        help="Logging format (default: text)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.

    Returns:
        List of validation errors
    """
    errors = []

    if Path(args.observations).suffix.lower() not in (".json", ".csv"):
        errors.append("--observations must be a .json or .csv file")

    if args.interval_ms is not None and args.interval_ms <= 0:
        errors.append("--interval-ms must be positive")

    if args.config and not Path(args.config).exists():
        errors.append(f"Config file not found: {args.config}")

    if not 0 < args.port < 65536:
        errors.append("--port must be 1-65535")

    return errors


# ============================================================
# CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace) -> OutbreakRiskConfig:
    """
    Build configuration from the YAML file (or environment),
    then apply CLI overrides.
    """
    if args.config:
        config = OutbreakRiskConfig.from_yaml(Path(args.config))
    else:
        config = OutbreakRiskConfig.from_env()

    if args.interval_ms is not None:
        config = OutbreakRiskConfig(
            thresholds=config.thresholds,
            weights=config.weights,
            alerting=config.alerting,
            scheduler=SchedulerConfig(
                refresh_interval_ms=args.interval_ms,
                fetch_timeout_seconds=config.scheduler.fetch_timeout_seconds,
            ),
            telegram=config.telegram,
        )

    return config


def build_scheduler(args: argparse.Namespace, config: OutbreakRiskConfig) -> RefreshScheduler:
    """Wire the scheduler with a file source and the configured sinks."""
    sinks = [LoggingAlertSink()]
    if config.telegram.enabled:
        sinks.append(TelegramAlertSink(config=config.telegram))

    return create_scheduler(
        source=FileObservationSource(args.observations),
        config=config,
        sinks=sinks,
    )


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def _export_loop(scheduler: RefreshScheduler, path: str) -> None:
    """Re-export the CSV whenever a new tick completes."""
    last_tick = 0
    while True:
        result = scheduler.last_result
        if result is not None and result.tick_number != last_tick:
            last_tick = result.tick_number
            if not result.skipped:
                snapshots_to_csv(scheduler.store.snapshots(), path=path)
                logger.debug(f"Exported {result.region_count} regions to {path}")
        await asyncio.sleep(min(1.0, scheduler.interval_seconds))


async def _cancel_task(task: asyncio.Task) -> None:
    """Cancel a helper task and wait until it has finished."""
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


async def _close_sinks(scheduler: RefreshScheduler) -> None:
    for sink in scheduler.dispatcher.sinks:
        if isinstance(sink, TelegramAlertSink):
            await sink.close()


async def async_main(args: argparse.Namespace, config: OutbreakRiskConfig) -> int:
    """
    Async main entry point.

    Returns:
        Exit code
    """
    scheduler = build_scheduler(args, config)

    try:
        if args.single_tick:
            result = await scheduler.run_tick()
            if result.skipped:
                print(f"Tick skipped: {result.skip_reason}", file=sys.stderr)
                return 1
            print(format_fleet_summary(result.summary))
            if args.export_csv:
                snapshots_to_csv(scheduler.store.snapshots(), path=args.export_csv)
            return 0

        runner: Optional[web.AppRunner] = None
        if args.serve:
            runner = web.AppRunner(create_app(scheduler))
            await runner.setup()
            site = web.TCPSite(runner, args.host, args.port)
            await site.start()
            logger.info(f"Read API listening on http://{args.host}:{args.port}")

        export_task = None
        if args.export_csv:
            export_task = asyncio.create_task(_export_loop(scheduler, args.export_csv))

        try:
            await scheduler.run_forever()
        finally:
            if export_task is not None:
                await _cancel_task(export_task)
            if runner is not None:
                await runner.cleanup()
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        await scheduler.stop()
        await _close_sinks(scheduler)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    setup_logging(args.log_level, args.log_format)

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    try:
        return asyncio.run(async_main(args, config))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
