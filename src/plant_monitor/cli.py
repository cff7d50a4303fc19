"""Command-line interface for plant-monitor"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Any, Optional

from plant_monitor import __version__
from plant_monitor.cache import CacheKind
from plant_monitor.models import TelemetrySample

logger = logging.getLogger(__name__)


def setup_logging(level: str, log_file: Optional[str]) -> None:
    """Configure logging handlers"""
    log_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    # Add file handler if log file is specified and writable
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file))
        except PermissionError:
            print(
                f"Warning: Cannot write to {log_file}, logging to stdout only",
                file=sys.stderr,
            )

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plant-monitor",
        description="Poll oxygen-plant telemetry, alerts and thresholds",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=str,
        help="Path to config file (default: auto-detect)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--api-url",
        type=str,
        help="Backend base URL (overrides config and PLANT_MONITOR_API_URL)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("devices", help="List devices known to the backend")

    watch = commands.add_parser("watch", help="Poll telemetry for a device")
    watch.add_argument("device", help="Device identifier")
    watch.add_argument(
        "--once",
        action="store_true",
        help="Fetch every telemetry kind once and exit",
    )

    threshold = commands.add_parser("threshold", help="Read or update alert thresholds")
    threshold_commands = threshold.add_subparsers(dest="action", required=True)
    get_threshold = threshold_commands.add_parser("get", help="Show a threshold")
    get_threshold.add_argument("device")
    get_threshold.add_argument("metric", help="e.g. temperature, humidity, oilLevel")
    set_threshold = threshold_commands.add_parser("set", help="Update a threshold")
    set_threshold.add_argument("device")
    set_threshold.add_argument("metric")
    set_threshold.add_argument("value", type=float)

    return parser


def format_sample(sample: Optional[TelemetrySample]) -> str:
    if sample is None:
        return "no data"
    return (
        f"temperature={sample.temperature:g} humidity={sample.humidity:g} "
        f"oil_level={sample.oil_level:g} open_alerts={sample.open_alerts}"
    )


def report(kind: CacheKind, device_id: str, data: Any) -> None:
    """Print one polling result"""
    if kind is CacheKind.LATEST:
        print(f"[{device_id}] latest: {format_sample(data)}")
    else:
        print(f"[{device_id}] {kind.value}: {len(data)} samples")


async def run_devices(service: Any) -> int:
    devices = await service.get_device_list()
    if not devices:
        print("No devices found")
        return 1
    for device in devices:
        print(f"{device.device_id}\t{device.name}")
    return 0


async def run_threshold(service: Any, args: argparse.Namespace) -> int:
    if args.action == "get":
        value = await service.get_threshold(args.device, args.metric)
        if value is None:
            print(f"No {args.metric} threshold available for {args.device}")
            return 1
        print(f"{args.device} {args.metric} threshold: {value:g}")
        return 0

    ok = await service.set_threshold(args.device, args.metric, args.value)
    if not ok:
        print(f"Failed to update {args.metric} threshold for {args.device}", file=sys.stderr)
        return 1
    print(f"{args.device} {args.metric} threshold set to {args.value:g}")
    return 0


async def run_snapshot(service: Any, device_id: str) -> int:
    """Fetch every telemetry kind once for a device"""
    service.invalidate(device_id)
    for kind in (CacheKind.LATEST, CacheKind.REALTIME, CacheKind.HISTORICAL):
        report(kind, device_id, await service.get(kind, device_id))
    return 0


async def run_watch(poller: Any, device_id: str, shutdown_event: asyncio.Event) -> int:
    poller.add_listener(report)
    await poller.select_device(device_id)
    await shutdown_event.wait()
    await poller.stop()
    return 0


async def async_main(argv: Optional[list[str]] = None) -> int:
    """Async main entry point"""
    args = build_parser().parse_args(argv)

    from plant_monitor.config import load_config
    from plant_monitor.poller import DevicePoller
    from plant_monitor.telemetry import TelemetryService

    config = load_config(args.config)
    if args.api_url:
        config.api.base_url = args.api_url

    # Setup logging (override with verbose flag if set)
    log_level = "DEBUG" if args.verbose else config.logging.level
    setup_logging(log_level, config.logging.file)

    logger.info("Starting plant-monitor against %s", config.api.base_url)
    service = TelemetryService.create(config.api)

    # Setup signal handlers for graceful shutdown
    shutdown_event = asyncio.Event()

    def signal_handler(sig: signal.Signals) -> None:
        logger.info("Received signal %s, initiating graceful shutdown...", sig.name)
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler, sig)

    try:
        if args.command == "devices":
            return await run_devices(service)
        if args.command == "threshold":
            return await run_threshold(service, args)
        if args.once:
            return await run_snapshot(service, args.device)

        poller = DevicePoller(service, config.polling)
        return await run_watch(poller, args.device, shutdown_event)

    except asyncio.CancelledError:
        logger.info("Main task cancelled")
        return 0
    except Exception as e:
        logger.error("Fatal error: %s", e)
        return 1
    finally:
        await service.close()
        logger.info("Cleanup complete")


def main() -> int:
    """Main entry point - wraps async_main()"""
    return asyncio.run(async_main())


if __name__ == "__main__":
    sys.exit(main())
