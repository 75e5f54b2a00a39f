"""``bell-sync`` command line client.

A thin collaborator over ``SyncController``: connect, run one operation,
print what the device reports, exit.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any

import uvloop
import yaml

from bell_sync.const import BELL_METRICS_PORT, BELL_SYNC_VERSION, LOG_FORMATTER
from bell_sync.controller import SyncController
from bell_sync.correlation import ensure_correlation_id
from bell_sync.exceptions import BellConnectionError, ValidationError
from bell_sync.logging_abstraction import configure_logging, get_logger
from bell_sync.metrics import start_metrics_server
from bell_sync.protocol import BellProtocol
from bell_sync.structs import BellSyncConfig, ScheduleEntry, SyncEvent, parse_time_string

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_NOT_SENT = 1
EXIT_USAGE = 2


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="bell-sync", description="Bell schedule sync client")
    _ = parser.add_argument("--version", action="version", version=f"%(prog)s {BELL_SYNC_VERSION}")
    _ = parser.add_argument("--config", type=Path, default=None, help="YAML file overriding BELL_* settings")
    _ = parser.add_argument("-D", "--debug", action="store_true", help="Enable debug logging")
    _ = parser.add_argument("--timeout", type=float, default=15.0, help="Seconds to wait for the broker")
    _ = parser.add_argument(
        "--settle",
        type=float,
        default=2.0,
        help="Seconds to collect LIST responses before printing",
    )
    _ = parser.add_argument("--time-format", choices=("24h", "12h"), default="24h")

    sub = parser.add_subparsers(dest="action", required=True)
    _ = sub.add_parser("list", help="Print the device's schedule")

    add = sub.add_parser("add", help="Add a schedule entry")
    for name in ("hour", "minute", "count", "duration"):
        _ = add.add_argument(name, type=int)

    add_at = sub.add_parser("add-at", help="Add a schedule entry at HH:MM")
    _ = add_at.add_argument("time", help="Ring time as HH:MM")
    for name in ("count", "duration"):
        _ = add_at.add_argument(name, type=int)

    update = sub.add_parser("update", help="Replace the entry at INDEX")
    for name in ("index", "hour", "minute", "count", "duration"):
        _ = update.add_argument(name, type=int)

    delete = sub.add_parser("delete", help="Delete the entry at INDEX")
    _ = delete.add_argument("index", type=int)

    ring = sub.add_parser("ring", help="Manual ring on/off")
    _ = ring.add_argument("switch", choices=("on", "off"))

    ring_for = sub.add_parser("ring-for", help="Ring for a number of seconds")
    _ = ring_for.add_argument("seconds", type=int)

    _ = sub.add_parser("watch", help="Stream schedule and bell changes until interrupted")
    return parser.parse_args(argv)


def load_config(config_file: Path | None) -> BellSyncConfig:
    """Build config from the environment, overridden by an optional YAML mapping.

    Raises:
        OSError: If the file cannot be read
        yaml.YAMLError: If the file is not valid YAML
        ValueError: If the YAML is not a mapping or holds invalid/unknown keys

    """
    if config_file is None:
        return BellSyncConfig.from_env()
    logger.debug("Parsing config file: %s", config_file)
    with config_file.expanduser().open() as f:
        data: Any = yaml.safe_load(f)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"{config_file}: expected a mapping of settings"
        raise ValueError(msg)
    return BellSyncConfig.from_env(**data)


def validate_action(args: argparse.Namespace) -> None:
    """Encode the requested command once so bad arguments fail before connecting.

    For ``add-at`` this also resolves ``time`` into ``hour`` and ``minute``.
    """
    if args.action == "add-at":
        args.hour, args.minute = parse_time_string(args.time)
    if args.action in ("add", "add-at"):
        _ = BellProtocol.encode_add(args.hour, args.minute, args.count, args.duration)
    elif args.action == "update":
        _ = BellProtocol.encode_update(args.index, args.hour, args.minute, args.count, args.duration)
    elif args.action == "delete":
        _ = BellProtocol.encode_delete(args.index)
    elif args.action == "ring-for":
        _ = BellProtocol.encode_ring_for(args.seconds)


def format_entry(entry: ScheduleEntry, time_format: str = "24h") -> str:
    rings = "ring" if entry.count == 1 else "rings"
    return f"#{entry.index:<3} {entry.time_label(time_format)}  {entry.count} {rings} x {entry.duration}s"  # type: ignore[arg-type]


def print_schedule(controller: SyncController, time_format: str) -> None:
    entries = controller.schedule_list()
    if not entries:
        print("(no schedules reported)")
        return
    for entry in entries:
        print(format_entry(entry, time_format))


async def _watch(controller: SyncController, time_format: str) -> int:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    def _on_event(event: SyncEvent) -> None:
        if event is SyncEvent.SCHEDULES:
            print(f"-- schedules (v{controller.schedule_version})")
            print_schedule(controller, time_format)
        elif event is SyncEvent.BELL:
            print(f"-- bell {controller.bell_state().value}")
        elif event is SyncEvent.CONNECTION:
            print(f"-- broker {controller.connection_state().value}")

    unsubscribe = controller.subscribe(_on_event)
    try:
        _ = await stop.wait()
    finally:
        unsubscribe()
    return EXIT_OK


async def run(args: argparse.Namespace, config: BellSyncConfig) -> int:
    # One id for the whole CLI session; every command inside inherits it
    session_id = ensure_correlation_id()
    logger.debug("bell-sync session %s", session_id)
    controller = SyncController.from_config(config)
    await controller.start()
    try:
        await controller.wait_connected(args.timeout)
        if args.action == "watch":
            return await _watch(controller, args.time_format)

        result = None
        if args.action in ("add", "add-at"):
            result = await controller.add_schedule(args.hour, args.minute, args.count, args.duration)
        elif args.action == "update":
            result = await controller.update_schedule(args.index, args.hour, args.minute, args.count, args.duration)
        elif args.action == "delete":
            result = await controller.delete_schedule(args.index)
        elif args.action == "ring":
            result = await controller.ring_manual(args.switch == "on")
        elif args.action == "ring-for":
            result = await controller.ring_for(args.seconds)

        if result is not None and not result:
            logger.error("%s was not sent (%s)", result.command, result.outcome.value)
            return EXIT_NOT_SENT
        if args.action in ("ring", "ring-for"):
            print(f"bell {controller.bell_state().value}")
            return EXIT_OK

        # Connecting already issued LIST; writes schedule another one after resync_delay
        settle = args.settle + (config.resync_delay if result else 0.0)
        await asyncio.sleep(settle)
        print_schedule(controller, args.time_format)
        return EXIT_OK
    except BellConnectionError as exc:
        logger.error("Could not reach broker %s:%s: %s", config.mqtt_host, config.mqtt_port, exc.reason)
        return EXIT_NOT_SENT
    finally:
        await controller.stop()


def main(argv: list[str] | None = None) -> int:
    args = parse_cli(argv)
    _ = configure_logging(debug=True if args.debug else None)

    # aiomqtt logs every reconnect at WARNING through "mqtt"; keep it terse
    mqtt_logger = logging.getLogger("mqtt")
    mqtt_logger.setLevel(logging.ERROR)
    mqtt_logger.propagate = False
    if not mqtt_logger.handlers:
        mqtt_handler = logging.StreamHandler(sys.stderr)
        mqtt_handler.setFormatter(LOG_FORMATTER)
        mqtt_logger.addHandler(mqtt_handler)

    try:
        config = load_config(args.config)
    except (OSError, yaml.YAMLError, ValueError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return EXIT_USAGE

    try:
        validate_action(args)
    except ValidationError as exc:
        logger.error("%s", exc)
        return EXIT_USAGE

    if BELL_METRICS_PORT:
        _ = start_metrics_server(BELL_METRICS_PORT)
        logger.info("Prometheus metrics on port %s", BELL_METRICS_PORT)

    return uvloop.run(run(args, config))


if __name__ == "__main__":
    sys.exit(main())
