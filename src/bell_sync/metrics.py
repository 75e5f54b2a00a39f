"""Prometheus metrics for the bell sync engine."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    start_http_server,
)

from bell_sync.structs import ConnectionState

bell_sync_commands_total: Final = Counter(  # type: ignore[assignment]
    "bell_sync_commands_total",
    "Commands handed to the transport",
    ["command", "outcome"],
)

bell_sync_status_total: Final = Counter(  # type: ignore[assignment]
    "bell_sync_status_total",
    "Status messages decoded",
    ["kind"],
)

bell_sync_decode_errors_total: Final = Counter(  # type: ignore[assignment]
    "bell_sync_decode_errors_total",
    "Status messages discarded as undecodable",
    ["reason"],
)

bell_sync_reconnect_total: Final = Counter(  # type: ignore[assignment]
    "bell_sync_reconnect_total",
    "Broker reconnect attempts",
)

bell_sync_connection_state: Final = Gauge(  # type: ignore[assignment]
    "bell_sync_connection_state",
    "Current broker connection state (1 = active state)",
    ["state"],
)

bell_sync_schedule_entries: Final = Gauge(  # type: ignore[assignment]
    "bell_sync_schedule_entries",
    "Entries currently held in the schedule store",
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int) -> bool:
    """Start the Prometheus HTTP exporter once; returns True if this call started it."""
    with _server_lock:
        if _server_state["started"]:
            return False
        start_http_server(port)  # type: ignore[no-untyped-call]
        _server_state["started"] = True
        return True


def record_command(command: str, outcome: str) -> None:
    """Record a command publish attempt. ``command`` is the verb only (e.g. ``ADD``)."""
    bell_sync_commands_total.labels(command=command, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_status(kind: str) -> None:
    bell_sync_status_total.labels(kind=kind).inc()  # type: ignore[no-untyped-call]


def record_decode_error(reason: str) -> None:
    bell_sync_decode_errors_total.labels(reason=reason).inc()  # type: ignore[no-untyped-call]


def record_reconnect() -> None:
    bell_sync_reconnect_total.inc()  # type: ignore[no-untyped-call]


def record_connection_state(state: ConnectionState) -> None:
    """Set the one-hot connection state gauge."""
    for candidate in ConnectionState:
        value = 1 if candidate is state else 0
        bell_sync_connection_state.labels(state=candidate.value).set(value)  # type: ignore[no-untyped-call]


def record_schedule_entries(count: int) -> None:
    bell_sync_schedule_entries.set(count)  # type: ignore[no-untyped-call]
