"""Core data structures for the bell schedule sync engine."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum, StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bell_sync.const import (
    BELL_CONTROL_TOPIC,
    BELL_MQTT_HOST,
    BELL_MQTT_PASS,
    BELL_MQTT_PORT,
    BELL_MQTT_TLS,
    BELL_MQTT_TRANSPORT,
    BELL_MQTT_USER,
    BELL_MQTT_WS_PATH,
    BELL_RECONNECT_DELAY,
    BELL_RESYNC_DELAY,
    BELL_STATUS_TOPIC,
    DEFAULT_RECONNECT_DELAY,
)
from bell_sync.exceptions import ValidationError

HOUR_MAX = 23
MINUTE_MAX = 59
_TIME_STRING_RE = re.compile(r"^\s*(\d{1,2}):(\d{1,2})\s*$", re.ASCII)


class ConnectionState(Enum):
    """Connection state enumeration."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class BellState(StrEnum):
    """Manual ring state of the bell."""

    IDLE = "idle"
    RINGING = "ringing"


class PublishOutcome(StrEnum):
    """Result of a best-effort publish."""

    SENT = "sent"
    # Link not connected, nothing was sent
    NOOP = "noop"
    # Broker rejected or dropped the publish
    FAILED = "failed"


class SyncEvent(StrEnum):
    """State-change notifications delivered to subscribers."""

    CONNECTION = "connection"
    SCHEDULES = "schedules"
    BELL = "bell"
    ACK = "ack"


class AckKind(StrEnum):
    """Advisory acknowledgements sent by the device after a write."""

    ADDED = "SCHEDULE_ADDED"
    UPDATED = "SCHEDULE_UPDATED"
    DELETED = "SCHEDULE_DELETED"


@dataclass(frozen=True)
class PublishResult:
    """Outcome of a controller operation that publishes a command."""

    outcome: PublishOutcome
    command: str

    @property
    def sent(self) -> bool:
        return self.outcome is PublishOutcome.SENT

    def __bool__(self) -> bool:
        return self.sent


def check_range(field: str, value: int, minimum: int, maximum: int | None = None) -> int:
    """Validate a single integer parameter, returning it unchanged.

    Raises:
        ValidationError: If the value is not an int or is outside the bounds

    """
    # bool is an int subclass, but True is never a sensible hour
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(field, value, "must be an integer")
    if value < minimum:
        raise ValidationError(field, value, f"must be >= {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(field, value, f"must be <= {maximum}")
    return value


def validate_schedule(hour: int, minute: int, count: int, duration: int) -> tuple[int, int, int, int]:
    """Validate schedule fields before they are sent to the device."""
    return (
        check_range("hour", hour, 0, HOUR_MAX),
        check_range("minute", minute, 0, MINUTE_MAX),
        check_range("count", count, 1),
        check_range("duration", duration, 1),
    )


def parse_time_string(value: str) -> tuple[int, int]:
    """Parse a ``HH:MM`` entry into ``(hour, minute)``.

    Raises:
        ValidationError: If the string is not ``H:M`` or is out of range

    """
    match = _TIME_STRING_RE.match(value)
    if not match:
        raise ValidationError("time", value, "expected HH:MM")
    hour = check_range("hour", int(match.group(1)), 0, HOUR_MAX)
    minute = check_range("minute", int(match.group(2)), 0, MINUTE_MAX)
    return hour, minute


class ScheduleEntry(BaseModel):
    """One timed bell-ring configuration, identified by a device-assigned index."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    hour: int = Field(ge=0, le=HOUR_MAX)
    minute: int = Field(ge=0, le=MINUTE_MAX)
    count: int = Field(ge=1)
    duration: int = Field(ge=1, description="Seconds per ring")

    def time_label(self, fmt: Literal["24h", "12h"] = "24h") -> str:
        """Format the ring time as ``HH:MM`` or ``h:MM AM/PM``."""
        if fmt == "12h":
            period = "PM" if self.hour >= 12 else "AM"
            hour12 = self.hour % 12 or 12
            return f"{hour12}:{self.minute:02d} {period}"
        return f"{self.hour:02d}:{self.minute:02d}"

    def as_dict(self) -> dict[str, int]:
        return self.model_dump()


@dataclass(frozen=True)
class ListEntryStatus:
    """Decoded ``LIST:RESP`` message."""

    entry: ScheduleEntry


@dataclass(frozen=True)
class BellStatus:
    """Decoded ringing / stopped message."""

    state: BellState
    raw: str


@dataclass(frozen=True)
class AckStatus:
    """Decoded advisory acknowledgement."""

    kind: AckKind


StatusMessage = ListEntryStatus | BellStatus | AckStatus


class BellSyncConfig(BaseModel):
    """Validated runtime configuration.

    Built from environment variables by ``from_env()``; a YAML file may
    override individual keys.
    """

    model_config = ConfigDict(extra="forbid")

    mqtt_host: str = BELL_MQTT_HOST
    mqtt_port: int = Field(default=BELL_MQTT_PORT, gt=0, lt=65536)
    mqtt_transport: Literal["tcp", "websockets"] = "websockets"
    mqtt_ws_path: str = BELL_MQTT_WS_PATH
    mqtt_tls: bool = BELL_MQTT_TLS
    mqtt_user: str | None = BELL_MQTT_USER
    mqtt_pass: str | None = BELL_MQTT_PASS
    control_topic: str = BELL_CONTROL_TOPIC
    status_topic: str = BELL_STATUS_TOPIC
    reconnect_delay: float = BELL_RECONNECT_DELAY
    resync_delay: float = Field(default=BELL_RESYNC_DELAY, ge=0)

    @field_validator("reconnect_delay")
    @classmethod
    def _positive_reconnect_delay(cls, value: float) -> float:
        # 0 would spin against a dead broker
        if value <= 0:
            return DEFAULT_RECONNECT_DELAY
        return value

    @classmethod
    def from_env(cls, **overrides: Any) -> BellSyncConfig:
        """Build config from the environment-derived constants, then apply overrides."""
        values: dict[str, Any] = {}
        if BELL_MQTT_TRANSPORT in ("tcp", "websockets"):
            values["mqtt_transport"] = BELL_MQTT_TRANSPORT
        values.update(overrides)
        return cls(**values)
