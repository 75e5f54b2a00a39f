"""Bell control/status codec.

Control topic (client -> device), colon-delimited ASCII:
``LIST``, ``ADD:h:m:c:d``, ``UPDATE:idx:h:m:c:d``, ``DEL:idx``, ``ON``, ``OFF``,
``RING:seconds``.

Status topic (device -> client): ``LIST:RESP:idx:h:m:c:d`` (one per entry, no
terminator), ``RINGING``/``BELL_ON``, ``STOPPED``/``BELL_OFF`` and the advisory
``SCHEDULE_ADDED``/``SCHEDULE_UPDATED``/``SCHEDULE_DELETED``.
"""

from __future__ import annotations

import re
from enum import StrEnum

import pydantic

from bell_sync.exceptions import ProtocolDecodeError
from bell_sync.logging_abstraction import get_logger
from bell_sync.structs import (
    AckKind,
    AckStatus,
    BellState,
    BellStatus,
    ListEntryStatus,
    ScheduleEntry,
    StatusMessage,
    check_range,
    validate_schedule,
)

FIELD_SEPARATOR = ":"
LIST_RESP_PREFIX = "LIST:RESP:"
LIST_RESP_FIELD_COUNT = 7  # LIST, RESP, index, hour, minute, count, duration
# At most 9 digits, so int() stays well clear of the interpreter's digit limit
_UINT_RE = re.compile(r"^[0-9]{1,9}$")
# Firmware pads some payloads with CR/LF or a trailing NUL
_PAYLOAD_STRIP = " \t\r\n\x00"

_BELL_MESSAGES: dict[str, BellState] = {
    "RINGING": BellState.RINGING,
    "BELL_ON": BellState.RINGING,
    "STOPPED": BellState.IDLE,
    "BELL_OFF": BellState.IDLE,
}
_ACK_MESSAGES: dict[str, AckKind] = {kind.value: kind for kind in AckKind}

logger = get_logger(__name__)


class Command(StrEnum):
    """Control-topic command verbs."""

    LIST = "LIST"
    ADD = "ADD"
    UPDATE = "UPDATE"
    DELETE = "DEL"
    ON = "ON"
    OFF = "OFF"
    RING = "RING"


def _join(*parts: object) -> str:
    return FIELD_SEPARATOR.join(str(part) for part in parts)


def _parse_uint(text: str, payload: str) -> int:
    # int() would accept "+5", " 5" and "٥"; the device only ever sends ASCII digits
    if not _UINT_RE.match(text):
        raise ProtocolDecodeError("bad_number", payload)
    return int(text)


class BellProtocol:
    """Bell protocol encoder/decoder.

    All methods are stateless. Encoders validate their arguments and raise
    ``ValidationError`` before producing a payload, so nothing out of range
    ever reaches the device.
    """

    @staticmethod
    def encode_list() -> str:
        return Command.LIST.value

    @staticmethod
    def encode_add(hour: int, minute: int, count: int, duration: int) -> str:
        """Encode ``ADD:<hour>:<minute>:<count>:<duration>``.

        The device assigns the index; nothing in the reply carries it.

        Example:
            >>> BellProtocol.encode_add(9, 0, 2, 5)
            'ADD:9:0:2:5'

        """
        return _join(Command.ADD, *validate_schedule(hour, minute, count, duration))

    @staticmethod
    def encode_update(index: int, hour: int, minute: int, count: int, duration: int) -> str:
        """Encode ``UPDATE:<index>:<hour>:<minute>:<count>:<duration>``.

        Example:
            >>> BellProtocol.encode_update(3, 13, 45, 1, 10)
            'UPDATE:3:13:45:1:10'

        """
        index = check_range("index", index, 0)
        return _join(Command.UPDATE, index, *validate_schedule(hour, minute, count, duration))

    @staticmethod
    def encode_delete(index: int) -> str:
        return _join(Command.DELETE, check_range("index", index, 0))

    @staticmethod
    def encode_ring(on: bool) -> str:
        return Command.ON.value if on else Command.OFF.value

    @staticmethod
    def encode_ring_for(seconds: int) -> str:
        return _join(Command.RING, check_range("seconds", seconds, 1))

    @staticmethod
    def command_verb(command: str) -> str:
        """Return the verb of an encoded command (``"ADD:9:0:2:5"`` -> ``"ADD"``)."""
        return command.split(FIELD_SEPARATOR, 1)[0]

    @staticmethod
    def decode_status(payload: str | bytes) -> StatusMessage:
        """Decode one status-topic payload.

        Args:
            payload: Raw payload as received from the broker

        Returns:
            ListEntryStatus, BellStatus or AckStatus

        Raises:
            ProtocolDecodeError: For unknown messages, wrong field counts,
                non-numeric or out-of-range fields, or undecodable bytes

        """
        if isinstance(payload, bytes | bytearray):
            try:
                payload = bytes(payload).decode("ascii")
            except UnicodeDecodeError as exc:
                raise ProtocolDecodeError("bad_encoding", repr(bytes(payload))) from exc

        text = payload.strip(_PAYLOAD_STRIP)
        if not text:
            raise ProtocolDecodeError("empty", payload)

        if text.startswith(LIST_RESP_PREFIX):
            return BellProtocol._decode_list_entry(text)

        bell_state = _BELL_MESSAGES.get(text)
        if bell_state is not None:
            return BellStatus(state=bell_state, raw=text)

        ack_kind = _ACK_MESSAGES.get(text)
        if ack_kind is not None:
            return AckStatus(kind=ack_kind)

        raise ProtocolDecodeError("unknown_message", text)

    @staticmethod
    def _decode_list_entry(text: str) -> ListEntryStatus:
        parts = text.split(FIELD_SEPARATOR)
        if len(parts) != LIST_RESP_FIELD_COUNT:
            raise ProtocolDecodeError("bad_field_count", text)

        index, hour, minute, count, duration = (_parse_uint(part, text) for part in parts[2:])
        try:
            entry = ScheduleEntry(index=index, hour=hour, minute=minute, count=count, duration=duration)
        except pydantic.ValidationError as exc:
            raise ProtocolDecodeError("out_of_range", text) from exc
        return ListEntryStatus(entry=entry)


def parse_status(payload: str | bytes) -> StatusMessage | None:
    """Decode a status payload, returning None instead of raising."""
    try:
        return BellProtocol.decode_status(payload)
    except ProtocolDecodeError as exc:
        logger.debug(
            "Discarding status message: %s",
            exc.reason,
            extra={"payload": exc.payload_preview},
        )
        return None
