"""Exception hierarchy for the bell schedule sync engine.

Only ``ValidationError`` ever reaches a caller of the controller's publish
operations. Decode errors are swallowed at the message boundary and
connection errors surface as state changes instead of raises.
"""

from __future__ import annotations

# Keep tracebacks and logs short when a device sends garbage
PAYLOAD_PREVIEW_LENGTH = 64


class BellSyncError(Exception):
    """Base exception for all bell sync errors."""


class BellConnectionError(BellSyncError):
    """Broker unreachable or link dropped.

    Raised only when a caller explicitly waits for the link (e.g. the CLI);
    publish paths report a disconnected link as a ``PublishOutcome.NOOP``.

    Attributes:
        reason: Specific failure reason
        state: Connection state value when the error occurred

    """

    def __init__(self, reason: str, state: str = "unknown") -> None:
        """Initialize connection error with reason and state."""
        self.reason: str = reason
        self.state: str = state
        super().__init__(f"Connection error: {reason} (state: {state})")


class ValidationError(BellSyncError, ValueError):
    """Schedule or ring parameters are out of bounds.

    Raised synchronously, before anything is published.

    Attributes:
        field: Name of the offending parameter
        value: The rejected value

    """

    def __init__(self, field: str, value: object, reason: str) -> None:
        """Initialize validation error for a single field."""
        self.field: str = field
        self.value: object = value
        self.reason: str = reason
        super().__init__(f"Invalid {field}={value!r}: {reason}")


class ProtocolDecodeError(BellSyncError):
    """Status message cannot be decoded.

    Attributes:
        reason: Specific failure reason (e.g. "unknown_message", "bad_number")
        payload_preview: Leading part of the offending payload

    """

    def __init__(self, reason: str, payload: str = "") -> None:
        """Initialize decode error with reason and payload."""
        self.reason: str = reason
        self.payload_preview: str = payload[:PAYLOAD_PREVIEW_LENGTH] if payload else ""
        super().__init__(f"Status decode failed: {reason}")
