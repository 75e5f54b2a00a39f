"""Manual ring state tracking."""

from __future__ import annotations

from bell_sync.logging_abstraction import get_logger
from bell_sync.structs import BellState, BellStatus

logger = get_logger(__name__)


class BellStateMachine:
    """Two-state (idle/ringing) view of the bell.

    Local writes are optimistic and applied immediately; any later status
    message from the device overrides them. Timed rings are not tracked to
    completion here, the device reports ``STOPPED`` when it is done.
    """

    lp: str = "bell:"

    def __init__(self) -> None:
        self.state: BellState = BellState.IDLE

    @property
    def ringing(self) -> bool:
        return self.state is BellState.RINGING

    def _set(self, state: BellState, source: str) -> bool:
        if state is self.state:
            return False
        logger.debug("%s %s -> %s (%s)", self.lp, self.state.value, state.value, source)
        self.state = state
        return True

    def apply_status(self, status: BellStatus) -> bool:
        """Apply an inbound status message. Returns True if the state changed."""
        return self._set(status.state, f"device:{status.raw}")

    def set_optimistic(self, on: bool) -> bool:
        """Apply a local manual ring on/off. Returns True if the state changed."""
        return self._set(BellState.RINGING if on else BellState.IDLE, "local")
