"""In-memory cache of the device's schedule entries.

The device is the source of truth. The store holds the last entries it
reported plus the client's pending local intent (optimistic deletes), and is
rebuilt from scratch at the start of every refresh cycle. There is no
end-of-list marker on the wire, so the content is "best knowledge so far"
rather than a committed snapshot; ``version`` and ``last_updated`` let
consumers notice it changing.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from bell_sync.logging_abstraction import get_logger
from bell_sync.structs import ScheduleEntry

logger = get_logger(__name__)


class ScheduleStore:
    """Entries keyed by device-assigned index, enumerated in ascending index order."""

    lp: str = "store:"

    def __init__(self) -> None:
        self._entries: dict[int, ScheduleEntry] = {}
        self._pending_deletes: set[int] = set()
        self.version: int = 0
        self.last_updated: datetime | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, index: object) -> bool:
        return index in self._entries

    def _touch(self) -> None:
        self.version += 1
        self.last_updated = datetime.now(UTC)

    def clear(self) -> None:
        """Start a new refresh cycle: drop all entries and all pending intent."""
        self._entries.clear()
        self._pending_deletes.clear()
        self._touch()

    def restore(self, entries: Iterable[ScheduleEntry], pending_deletes: Iterable[int] = ()) -> None:
        """Put back a snapshot taken before a refresh that never reached the device."""
        self._entries = {entry.index: entry for entry in entries}
        self._pending_deletes = set(pending_deletes)
        self._touch()

    def upsert(self, entry: ScheduleEntry) -> bool:
        """Insert or overwrite by index; the last write for an index wins.

        Returns:
            False if the entry was suppressed by a pending local delete or was
            identical to what is already stored, True otherwise

        """
        lp = f"{self.lp}upsert:"
        if entry.index in self._pending_deletes:
            # Late response from before the delete; the next refresh settles it
            logger.debug("%s index %s has a pending delete, ignoring", lp, entry.index)
            return False
        if self._entries.get(entry.index) == entry:
            return False
        self._entries[entry.index] = entry
        self._touch()
        return True

    def remove(self, index: int) -> bool:
        """Optimistically remove an entry and remember the delete until the next refresh.

        Returns:
            True if an entry was present

        """
        self._pending_deletes.add(index)
        existed = self._entries.pop(index, None) is not None
        self._touch()
        return existed

    def list(self) -> list[ScheduleEntry]:
        """Entries sorted ascending by index."""
        return [self._entries[index] for index in sorted(self._entries)]

    def get(self, index: int) -> ScheduleEntry | None:
        return self._entries.get(index)

    @property
    def pending_deletes(self) -> frozenset[int]:
        return frozenset(self._pending_deletes)
