"""Sync controller: the collaborator-facing API of the engine.

Reads flow device -> status topic -> codec -> store/bell -> listeners.
Writes flow caller -> controller -> codec -> control topic -> device, and
only come back through a later ``LIST`` refresh: ADD and UPDATE carry no
acknowledgement with an index, so each write schedules a delayed refresh.

Everything runs on one event loop. Inbound messages are handled
synchronously in arrival order, so no locking is needed around the store.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from datetime import datetime

from bell_sync.bell import BellStateMachine
from bell_sync.const import BELL_RESYNC_DELAY
from bell_sync.correlation import command_context
from bell_sync.exceptions import BellConnectionError, ProtocolDecodeError
from bell_sync.logging_abstraction import get_logger
from bell_sync.metrics import (
    record_command,
    record_decode_error,
    record_schedule_entries,
    record_status,
)
from bell_sync.protocol import BellProtocol
from bell_sync.store import ScheduleStore
from bell_sync.structs import (
    AckKind,
    AckStatus,
    BellState,
    BellStatus,
    BellSyncConfig,
    ConnectionState,
    ListEntryStatus,
    PublishOutcome,
    PublishResult,
    ScheduleEntry,
    SyncEvent,
)
from bell_sync.transport import MQTTTransport, Transport

logger = get_logger(__name__)

Listener = Callable[[SyncEvent], None]


class SyncController:
    """Keeps a local view of the bell's schedule consistent with the device.

    Publish operations never raise for link problems; they return a
    ``PublishResult`` whose outcome is NOOP when the broker is not connected.
    Parameter problems raise ``ValidationError`` before anything is sent.
    """

    lp: str = "sync:"

    def __init__(
        self,
        transport: Transport,
        store: ScheduleStore | None = None,
        bell: BellStateMachine | None = None,
        resync_delay: float = BELL_RESYNC_DELAY,
        refresh_on_connect: bool = True,
    ) -> None:
        self.transport: Transport = transport
        self.store: ScheduleStore = store or ScheduleStore()
        self.bell: BellStateMachine = bell or BellStateMachine()
        self.resync_delay: float = resync_delay
        self.refresh_on_connect: bool = refresh_on_connect
        self.refresh_id: str | None = None
        self.last_ack: AckKind | None = None
        self._listeners: list[Listener] = []
        self._resync_handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[PublishResult]] = set()
        self._connected_event: asyncio.Event = asyncio.Event()

    @classmethod
    def from_config(cls, config: BellSyncConfig) -> SyncController:
        """Build a controller wired to an MQTT transport."""
        return cls(MQTTTransport(config), resync_delay=config.resync_delay)

    # -- state accessors ----------------------------------------------------

    def connection_state(self) -> ConnectionState:
        return self.transport.state

    def schedule_list(self) -> list[ScheduleEntry]:
        return self.store.list()

    def bell_state(self) -> BellState:
        return self.bell.state

    @property
    def schedule_version(self) -> int:
        return self.store.version

    @property
    def last_updated(self) -> datetime | None:
        return self.store.last_updated

    # -- notifications ------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a state-change listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, event: SyncEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("%s listener %r raised on %s", self.lp, listener, event.value)

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Start the transport; returns without waiting for the broker."""
        await self.transport.connect(self.handle_message, self.handle_connection_change)

    async def stop(self) -> None:
        """Cancel pending work and release the transport."""
        self.cancel_pending_resync()
        for task in list(self._tasks):
            _ = task.cancel()
        if self._tasks:
            _ = await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.transport.disconnect()

    async def wait_connected(self, timeout: float) -> None:
        """Wait until the broker link is up.

        Raises:
            BellConnectionError: If not connected within ``timeout`` seconds

        """
        if self.connection_state() is ConnectionState.CONNECTED:
            return
        try:
            _ = await asyncio.wait_for(self._connected_event.wait(), timeout)
        except TimeoutError as exc:
            raise BellConnectionError(
                f"broker not reachable within {timeout}s",
                state=self.connection_state().value,
            ) from exc

    # -- inbound --------------------------------------------------------------

    def handle_connection_change(self, state: ConnectionState) -> None:
        lp = f"{self.lp}conn:"
        logger.info("%s broker link %s", lp, state.value)
        if state is ConnectionState.CONNECTED:
            self._connected_event.set()
            if self.refresh_on_connect:
                self._spawn(self.request_list())
        else:
            self._connected_event.clear()
        self._notify(SyncEvent.CONNECTION)

    def handle_message(self, topic: str, payload: str | bytes) -> None:
        """Fold one status-topic message into local state. Never raises."""
        lp = f"{self.lp}status:"
        if topic != self.transport.status_topic:
            logger.debug("%s ignoring message on %s", lp, topic)
            return
        try:
            status = BellProtocol.decode_status(payload)
        except ProtocolDecodeError as exc:
            record_decode_error(exc.reason)
            logger.debug("%s discarded (%s): %r", lp, exc.reason, exc.payload_preview)
            return

        if isinstance(status, ListEntryStatus):
            record_status("list_entry")
            if self.store.upsert(status.entry):
                logger.debug("%s schedule entry", lp, extra=status.entry.as_dict())
                record_schedule_entries(len(self.store))
                self._notify(SyncEvent.SCHEDULES)
        elif isinstance(status, BellStatus):
            record_status("bell")
            if self.bell.apply_status(status):
                self._notify(SyncEvent.BELL)
        elif isinstance(status, AckStatus):
            # Advisory only: carries no index, the scheduled refresh does the real work
            record_status("ack")
            logger.debug("%s device acknowledged %s", lp, status.kind.value)
            self.last_ack = status.kind
            self._notify(SyncEvent.ACK)

    # -- outbound -------------------------------------------------------------

    async def _publish(self, command: str) -> PublishResult:
        lp = f"{self.lp}publish:"
        outcome = await self.transport.publish(self.transport.control_topic, command)
        record_command(BellProtocol.command_verb(command), outcome.value)
        if outcome is PublishOutcome.NOOP:
            logger.warning("%s not connected (%s), %s was not sent", lp, self.connection_state().value, command)
        elif outcome is PublishOutcome.FAILED:
            logger.warning("%s broker rejected %s", lp, command)
        else:
            logger.info("%s sent %s", lp, command)
        return PublishResult(outcome=outcome, command=command)

    def _noop(self, command: str) -> PublishResult:
        lp = f"{self.lp}publish:"
        record_command(BellProtocol.command_verb(command), PublishOutcome.NOOP.value)
        logger.warning("%s not connected (%s), %s was not sent", lp, self.connection_state().value, command)
        return PublishResult(outcome=PublishOutcome.NOOP, command=command)

    async def request_list(self) -> PublishResult:
        """Start a refresh cycle: clear the store and ask the device for its entries.

        Any ``LIST:RESP`` arriving afterwards is folded in. There is no end
        marker, so the refresh never "completes"; read the store whenever.
        """
        command = BellProtocol.encode_list()
        with command_context() as corr_id:
            if self.connection_state() is not ConnectionState.CONNECTED:
                return self._noop(command)
            self.refresh_id = corr_id
            # Cleared before publishing so no response can land ahead of the clear
            previous = self.store.list()
            pending = self.store.pending_deletes
            self.store.clear()
            record_schedule_entries(0)
            self._notify(SyncEvent.SCHEDULES)
            result = await self._publish(command)
            if not result:
                # Nothing in flight to rebuild the list, keep the last known entries
                self.store.restore(previous, pending)
                record_schedule_entries(len(self.store))
                self._notify(SyncEvent.SCHEDULES)
            return result

    async def add_schedule(self, hour: int, minute: int, count: int, duration: int) -> PublishResult:
        """Ask the device to create an entry; it shows up after the delayed refresh."""
        command = BellProtocol.encode_add(hour, minute, count, duration)
        with command_context():
            result = await self._publish(command)
            if result:
                self.schedule_resync()
            return result

    async def update_schedule(self, index: int, hour: int, minute: int, count: int, duration: int) -> PublishResult:
        command = BellProtocol.encode_update(index, hour, minute, count, duration)
        with command_context():
            result = await self._publish(command)
            if result:
                self.schedule_resync()
            return result

    async def delete_schedule(self, index: int) -> PublishResult:
        """Delete an entry, removing it locally right away without waiting for the device."""
        command = BellProtocol.encode_delete(index)
        with command_context():
            result = await self._publish(command)
            if result:
                _ = self.store.remove(index)
                record_schedule_entries(len(self.store))
                self._notify(SyncEvent.SCHEDULES)
                self.schedule_resync()
            return result

    async def ring_manual(self, on: bool) -> PublishResult:
        command = BellProtocol.encode_ring(on)
        with command_context():
            result = await self._publish(command)
            if result and self.bell.set_optimistic(on):
                self._notify(SyncEvent.BELL)
            return result

    async def ring_for(self, seconds: int) -> PublishResult:
        """Ring for a fixed time; the device reports when it stops."""
        command = BellProtocol.encode_ring_for(seconds)
        with command_context():
            result = await self._publish(command)
            if result and self.bell.set_optimistic(True):
                self._notify(SyncEvent.BELL)
            return result

    # -- delayed refresh ------------------------------------------------------

    def schedule_resync(self, delay: float | None = None) -> None:
        """Schedule a ``request_list()``; a newer call replaces a pending one."""
        self.cancel_pending_resync()
        loop = asyncio.get_running_loop()
        self._resync_handle = loop.call_later(
            self.resync_delay if delay is None else delay,
            self._fire_resync,
        )

    def cancel_pending_resync(self) -> bool:
        """Cancel a scheduled refresh. Returns True if one was pending."""
        if self._resync_handle is None:
            return False
        self._resync_handle.cancel()
        self._resync_handle = None
        return True

    @property
    def resync_pending(self) -> bool:
        return self._resync_handle is not None

    def _fire_resync(self) -> None:
        self._resync_handle = None
        self._spawn(self.request_list())

    def _spawn(self, coro: Coroutine[object, object, PublishResult]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[PublishResult]) -> None:
        lp = f"{self.lp}task:"
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s background %s failed", lp, task.get_name(), exc_info=exc)
