"""Shared fixtures for unit tests.

Provides an in-memory transport so controller tests can deliver status
messages and inspect published commands without a broker.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from bell_sync.controller import SyncController
from bell_sync.structs import BellSyncConfig, ConnectionState, PublishOutcome
from bell_sync.transport import ConnectionHandler, MessageHandler

CONTROL_TOPIC = "test/bell/control"
STATUS_TOPIC = "test/bell/status"
FAST_RESYNC_DELAY = 0.01


class FakeTransport:
    """Transport double that records publishes and lets tests drive inbound traffic."""

    def __init__(self, state: ConnectionState = ConnectionState.CONNECTED) -> None:
        self.state: ConnectionState = state
        self.status_topic: str = STATUS_TOPIC
        self.control_topic: str = CONTROL_TOPIC
        self.published: list[tuple[str, str]] = []
        self.on_message: MessageHandler | None = None
        self.on_connection_change: ConnectionHandler | None = None
        self.disconnect_calls: int = 0
        self.fail_publish: bool = False

    async def connect(self, on_message: MessageHandler, on_connection_change: ConnectionHandler) -> None:
        self.on_message = on_message
        self.on_connection_change = on_connection_change

    async def publish(self, topic: str, payload: str) -> PublishOutcome:
        if self.state is not ConnectionState.CONNECTED:
            return PublishOutcome.NOOP
        if self.fail_publish:
            return PublishOutcome.FAILED
        self.published.append((topic, payload))
        return PublishOutcome.SENT

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.state = ConnectionState.DISCONNECTED

    def set_state(self, state: ConnectionState) -> None:
        self.state = state
        if self.on_connection_change is not None:
            self.on_connection_change(state)

    def deliver(self, payload: str, topic: str | None = None) -> None:
        assert self.on_message is not None, "connect() must be called first"
        self.on_message(topic or self.status_topic, payload.encode())

    @property
    def commands(self) -> list[str]:
        return [payload for _, payload in self.published]


@pytest.fixture
def transport() -> FakeTransport:
    """Connected fake transport."""
    return FakeTransport()


@pytest.fixture
def disconnected_transport() -> FakeTransport:
    return FakeTransport(state=ConnectionState.DISCONNECTED)


@pytest.fixture
def make_controller() -> Callable[..., SyncController]:
    """Factory for controllers with a fast resync timer and no refresh-on-connect."""

    def _make(transport: FakeTransport, **kwargs: object) -> SyncController:
        kwargs.setdefault("resync_delay", FAST_RESYNC_DELAY)
        kwargs.setdefault("refresh_on_connect", False)
        return SyncController(transport, **kwargs)  # type: ignore[arg-type]

    return _make


@pytest_asyncio.fixture
async def controller(transport: FakeTransport, make_controller: Callable[..., SyncController]) -> SyncController:
    """Started controller on a connected fake transport."""
    ctrl = make_controller(transport)
    await ctrl.start()
    return ctrl


@pytest.fixture
def config() -> BellSyncConfig:
    return BellSyncConfig(
        mqtt_host="broker.test",
        mqtt_port=1883,
        mqtt_transport="tcp",
        mqtt_tls=False,
        control_topic=CONTROL_TOPIC,
        status_topic=STATUS_TOPIC,
        reconnect_delay=0.01,
        resync_delay=FAST_RESYNC_DELAY,
    )


class FakeMessages:
    """Async iterator standing in for ``aiomqtt.Client.messages``.

    Yields the queued messages, then raises ``end_with`` (or blocks forever
    when it is None, like a healthy idle connection).
    """

    def __init__(self, messages: list[MagicMock], end_with: BaseException | None = None) -> None:
        self._messages = list(messages)
        self._end_with = end_with

    def __aiter__(self) -> FakeMessages:
        return self

    async def __anext__(self) -> MagicMock:
        if self._messages:
            return self._messages.pop(0)
        if self._end_with is not None:
            raise self._end_with
        await asyncio.Event().wait()
        raise StopAsyncIteration


def make_mqtt_message(topic: str, payload: bytes) -> MagicMock:
    message = MagicMock()
    message.topic.value = topic
    message.payload = payload
    return message


@pytest.fixture
def mock_aiomqtt_client() -> MagicMock:
    """Mock aiomqtt.Client instance with async context and publish/subscribe."""
    client = MagicMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=False)
    client.subscribe = AsyncMock()
    client.publish = AsyncMock()
    client.messages = FakeMessages([])
    return client
