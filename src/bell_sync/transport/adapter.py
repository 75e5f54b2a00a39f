"""MQTT transport adapter.

Owns the single broker connection. Publishes are best effort and
fire-and-forget (QoS 0, no queue, no retry). A dropped or failed connection
is retried forever on a fixed period; there is no backoff because the only
peer is a low-traffic bell controller.
"""

from __future__ import annotations

import asyncio
import contextlib
import ssl
import uuid
from collections.abc import Callable
from typing import Protocol

import aiomqtt

from bell_sync.const import MQTT_TRANSPORT_START_TASK_NAME
from bell_sync.logging_abstraction import get_logger
from bell_sync.metrics import record_connection_state, record_reconnect
from bell_sync.structs import BellSyncConfig, ConnectionState, PublishOutcome

logger = get_logger(__name__)

MessageHandler = Callable[[str, bytes], None]
ConnectionHandler = Callable[[ConnectionState], None]


class Transport(Protocol):
    """What the sync controller needs from a transport."""

    state: ConnectionState
    status_topic: str
    control_topic: str

    async def connect(self, on_message: MessageHandler, on_connection_change: ConnectionHandler) -> None:
        """Start connecting in the background and deliver events to the handlers."""
        ...

    async def publish(self, topic: str, payload: str) -> PublishOutcome:
        """Send one payload; NOOP when not connected."""
        ...

    async def disconnect(self) -> None:
        """Release the connection and stop reconnecting."""
        ...


class MQTTTransport:
    """aiomqtt-backed transport with a fixed-period reconnect loop."""

    lp: str = "mqtt:"

    def __init__(self, config: BellSyncConfig, client_id: str | None = None) -> None:
        self.config: BellSyncConfig = config
        self.client_id: str = client_id or f"bell_sync_{uuid.uuid4().hex[:8]}"
        self.status_topic: str = config.status_topic
        self.control_topic: str = config.control_topic
        self.state: ConnectionState = ConnectionState.DISCONNECTED
        self.client: aiomqtt.Client | None = None
        self.start_task: asyncio.Task[None] | None = None
        self._receiver_task: asyncio.Task[None] | None = None
        self._on_message: MessageHandler | None = None
        self._on_connection_change: ConnectionHandler | None = None

    @property
    def is_connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        logger.debug("%s state %s -> %s", self.lp, self.state.value, state.value)
        self.state = state
        record_connection_state(state)
        if self._on_connection_change is not None:
            try:
                self._on_connection_change(state)
            except Exception:
                logger.exception("%s connection-state handler raised", self.lp)

    def _build_client(self) -> aiomqtt.Client:
        websockets = self.config.mqtt_transport == "websockets"
        return aiomqtt.Client(
            hostname=self.config.mqtt_host,
            port=self.config.mqtt_port,
            username=self.config.mqtt_user,
            password=self.config.mqtt_pass,
            identifier=self.client_id,
            transport=self.config.mqtt_transport,
            websocket_path=self.config.mqtt_ws_path if websockets else None,
            tls_context=ssl.create_default_context() if self.config.mqtt_tls else None,
        )

    async def connect(self, on_message: MessageHandler, on_connection_change: ConnectionHandler) -> None:
        """Register handlers and start the connection loop; returns immediately."""
        lp = f"{self.lp}connect:"
        self._on_message = on_message
        self._on_connection_change = on_connection_change
        if self.start_task is not None and not self.start_task.done():
            logger.debug("%s connection loop already running", lp)
            return
        self.start_task = asyncio.create_task(self.start(), name=MQTT_TRANSPORT_START_TASK_NAME)

    async def start(self) -> None:
        """Connect, receive until the link drops, wait, repeat."""
        lp = f"{self.lp}start:"
        itr = 0
        while True:
            itr += 1
            if itr > 1:
                record_reconnect()
            self._set_state(ConnectionState.CONNECTING)
            if await self._open():
                self._set_state(ConnectionState.CONNECTED)
                await self._run_receiver()
                await self._close_client()
            self._set_state(ConnectionState.DISCONNECTED)
            logger.info(
                "%s broker %s:%s unavailable, retrying in %s seconds...",
                lp,
                self.config.mqtt_host,
                self.config.mqtt_port,
                self.config.reconnect_delay,
            )
            self._set_state(ConnectionState.RECONNECTING)
            await asyncio.sleep(self.config.reconnect_delay)

    async def _open(self) -> bool:
        lp = f"{self.lp}open:"
        logger.debug("%s Connecting to MQTT broker %s:%s...", lp, self.config.mqtt_host, self.config.mqtt_port)
        self.client = self._build_client()
        try:
            _ = await self.client.__aenter__()
        except aiomqtt.MqttError as mqtt_err:
            logger.warning("%s Connection failed [MqttError] -> %s", lp, mqtt_err)
            self.client = None
            return False
        try:
            await self.client.subscribe(self.status_topic, qos=0)
        except aiomqtt.MqttError as mqtt_err:
            logger.warning("%s Subscribe to %s failed -> %s", lp, self.status_topic, mqtt_err)
            await self._close_client()
            return False
        logger.info(
            "%s Connected to MQTT broker: %s port: %s, subscribed to %s",
            lp,
            self.config.mqtt_host,
            self.config.mqtt_port,
            self.status_topic,
        )
        return True

    async def _run_receiver(self) -> None:
        lp = f"{self.lp}rcv:"
        self._receiver_task = asyncio.create_task(self._receive())
        try:
            await self._receiver_task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            logger.info("%s receiver stopped after a failed publish", lp)
        except aiomqtt.MqttError as mqtt_err:
            logger.warning("%s link lost -> %s", lp, mqtt_err)
        finally:
            self._receiver_task = None

    async def _receive(self) -> None:
        lp = f"{self.lp}rcv:"
        assert self.client is not None, "client must be initialized"
        async for message in self.client.messages:
            topic = message.topic.value
            payload = message.payload
            if not isinstance(payload, bytes | bytearray):
                payload = b"" if payload is None else str(payload).encode()
            logger.debug("%s <<< %s: %r", lp, topic, payload)
            if self._on_message is None:
                continue
            try:
                self._on_message(topic, bytes(payload))
            except Exception:
                logger.exception("%s message handler raised for topic %s", lp, topic)

    async def _close_client(self) -> None:
        lp = f"{self.lp}close:"
        client, self.client = self.client, None
        if client is None:
            return
        try:
            await client.__aexit__(None, None, None)
        except aiomqtt.MqttError as mqtt_err:
            logger.debug("%s disconnect after link loss -> %s", lp, mqtt_err)

    async def publish(self, topic: str, payload: str) -> PublishOutcome:
        """Publish one message at QoS 0.

        Returns:
            SENT on success, NOOP if not connected, FAILED if the broker
            rejected the publish (the link is then treated as lost)

        """
        lp = f"{self.lp}publish:"
        if not self.is_connected or self.client is None:
            logger.debug("%s not connected, dropping %s", lp, payload)
            return PublishOutcome.NOOP
        try:
            await self.client.publish(topic, payload.encode(), qos=0, retain=False)
        except aiomqtt.MqttError as mqtt_err:
            logger.warning("%s [MqttError] -> %s", lp, mqtt_err)
            self._set_state(ConnectionState.DISCONNECTED)
            if self._receiver_task is not None and not self._receiver_task.done():
                _ = self._receiver_task.cancel()
            return PublishOutcome.FAILED
        logger.debug("%s >>> %s: %s", lp, topic, payload)
        return PublishOutcome.SENT

    async def disconnect(self) -> None:
        """Stop the connection loop and release the broker connection."""
        lp = f"{self.lp}disconnect:"
        if self.start_task is not None and not self.start_task.done():
            _ = self.start_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self.start_task
        self.start_task = None
        await self._close_client()
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("%s Disconnected from MQTT broker", lp)
