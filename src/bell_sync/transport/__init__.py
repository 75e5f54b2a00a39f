"""Broker transport for the bell control/status topics."""

from .adapter import ConnectionHandler, MessageHandler, MQTTTransport, Transport

__all__ = [
    "ConnectionHandler",
    "MQTTTransport",
    "MessageHandler",
    "Transport",
]
