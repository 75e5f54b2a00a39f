"""Wire codec for the bell control and status topics."""

from .codec import BellProtocol, Command, parse_status

__all__ = [
    "BellProtocol",
    "Command",
    "parse_status",
]
