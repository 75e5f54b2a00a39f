"""
Correlation ids for tying log lines to one command or refresh cycle.

Every outbound command runs inside ``command_context()`` so the publish, the
scheduled resync and the resulting ``LIST`` share an id in the logs.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "command_context",
    "ensure_correlation_id",
    "get_correlation_id",
    "new_correlation_id",
    "set_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "bell_sync_correlation_id",
    default=None,
)


def new_correlation_id() -> str:
    """Return a fresh UUID4 hex id (32 chars, no dashes)."""
    return uuid.uuid4().hex


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _ = _correlation_id.set(correlation_id)


@contextmanager
def command_context(correlation_id: str | None = None) -> Generator[str]:
    """
    Scope a correlation id around one command.

    Reuses the current id when one is already set (a resync fired from an
    add keeps the add's id), otherwise generates one. The previous id is
    restored on exit.

    Args:
        correlation_id: Explicit id to use instead of the inherited/generated one

    Yields:
        The id in effect inside the block
    """
    previous_id = get_correlation_id()
    active_id = correlation_id or previous_id or new_correlation_id()
    set_correlation_id(active_id)
    try:
        yield active_id
    finally:
        set_correlation_id(previous_id)


def ensure_correlation_id() -> str:
    """Set a correlation id for the current context if none exists, and return it."""
    current_id = get_correlation_id()
    if current_id is None:
        current_id = new_correlation_id()
        set_correlation_id(current_id)
    return current_id
