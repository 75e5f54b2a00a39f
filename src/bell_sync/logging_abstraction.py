"""Logging abstraction layer for bell sync.

Handlers are attached once to the package logger (``bell_sync``); every
module logger is a child that propagates to it. Output is human-readable,
JSON lines, or both, with the active correlation id on every record.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import cast, override

from bell_sync.correlation import get_correlation_id

__all__ = [
    "BellLogger",
    "HumanReadableFormatter",
    "JSONFormatter",
    "configure_logging",
    "get_logger",
]


class JSONFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per record."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }

        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, Mapping) and extra_data:
            log_data["context"] = dict(cast("Mapping[str, object]", extra_data))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_data["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Formatter for console output: ``time level [module:line] [corr] > msg | k=v``."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(correlation_id)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        record.correlation_id = f"[{correlation_id[:8]}]" if correlation_id else "[--------]"

        formatted = super().format(record)

        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, Mapping) and extra_data:
            context_map = cast("Mapping[str, object]", extra_data)
            context_str = " | ".join(f"{k}={v}" for k, v in context_map.items())
            formatted = f"{formatted} | {context_str}"

        return formatted


def _human_handler(human_output: str) -> logging.Handler:
    if human_output == "stdout":
        return logging.StreamHandler(sys.stdout)
    if human_output == "stderr":
        return logging.StreamHandler(sys.stderr)
    try:
        human_path = Path(human_output)
        human_path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(human_path, mode="a")
    except OSError as e:
        print(f"Warning: Failed to create human log file {human_output}: {e}", file=sys.stderr)
        return logging.StreamHandler(sys.stderr)


def configure_logging(
    log_format: str | None = None,
    json_file: str | Path | None = None,
    human_output: str | None = None,
    debug: bool | None = None,
) -> logging.Logger:
    """(Re)configure handlers on the package logger.

    Args:
        log_format: "json", "human", or "both" (defaults to BELL_LOG_FORMAT)
        json_file: Path for JSON lines output (None disables JSON output)
        human_output: "stdout", "stderr", or a file path
        debug: Force DEBUG level (defaults to BELL_DEBUG)

    Returns:
        The configured package logger

    """
    from bell_sync.const import (
        BELL_DEBUG,
        BELL_LOG_FORMAT,
        BELL_LOG_HUMAN_OUTPUT,
        BELL_LOG_JSON_FILE,
        BELL_LOG_NAME,
    )

    log_format = log_format or BELL_LOG_FORMAT
    json_file = json_file or BELL_LOG_JSON_FILE
    human_output = human_output or BELL_LOG_HUMAN_OUTPUT
    debug = BELL_DEBUG if debug is None else debug

    pkg_logger = logging.getLogger(BELL_LOG_NAME)
    for handler in list(pkg_logger.handlers):
        pkg_logger.removeHandler(handler)
        handler.close()
    level = logging.DEBUG if debug else logging.INFO
    pkg_logger.setLevel(level)

    if log_format in ("json", "both") and json_file:
        try:
            json_path = Path(json_file)
            json_path.parent.mkdir(parents=True, exist_ok=True)
            json_handler = logging.FileHandler(json_path, mode="a")
        except OSError as e:
            print(f"Warning: Failed to create JSON log file {json_file}: {e}", file=sys.stderr)
        else:
            json_handler.setFormatter(JSONFormatter())
            pkg_logger.addHandler(json_handler)

    if log_format in ("human", "both"):
        human_handler = _human_handler(human_output)
        human_handler.setFormatter(HumanReadableFormatter())
        pkg_logger.addHandler(human_handler)

    return pkg_logger


class BellLogger:
    """Thin wrapper adding structured ``extra`` context to a stdlib logger."""

    def __init__(self, name: str) -> None:
        self.name: str = name
        self.logger: logging.Logger = logging.getLogger(name)

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None, **kwargs: object) -> None:
        extra_payload = {"extra_data": dict(extra)} if extra else None
        # stacklevel=3 so [module:line] points at the caller, not this wrapper
        self.logger.log(level, msg, *args, extra=extra_payload, stacklevel=3, **kwargs)  # type: ignore[arg-type]

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(
        self,
        msg: str,
        *args: object,
        extra: Mapping[str, object] | None = None,
        exc_info: BaseException | None = None,
    ) -> None:
        """Log an error; pass ``exc_info`` to attach a traceback outside an ``except`` block."""
        self._log(logging.ERROR, msg, *args, extra=extra, exc_info=exc_info)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra, exc_info=True)


def get_logger(name: str) -> BellLogger:
    """Get a BellLogger for a module (pass ``__name__``)."""
    return BellLogger(name)
