import logging
import os

from bell_sync import __version__

__all__ = [
    "BELL_CONTROL_TOPIC",
    "BELL_DEBUG",
    "BELL_LOG_FORMAT",
    "BELL_LOG_HUMAN_OUTPUT",
    "BELL_LOG_JSON_FILE",
    "BELL_LOG_NAME",
    "BELL_METRICS_PORT",
    "BELL_MQTT_HOST",
    "BELL_MQTT_PASS",
    "BELL_MQTT_PORT",
    "BELL_MQTT_TLS",
    "BELL_MQTT_TRANSPORT",
    "BELL_MQTT_USER",
    "BELL_MQTT_WS_PATH",
    "BELL_RECONNECT_DELAY",
    "BELL_RESYNC_DELAY",
    "BELL_STATUS_TOPIC",
    "BELL_SYNC_VERSION",
    "DEFAULT_RECONNECT_DELAY",
    "DEFAULT_RESYNC_DELAY",
    "LOG_FORMATTER",
    "MQTT_TRANSPORT_START_TASK_NAME",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
BELL_LOG_NAME: str = "bell_sync"
BELL_SYNC_VERSION: str = __version__

LOG_FORMATTER = logging.Formatter(
    "%(asctime)s.%(msecs)d %(levelname)s [%(module)s:%(lineno)d] > %(message)s",
    "%m/%d/%y %H:%M:%S",
)

DEFAULT_RECONNECT_DELAY: float = 5.0
DEFAULT_RESYNC_DELAY: float = 0.5
MQTT_TRANSPORT_START_TASK_NAME = "MQTTTransport_START"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# Broker
BELL_MQTT_HOST: str = os.environ.get("BELL_MQTT_HOST", "broker.hivemq.com")
BELL_MQTT_PORT: int = _env_int("BELL_MQTT_PORT", 8884)
BELL_MQTT_TRANSPORT: str = os.environ.get("BELL_MQTT_TRANSPORT", "websockets").casefold()
BELL_MQTT_WS_PATH: str = os.environ.get("BELL_MQTT_WS_PATH", "/mqtt")
BELL_MQTT_TLS: bool = os.environ.get("BELL_MQTT_TLS", "true").casefold() in YES_ANSWER
BELL_MQTT_USER: str | None = os.environ.get("BELL_MQTT_USER") or None
BELL_MQTT_PASS: str | None = os.environ.get("BELL_MQTT_PASS") or None

# Topics
BELL_CONTROL_TOPIC: str = os.environ.get("BELL_CONTROL_TOPIC", "gbhss/bell/control")
BELL_STATUS_TOPIC: str = os.environ.get("BELL_STATUS_TOPIC", "gbhss/bell/status")

# Timing
BELL_RECONNECT_DELAY: float = _env_float("BELL_RECONNECT_DELAY", DEFAULT_RECONNECT_DELAY)
BELL_RESYNC_DELAY: float = _env_float("BELL_RESYNC_DELAY", DEFAULT_RESYNC_DELAY)

BELL_DEBUG = os.environ.get("BELL_DEBUG", "0").casefold() in YES_ANSWER

# Logging Configuration
BELL_LOG_FORMAT: str = os.environ.get("BELL_LOG_FORMAT", "human")  # "json", "human", or "both"
BELL_LOG_JSON_FILE: str | None = os.environ.get("BELL_LOG_JSON_FILE") or None
BELL_LOG_HUMAN_OUTPUT: str = os.environ.get("BELL_LOG_HUMAN_OUTPUT", "stderr")  # "stdout", "stderr", or file path

# Metrics exporter, 0 disables
BELL_METRICS_PORT: int = _env_int("BELL_METRICS_PORT", 0)
