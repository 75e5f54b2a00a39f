"""Schedule synchronization engine for an MQTT-connected school bell.

Keeps a client-side view of the bell controller's timed ring entries in sync
over an unordered, at-most-once publish/subscribe link.
"""

__version__ = "0.3.0"
