from weather_relay.streaming.connection import Connection, ConnectionState, TransportError
from weather_relay.streaming.registry import ConnectionRegistry
from weather_relay.streaming.scheduler import PushScheduler
from weather_relay.streaming.upgrade import Admission, Rejection, RejectionReason, admit

__all__ = [
    "Connection",
    "ConnectionState",
    "TransportError",
    "ConnectionRegistry",
    "PushScheduler",
    "Admission",
    "Rejection",
    "RejectionReason",
    "admit",
]
