from .base import EventTransport, TransportError
from .telegram import TelegramTransport

__all__ = [
    "EventTransport",
    "TelegramTransport",
    "TransportError",
]
