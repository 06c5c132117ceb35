"""foglight: mDNS / DNS-SD service discovery and monitoring."""

from .client import DnsSd
from .codec import Message, ReceivedMessage, compose, parse
from .descriptor import ServiceDescriptor, ServiceSummary
from .errors import ConcurrencyError, FoglightError, TransportError, ValidationError

__all__ = [
    "ConcurrencyError",
    "DnsSd",
    "FoglightError",
    "Message",
    "ReceivedMessage",
    "ServiceDescriptor",
    "ServiceSummary",
    "TransportError",
    "ValidationError",
    "compose",
    "parse",
]
