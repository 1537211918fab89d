"""Controller wire protocol: codec, command grammar, correlation, transport."""

from protocol.commands import InboundMessage, MessageKind, parse_message
from protocol.correlation import CorrelationEngine
from protocol.transport import Transport, WebSocketTransport

__all__ = [
    "CorrelationEngine",
    "InboundMessage",
    "MessageKind",
    "Transport",
    "WebSocketTransport",
    "parse_message",
]
