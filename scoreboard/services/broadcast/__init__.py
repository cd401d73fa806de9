from .hub import BroadcastHub
from .messages import MessageType, build_message, parse_message
from .transports import QueueTransport, SocketIOTransport, Transport

__all__ = [
    'BroadcastHub',
    'MessageType',
    'build_message',
    'parse_message',
    'QueueTransport',
    'SocketIOTransport',
    'Transport',
]
