"""Delivery adapters for the broadcast hub.

The hub publishes to every adapter and never needs to know how many there
are. An adapter raises ``TransportError`` when delivery fails; a subscriber
that cannot keep up is dropped and recovers by reconnecting.
"""
import logging
import queue
import threading
from typing import Any, Dict, List

from scoreboard.errors import TransportError

logger = logging.getLogger(__name__)


class Transport:
    name = 'transport'

    def publish(self, message: Dict[str, Any]) -> None:
        raise NotImplementedError


class SocketIOTransport(Transport):
    """Cross-device path: one Socket.IO connection per remote display, all in one room."""

    name = 'socketio'
    room = 'display'

    def __init__(self, socketio, namespace: str = '/ws'):
        self.socketio = socketio
        self.namespace = namespace

    def publish(self, message: Dict[str, Any]) -> None:
        try:
            self.socketio.emit('display', message, to=self.room, namespace=self.namespace)
        except Exception as exc:
            raise TransportError(f"socketio emit failed: {exc}") from exc


class Subscription:
    def __init__(self, maxsize: int):
        self.queue: 'queue.Queue[Dict[str, Any]]' = queue.Queue(maxsize=maxsize)
        self.closed = False

    def put(self, message: Dict[str, Any]) -> None:
        self.queue.put_nowait(message)

    def get(self, timeout: float = None) -> Dict[str, Any]:
        return self.queue.get(timeout=timeout)

    def drain(self) -> List[Dict[str, Any]]:
        items = []
        while True:
            try:
                items.append(self.queue.get_nowait())
            except queue.Empty:
                return items


class QueueTransport(Transport):
    """Same-process fan-out: a bounded queue per subscriber.

    Backs the SSE stream endpoint and local preview windows.
    """

    name = 'queue'

    def __init__(self, maxsize: int = 100):
        self.maxsize = maxsize
        self._subscribers: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self) -> Subscription:
        sub = Subscription(self.maxsize)
        with self._lock:
            self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        sub.closed = True
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, message: Dict[str, Any]) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        dropped = 0
        for sub in subscribers:
            try:
                sub.put(message)
            except queue.Full:
                # A stalled reader is treated as gone
                self.unsubscribe(sub)
                dropped += 1
        if dropped:
            raise TransportError(f"dropped {dropped} stalled subscriber(s)", dropped=dropped)
