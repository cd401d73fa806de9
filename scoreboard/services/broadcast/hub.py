"""Fan-out of display messages to every connected display.

Delivery is best effort and at most once per attempt. Each message carries
the full state a display needs, so a dropped or reordered message is fixed
by the next one, and a newly connected display always starts from a
snapshot of the authoritative reveal state and display mode.
"""
import json
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from scoreboard.errors import StateDesyncError, TransportError, ValidationError
from .messages import (
    DEFAULT_MODE,
    NAVIGATION_TYPES,
    SNAPSHOT,
    MessageType,
    build_message,
    display_mode_for,
    parse_message,
)
from .transports import QueueTransport, Subscription, Transport

logger = logging.getLogger(__name__)

_EMPTY_REVEAL = {
    'session_id': None,
    'version': 0,
    'shown_user_ids': [],
    'revealed_bonus_team_ids': [],
}


class BroadcastHub:
    def __init__(self, state_provider: Optional[Callable[[], Optional[Dict[str, Any]]]] = None):
        self._state_provider = state_provider or (lambda: None)
        self._transports: List[Transport] = []
        # Serialises publish against connect so a snapshot is never older than what follows it
        self._lock = threading.RLock()
        self.display_mode = DEFAULT_MODE
        self.current_display: Optional[Dict[str, Any]] = None
        self.sequence = 0

    # ---- adapters ----

    def add_transport(self, transport: Transport) -> Transport:
        self._transports.append(transport)
        return transport

    def transport(self, name: str) -> Optional[Transport]:
        for t in self._transports:
            if t.name == name:
                return t
        return None

    def attach(self, registry) -> None:
        """Re-publish reveal sets whenever the active session's state changes."""
        registry.subscribe(lambda state: self._on_reveal_change(registry, state))

    def _on_reveal_change(self, registry, state) -> None:
        if state.session_id != registry.active_session_id:
            return
        self.publish(build_message(MessageType.SYNC_REVEAL_STATE, reveal=state.snapshot()))

    # ---- state ----

    def reveal_snapshot(self) -> Dict[str, Any]:
        return self._state_provider() or dict(_EMPTY_REVEAL)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'type': SNAPSHOT,
                'sequence': self.sequence,
                'display_mode': self.display_mode,
                'current_display': self.current_display,
                'reveal': self.reveal_snapshot(),
            }

    @staticmethod
    def encode(message: Dict[str, Any]) -> str:
        return json.dumps(message, sort_keys=True, separators=(',', ':'), default=str)

    def reset_display(self) -> None:
        with self._lock:
            self.display_mode = DEFAULT_MODE
            self.current_display = None

    # ---- publish / connect ----

    def publish(self, message: Dict[str, Any]) -> int:
        """Deliver ``message`` through every adapter; returns how many adapters succeeded."""
        parsed = parse_message(message)
        if parsed is None:
            raise ValidationError('unknown or incomplete display message', type=(message or {}).get('type'))
        delivered = 0
        with self._lock:
            self.sequence += 1
            parsed['sequence'] = self.sequence
            mode = display_mode_for(parsed)
            if mode is not None:
                self.display_mode = mode
                if parsed['type'] == MessageType.CLEAR_DISPLAY.value:
                    self.current_display = None
                elif MessageType(parsed['type']) not in NAVIGATION_TYPES:
                    self.current_display = parsed
            for transport in self._transports:
                try:
                    transport.publish(parsed)
                    delivered += 1
                except TransportError as exc:
                    logger.warning("[broadcast-fail] transport=%s type=%s error=%s",
                                   transport.name, parsed['type'], exc.message)
        logger.info("[broadcast] type=%s seq=%s mode=%s adapters=%s/%s",
                    parsed['type'], parsed['sequence'], self.display_mode, delivered, len(self._transports))
        return delivered

    def connect(self, deliver: Callable[[Dict[str, Any]], None],
                register: Optional[Callable[[], None]] = None) -> Dict[str, Any]:
        """Register a subscriber and hand it the current snapshot before anything else."""
        with self._lock:
            if register is not None:
                register()
            snap = self.snapshot()
            deliver(snap)
        logger.debug("[snapshot] seq=%s mode=%s version=%s",
                     snap['sequence'], snap['display_mode'], snap['reveal'].get('version'))
        return snap

    def connect_queue(self) -> Subscription:
        transport = self.transport(QueueTransport.name)
        if transport is None:
            raise ValidationError('no in-process transport configured')
        holder: Dict[str, Subscription] = {}

        def _register():
            holder['sub'] = transport.subscribe()
        self.connect(lambda snap: holder['sub'].put(snap), register=_register)
        return holder['sub']

    def disconnect_queue(self, sub: Subscription) -> None:
        transport = self.transport(QueueTransport.name)
        if transport is not None:
            transport.unsubscribe(sub)

    def verify(self, shown_user_ids, revealed_bonus_team_ids, version=None) -> None:
        """Raise ``StateDesyncError`` when a display's view differs from the authoritative one."""
        reveal = self.reveal_snapshot()
        same_sets = (set(shown_user_ids or ()) == set(reveal['shown_user_ids'])
                     and set(revealed_bonus_team_ids or ()) == set(reveal['revealed_bonus_team_ids']))
        if not same_sets or (version is not None and version != reveal.get('version')):
            raise StateDesyncError('display is out of sync', version=reveal.get('version'))
