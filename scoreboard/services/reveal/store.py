"""Per-session reveal state: which users and team bonuses the audience has seen.

The referee console is the only writer. A mutation that changes the sets
bumps ``version``. Every mutation persists through the registry's
repository and notifies local listeners synchronously, before the call
returns.
"""
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from scoreboard.errors import ValidationError

logger = logging.getLogger(__name__)

Listener = Callable[['RevealState'], None]


def _coerce_id(value, label: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be integer ids", value=value)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be integer ids", value=value)


def _id_set(ids: Optional[Iterable], label: str) -> Set[int]:
    """Coerce ids to ints so the sets always stay sortable."""
    return {_coerce_id(value, label) for value in (ids or ())}


class RevealState:
    def __init__(self, session_id, shown_user_ids=(), revealed_bonus_team_ids=(), version: int = 0,
                 on_change: Optional[Callable[['RevealState'], None]] = None):
        self.session_id = session_id
        self.shown_user_ids = _id_set(shown_user_ids, 'shown_user_ids')
        self.revealed_bonus_team_ids = _id_set(revealed_bonus_team_ids, 'revealed_bonus_team_ids')
        self.version = int(version or 0)
        self._on_change = on_change
        self._listeners: List[Listener] = []

    # ---- reads ----

    def is_user_shown(self, user_id) -> bool:
        return user_id in self.shown_user_ids

    def is_team_bonus_revealed(self, team_id) -> bool:
        return team_id in self.revealed_bonus_team_ids

    def snapshot(self) -> Dict[str, Any]:
        """Deterministic, JSON-ready copy of the state."""
        return {
            'session_id': self.session_id,
            'version': self.version,
            'shown_user_ids': sorted(self.shown_user_ids),
            'revealed_bonus_team_ids': sorted(self.revealed_bonus_team_ids),
        }

    def matches(self, shown_user_ids, revealed_bonus_team_ids) -> bool:
        return (set(shown_user_ids or ()) == self.shown_user_ids
                and set(revealed_bonus_team_ids or ()) == self.revealed_bonus_team_ids)

    # ---- writes ----

    def show_user(self, user_id) -> None:
        user_id = _coerce_id(user_id, 'user_id')
        before = self._fingerprint()
        self.shown_user_ids.add(user_id)
        self._changed('show_user', before, user_id=user_id)

    def set_shown_users(self, user_ids: Iterable) -> None:
        # Validate the whole list before replacing anything
        shown = _id_set(user_ids, 'user_ids')
        before = self._fingerprint()
        self.shown_user_ids = shown
        self._changed('set_shown_users', before, count=len(self.shown_user_ids))

    def clear_shown(self) -> None:
        before = self._fingerprint()
        self.shown_user_ids = set()
        self._changed('clear_shown', before)

    def reveal_team_bonus(self, team_id) -> None:
        team_id = _coerce_id(team_id, 'team_id')
        before = self._fingerprint()
        self.revealed_bonus_team_ids.add(team_id)
        self._changed('reveal_team_bonus', before, team_id=team_id)

    def set_revealed_teams(self, team_ids: Iterable) -> None:
        revealed = _id_set(team_ids, 'team_ids')
        before = self._fingerprint()
        self.revealed_bonus_team_ids = revealed
        self._changed('set_revealed_teams', before, count=len(self.revealed_bonus_team_ids))

    def clear_revealed(self) -> None:
        before = self._fingerprint()
        self.revealed_bonus_team_ids = set()
        self._changed('clear_revealed', before)

    def reset(self) -> None:
        before = self._fingerprint()
        self.shown_user_ids = set()
        self.revealed_bonus_team_ids = set()
        self._changed('reset', before)

    # ---- listeners ----

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return _unsubscribe

    def _fingerprint(self):
        return frozenset(self.shown_user_ids), frozenset(self.revealed_bonus_team_ids)

    def _changed(self, action: str, before, **fields) -> None:
        # Version counts real changes only, so repeating a write is idempotent
        if self._fingerprint() != before:
            self.version += 1
        logger.info(
            "[reveal] session=%s action=%s version=%s shown=%s revealed=%s %s",
            self.session_id, action, self.version, len(self.shown_user_ids),
            len(self.revealed_bonus_team_ids),
            ' '.join(f"{k}={v}" for k, v in fields.items()),
        )
        if self._on_change is not None:
            self._on_change(self)
        for listener in list(self._listeners):
            listener(self)


class RevealStateRegistry:
    """Session-id keyed registry of reveal states with one active display target.

    ``repository`` provides ``load(session_id) -> dict | None``,
    ``save(snapshot_dict)``, ``delete(session_id)``, ``load_active()`` and
    ``save_active(session_id)``; it is the durable, last-writer-wins copy
    that lets a reload resume progress, including which session the
    displays were showing.
    """

    def __init__(self, repository=None):
        self._repository = repository
        self._states: Dict[Any, RevealState] = {}
        self._listeners: List[Listener] = []
        self._active_session_id = None
        # Loaded on first use; the registry is built before any app context exists
        self._active_loaded = repository is None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Listen to mutations of every state this registry owns."""
        self._listeners.append(listener)

        def _unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return _unsubscribe

    def _persist_and_notify(self, state: RevealState) -> None:
        if self._repository is not None:
            self._repository.save(state.snapshot())
        for listener in list(self._listeners):
            listener(state)

    def create(self, session_id) -> RevealState:
        stored = self._repository.load(session_id) if self._repository is not None else None
        stored = stored or {}
        state = RevealState(
            session_id,
            stored.get('shown_user_ids', ()),
            stored.get('revealed_bonus_team_ids', ()),
            stored.get('version', 0),
            on_change=self._persist_and_notify,
        )
        self._states[session_id] = state
        return state

    def get(self, session_id) -> RevealState:
        state = self._states.get(session_id)
        if state is None:
            state = self.create(session_id)
        return state

    @property
    def active_session_id(self):
        if not self._active_loaded:
            self._active_session_id = self._repository.load_active()
            self._active_loaded = True
            if self._active_session_id is not None:
                logger.info("[reveal-resume] active session=%s", self._active_session_id)
        return self._active_session_id

    def activate(self, session_id) -> RevealState:
        """Switch the display target; the previous session's state stays untouched."""
        previous = self.active_session_id
        self._active_session_id = session_id
        state = self.get(session_id)
        if self._repository is not None:
            self._repository.save_active(session_id)
        logger.info("[reveal-activate] session=%s previous=%s version=%s", session_id, previous, state.version)
        for listener in list(self._listeners):
            listener(state)
        return state

    @property
    def active(self) -> Optional[RevealState]:
        if self.active_session_id is None:
            return None
        return self.get(self.active_session_id)

    def reset(self, session_id) -> RevealState:
        state = self.get(session_id)
        state.reset()
        return state

    def destroy(self, session_id) -> None:
        self._states.pop(session_id, None)
        if self._repository is not None:
            self._repository.delete(session_id)
        if self.active_session_id == session_id:
            self._active_session_id = None
        logger.info("[reveal-destroy] session=%s", session_id)
