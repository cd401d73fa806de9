from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from scoreboard import socketio
from scoreboard.errors import StateDesyncError
from scoreboard.services.broadcast import SocketIOTransport
from typing import Dict, Any


# sid -> display context, for logging only
_sid_to_ctx: Dict[str, Dict[str, Any]] = {}


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _hub():
    return current_app.extensions['broadcast_hub']


def handle_connect():
    emit('connected', {'message': 'Connected to display hub'})


def handle_disconnect(*args):
    # Socket.IO drops the sid from every room; nothing else to tear down
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if ctx:
        current_app.logger.info(f"[display-disconnect] display={ctx.get('display_id')}")


def handle_join_display(data=None):
    """Join the display room and receive the current snapshot before any later message."""
    display_id = (data or {}).get('display_id') or _get_sid()
    room = SocketIOTransport.room
    _sid_to_ctx[_get_sid()] = {'display_id': display_id}
    _hub().connect(
        deliver=lambda snap: emit('snapshot', snap),
        register=lambda: join_room(room),
    )
    emit('joined', {'room': room})
    current_app.logger.info(f"[display-join] display={display_id}")


def handle_leave_display(data=None):
    room = SocketIOTransport.room
    leave_room(room)
    _sid_to_ctx.pop(_get_sid(), None)
    emit('left', {'room': room})


def handle_request_snapshot(data=None):
    emit('snapshot', _hub().snapshot())


def handle_sync_check(data=None):
    """Compare a display's view with the authoritative state; push a full snapshot on drift."""
    data = data or {}
    try:
        _hub().verify(data.get('shown_user_ids'), data.get('revealed_bonus_team_ids'), data.get('version'))
    except StateDesyncError as exc:
        current_app.logger.info(f"[display-desync] sid={_get_sid()} authoritative_version={exc.details.get('version')}")
        emit('snapshot', _hub().snapshot())
        return
    emit('in_sync', {'version': _hub().reveal_snapshot().get('version')})


def handle_ping(data=None):
    emit('pong', data or {})


_HANDLERS = {
    'connect': handle_connect,
    'disconnect': handle_disconnect,
    'join_display': handle_join_display,
    'leave_display': handle_leave_display,
    'request_snapshot': handle_request_snapshot,
    'sync_check': handle_sync_check,
    'ping': handle_ping,
}


def register_socketio_handlers(namespace: str = '/ws', testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on the display namespace. When testing is True, also
    mirror handlers on the default namespace '/' for the test harness.
    """
    for event, handler in _HANDLERS.items():
        socketio.on_event(event, handler, namespace=namespace)

    if testing:
        # Test-only mirror on default namespace
        for event, handler in _HANDLERS.items():
            socketio.on_event(event, handler, namespace='/')
