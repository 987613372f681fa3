from flask_socketio import join_room, leave_room, emit
from safety_games import socketio
from flask import current_app, request
from safety_games.services.games import registry
from safety_games.services.games.scheduler import emit_session_ended
from typing import Dict, List, Optional, Set
import time


def _room(session_id: str) -> str:
    return f"session:{session_id}"


def _payload(data) -> Optional[dict]:
    if isinstance(data, dict):
        return data
    emit('error', {'message': 'payload must be an object'})
    return None


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    # The player's tab went away: every session this socket was the last
    # owner of is torn down (after a grace period outside tests)
    for session_id in _forget_socket(request.sid):
        if current_app.config.get('TESTING'):
            _end_session(session_id)
        else:
            _end_after_grace(session_id)


def handle_join_session(data):
    data = _payload(data or {})
    if data is None:
        return
    session_id = data.get('session_id')
    if not session_id:
        emit('error', {'message': 'session_id is required'})
        return
    entry = registry.get_session(session_id)
    if entry is None:
        emit('error', {'message': 'session not found'})
        return
    join_room(_room(session_id))
    _watching.setdefault(request.sid, set()).add(session_id)
    if data.get('is_session_owner'):
        _owners.setdefault(session_id, set()).add(request.sid)
        _grace_deadline.pop(session_id, None)
    emit('joined', {'room': _room(session_id), 'state': entry.to_dict()})


def handle_leave_session(data):
    data = _payload(data or {})
    if data is None:
        return
    session_id = data.get('session_id')
    if not session_id:
        emit('error', {'message': 'session_id is required'})
        return
    leave_room(_room(session_id))
    emit('left', {'room': _room(session_id)})
    was_owner = request.sid in _owners.get(session_id, ())
    _forget_socket(request.sid, session_id)
    if was_owner:
        # Quitting the game ends it straight away
        _end_session(session_id)


def handle_session_input(data):
    data = _payload(data or {})
    if data is None:
        return
    session_id = data.get('session_id')
    event = data.get('event') or {}
    if not session_id or not isinstance(event, dict) or not event.get('type'):
        emit('error', {'message': 'session_id and event.type are required'})
        return
    if registry.get_session(session_id) is None:
        emit('error', {'message': 'session not found'})
        return
    try:
        registry.apply_player_event(current_app._get_current_object(), session_id, event)
    except (KeyError, ValueError, TypeError) as exc:
        emit('error', {'message': f'invalid event: {exc}'})


def handle_ping(data):
    emit('pong', data or {})


# socket id -> sessions it joined; session id -> owning socket ids
_watching: Dict[str, Set[str]] = {}
_owners: Dict[str, Set[str]] = {}
_grace_deadline: Dict[str, float] = {}


def _forget_socket(sid: str, session_id: Optional[str] = None) -> List[str]:
    """Drop a socket's bookkeeping for one session, or all of them.

    Returns the sessions this socket was the last owner of.
    """
    joined = _watching.get(sid, set())
    targets = [session_id] if session_id is not None else list(joined)
    orphaned = []
    for target in targets:
        joined.discard(target)
        owners = _owners.get(target)
        if owners and sid in owners:
            owners.discard(sid)
            if not owners:
                orphaned.append(target)
    if not joined:
        _watching.pop(sid, None)
    return orphaned


def _end_session(session_id: str) -> None:
    """Cancel the session's timers and tell everyone in its room."""
    emit_session_ended(session_id)
    try:
        entry = registry.end_session(session_id)
        if entry is not None:
            current_app.logger.info(f"[session-end] session={session_id}")
    finally:
        _owners.pop(session_id, None)
        _grace_deadline.pop(session_id, None)


def _end_after_grace(session_id: str) -> None:
    grace = float(current_app.config.get('SESSION_OWNER_GRACE_SEC', 2.0))
    deadline = time.time() + grace
    _grace_deadline[session_id] = deadline
    app = current_app._get_current_object()

    def _runner(sid: str, expected: float):
        time.sleep(max(0.0, expected - time.time()))
        # A reconnecting owner clears or replaces the deadline
        if _owners.get(sid) or _grace_deadline.get(sid) != expected:
            return
        with app.app_context():
            _end_session(sid)

    socketio.start_background_task(_runner, session_id, deadline)


def register_socketio_handlers(testing: bool = False) -> None:
    """Attach the game handlers to the '/ws' namespace.

    The Flask-SocketIO test client connects to '/' unless told otherwise, so
    tests get the same handlers there too.
    """
    handlers = {
        'connect': handle_connect,
        'disconnect': handle_disconnect,
        'join_session': handle_join_session,
        'leave_session': handle_leave_session,
        'session_input': handle_session_input,
        'ping': handle_ping,
    }
    for ns in (['/ws', '/'] if testing else ['/ws']):
        for name, handler in handlers.items():
            socketio.on_event(name, handler, namespace=ns)
