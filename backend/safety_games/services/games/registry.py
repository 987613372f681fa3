"""Process-local registry of live game sessions.

In-progress state is never persisted; a session lives from creation until
it is ended explicitly, when its owner goes away, or by the idle sweep.
"""

import random
import threading
import time
import uuid
from typing import Dict, List, Optional

from .catalog import get_firm_by_name, load_hazard_images, load_match_pairs, resolve_game_name
from .errors import CatalogEmpty
from .hazard import HAZARD_GAME_NAME, HazardSession
from .matching import MatchSession
from .persistence import ScoreGuard
from . import scheduler

# Driven by the scheduler only
INTERNAL_EVENTS = frozenset({'start', 'tick', 'resolve_quiz', 'resolve_mismatch'})


class SessionEntry:
    def __init__(self, session_id: str, session, player_id: str, firm_name: str):
        self.id = session_id
        self.session = session
        self.player_id = player_id
        self.firm_name = firm_name
        self.lock = threading.RLock()
        self.guard = ScoreGuard()
        self.clock_generation: Optional[int] = None
        self.scheduled_events = set()
        self.last_save = None
        self.ended = False
        self.last_activity = time.monotonic()

    def to_dict(self):
        payload = self.session.snapshot()
        payload.update({
            'session_id': self.id,
            'player_id': self.player_id,
            'firm_name': self.firm_name,
            'save': self.last_save.outcome if self.last_save else None,
        })
        return payload


_sessions: Dict[str, SessionEntry] = {}
_sessions_lock = threading.Lock()


def get_session(session_id: str) -> Optional[SessionEntry]:
    return _sessions.get(session_id)


def create_session(app, player_id: str, firm_name: str, game: str, shuffle=None) -> SessionEntry:
    """Build a session from the catalog and start it.

    Raises CatalogEmpty / CatalogUnavailable when there is nothing to play.
    """
    player_id = (player_id or '').strip()
    if not player_id:
        raise ValueError('player_id is required')
    game_name = resolve_game_name(game)
    firm = get_firm_by_name(firm_name)
    if firm is None:
        raise CatalogEmpty(f'firm not found: {firm_name}')

    cfg = app.config
    shuffle = shuffle or random.shuffle
    if game_name == HAZARD_GAME_NAME:
        session = HazardSession(
            load_hazard_images(firm.name),
            duration=int(cfg.get('HAZARD_IMAGE_DURATION_SEC', 60)),
            shuffle=shuffle,
            pause_clock_during_quiz=bool(cfg.get('HAZARD_PAUSE_CLOCK_DURING_QUIZ', False)),
        )
    else:
        session = MatchSession(
            load_match_pairs(firm.name),
            duration=int(cfg.get('MATCH_DURATION_SEC', 180)),
            shuffle=shuffle,
        )

    entry = SessionEntry(uuid.uuid4().hex, session, player_id, firm.name.strip())
    session.on_terminal = lambda _s: scheduler.persist_result(app, entry)
    with _sessions_lock:
        _sessions[entry.id] = entry

    scheduler.schedule_sweep(app, reap_idle_sessions)
    if isinstance(session, MatchSession):
        scheduler.run_event(app, entry, {'type': 'start'})
    try:
        app.logger.info(f"[session-create] session={entry.id} player={player_id} firm={firm.name} game={game_name}")
    except Exception:
        pass
    return entry


def apply_event(app, session_id: str, event: dict):
    entry = get_session(session_id)
    if entry is None:
        raise KeyError(session_id)
    return entry, scheduler.run_event(app, entry, event)


def apply_player_event(app, session_id: str, event: dict):
    """Apply an event coming from a client.

    Clock ticks, session start and delayed resolutions belong to the
    scheduler; clients sending them get a ValueError.
    """
    if not isinstance(event, dict):
        raise TypeError('event must be an object')
    if event.get('type') in INTERNAL_EVENTS:
        raise ValueError(f"event {event.get('type')!r} is not accepted from clients")
    entry, result = apply_event(app, session_id, event)
    entry.last_activity = time.monotonic()
    return entry, result


def save_session(app, session_id: str):
    """Re-evaluate persistence for a terminal session.

    Only does work when an earlier attempt failed and released the guard.
    """
    entry = get_session(session_id)
    if entry is None:
        raise KeyError(session_id)
    if entry.session.terminal and not entry.guard.is_set:
        scheduler.persist_result(app, entry)
    return entry


def end_session(session_id: str) -> Optional[SessionEntry]:
    with _sessions_lock:
        entry = _sessions.pop(session_id, None)
    if entry is None:
        return None
    with entry.lock:
        entry.ended = True
        entry.session.end()
    return entry


def reap_idle_sessions(app, now: Optional[float] = None) -> List[str]:
    """End and drop sessions without player input for SESSION_IDLE_TTL_SEC.

    Finished sessions are dropped the same way once they go quiet.
    """
    ttl = float(app.config.get('SESSION_IDLE_TTL_SEC', 600))
    if ttl <= 0:
        return []
    now = time.monotonic() if now is None else now
    with _sessions_lock:
        stale = [sid for sid, entry in _sessions.items() if now - entry.last_activity >= ttl]
    reaped = [sid for sid in stale if end_session(sid) is not None]
    for sid in reaped:
        scheduler.emit_session_ended(sid)
        app.logger.info(f"[session-reap] session={sid} idle>={ttl:g}s")
    return reaped


def clear_sessions() -> None:
    with _sessions_lock:
        ids = list(_sessions)
    for sid in ids:
        end_session(sid)
