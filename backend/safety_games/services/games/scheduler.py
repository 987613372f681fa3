import time

from safety_games import socketio
from .persistence import ALREADY_SAVED, FAILED, ScoreRecord, SqlScoreStore, save_best_score


def emit_state(entry) -> None:
    socketio.emit(
        'state_update',
        {'session_id': entry.id, 'state': entry.session.snapshot()},
        to=f"session:{entry.id}",
        namespace='/ws',
    )


def emit_session_ended(session_id: str) -> None:
    socketio.emit('session_ended', {'session_id': session_id}, to=f"session:{session_id}", namespace='/ws')


def run_event(app, entry, event: dict):
    """Apply one event to a session under its lock, then re-arm timers.

    Returns whatever the engine returned for the event.
    """
    with entry.lock:
        if entry.ended:
            return None
        result = entry.session.handle(event)
        sync_timers(app, entry)
    emit_state(entry)
    return result


def sync_timers(app, entry) -> None:
    """Start a ticker for a fresh clock and schedule pending delayed events."""
    session = entry.session
    clock = session.clock
    if clock.running and clock.generation != entry.clock_generation:
        entry.clock_generation = clock.generation
        schedule_clock(app, entry, clock.generation)

    pending = session.pending_resolution
    if pending is not None:
        key = (pending['type'], pending['token'])
        if key not in entry.scheduled_events:
            entry.scheduled_events.add(key)
            if pending['type'] == 'resolve_quiz':
                delay_ms = int(app.config.get('QUIZ_RESOLVE_DELAY_MS', 1500))
            else:
                delay_ms = int(app.config.get('MISMATCH_FLIP_BACK_MS', 1000))
            schedule_event(app, entry, pending, delay_ms)


def schedule_clock(app, entry, generation: int) -> None:
    """Tick the session clock once per second until it expires or goes stale.

    - No-ops in TESTING mode; tests feed ``tick`` events themselves
    - A worker only ever ticks the clock generation it was started for
    """
    if app.config.get('TESTING'):
        return

    try:
        app.logger.info(
            f"[timer-set] session={entry.id} generation={generation} duration={entry.session.clock.duration}s"
        )
    except Exception:
        pass

    def _worker(sid: str, expected_generation: int):
        try:
            hb = int(app.config.get('TIMER_HEARTBEAT_SEC', 0))
        except Exception:
            hb = 0
        elapsed = 0
        while True:
            time.sleep(1)
            elapsed += 1
            with app.app_context():
                with entry.lock:
                    clock = entry.session.clock
                    if entry.ended or clock.generation != expected_generation or not clock.running:
                        try:
                            app.logger.info(f"[timer-abort] session={sid} generation={expected_generation} stale")
                        except Exception:
                            pass
                        return
                    expired = entry.session.tick(expected_generation)
                    remaining = clock.remaining
                    sync_timers(app, entry)
                emit_state(entry)
                if hb and hb > 0 and elapsed % hb == 0:
                    try:
                        app.logger.info(f"[timer-heartbeat] session={sid} remaining={remaining}s")
                    except Exception:
                        pass
                if expired:
                    try:
                        app.logger.info(f"[timer-fire] session={sid} generation={expected_generation} expired")
                    except Exception:
                        pass
                    return

    socketio.start_background_task(_worker, entry.id, generation)


def schedule_event(app, entry, event: dict, delay_ms: int) -> None:
    """Deliver ``event`` to the session after ``delay_ms``; no-op in TESTING."""
    if app.config.get('TESTING'):
        return

    def _worker(delay: float):
        time.sleep(delay)
        with app.app_context():
            run_event(app, entry, event)

    socketio.start_background_task(_worker, max(0, delay_ms) / 1000.0)


def persist_result(app, entry):
    """Run best-score arbitration for a terminal session.

    Runs inline in TESTING mode, in a background task otherwise.
    """
    result = entry.session.result()
    record = ScoreRecord(
        player_id=entry.player_id,
        firm_name=entry.firm_name,
        game_name=entry.session.game_name,
        score=result['score'] or 0,
        details=result['details'],
    )

    def _worker():
        with app.app_context():
            saved = save_best_score(SqlScoreStore(), record, entry.guard)
            entry.last_save = saved
            try:
                if saved.outcome == FAILED:
                    app.logger.warning(f"[score-fail] session={entry.id} error={saved.error}")
                elif saved.outcome == ALREADY_SAVED:
                    app.logger.info(f"[score-skip] session={entry.id} already saved")
                else:
                    app.logger.info(
                        f"[score-save] session={entry.id} outcome={saved.outcome} score={record.score} previous={saved.previous_best}"
                    )
            except Exception:
                pass
            socketio.emit(
                'score_saved',
                {'session_id': entry.id, 'outcome': saved.outcome, 'score': record.score},
                to=f"session:{entry.id}",
                namespace='/ws',
            )
            return saved

    if app.config.get('TESTING'):
        return _worker()
    socketio.start_background_task(_worker)
    return None


_sweeping = set()


def schedule_sweep(app, sweep) -> None:
    """Run ``sweep(app)`` periodically for the life of the process.

    Started at most once per app; no-ops in TESTING, where tests call the
    sweep directly.
    """
    if app.config.get('TESTING') or id(app) in _sweeping:
        return
    ttl = float(app.config.get('SESSION_IDLE_TTL_SEC', 600))
    if ttl <= 0:
        return
    _sweeping.add(id(app))
    interval = max(1.0, ttl / 2)

    def _worker():
        while True:
            time.sleep(interval)
            with app.app_context():
                try:
                    sweep(app)
                except Exception as exc:
                    app.logger.warning(f"[session-reap] sweep failed: {exc}")

    socketio.start_background_task(_worker)
