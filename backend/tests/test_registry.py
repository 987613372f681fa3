import time

from safety_games.services.games import registry


def keep_order(items):
    pass


def start_match(flask_app, player='P-1'):
    return registry.create_session(flask_app, player, 'demo', 'kart-eslestirme', shuffle=keep_order)


def test_finished_sessions_are_swept_once_idle(flask_app, demo_firm):
    entries = [start_match(flask_app, f'P-{i}') for i in range(5)]
    for entry in entries:
        for _ in range(10):
            registry.apply_event(flask_app, entry.id, {'type': 'tick'})
        assert entry.session.terminal

    later = time.monotonic() + flask_app.config['SESSION_IDLE_TTL_SEC'] + 1
    reaped = registry.reap_idle_sessions(flask_app, now=later)
    assert sorted(reaped) == sorted(e.id for e in entries)
    assert all(registry.get_session(e.id) is None for e in entries)
    assert all(e.ended for e in entries)


def test_unjoined_live_session_is_swept_and_its_clock_stopped(flask_app, demo_firm):
    entry = start_match(flask_app)
    assert entry.session.clock.running
    later = time.monotonic() + flask_app.config['SESSION_IDLE_TTL_SEC'] + 1
    assert registry.reap_idle_sessions(flask_app, now=later) == [entry.id]
    assert not entry.session.clock.running


def test_recent_player_input_keeps_a_session(flask_app, demo_firm):
    quiet = start_match(flask_app, 'P-1')
    busy = start_match(flask_app, 'P-2')
    ttl = flask_app.config['SESSION_IDLE_TTL_SEC']
    quiet.last_activity -= ttl
    busy.last_activity -= ttl
    registry.apply_player_event(flask_app, busy.id, {'type': 'flip', 'index': 0})

    assert registry.reap_idle_sessions(flask_app) == [quiet.id]
    assert registry.get_session(busy.id) is busy


def test_sweep_can_be_disabled(flask_app, demo_firm):
    entry = start_match(flask_app)
    flask_app.config['SESSION_IDLE_TTL_SEC'] = 0
    assert registry.reap_idle_sessions(flask_app, now=time.monotonic() + 10 ** 6) == []
    assert registry.get_session(entry.id) is entry
