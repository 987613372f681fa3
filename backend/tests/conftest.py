import os
import sys
import pytest

# Ensure the backend root (containing the `safety_games` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from safety_games import create_app, db, socketio, DEMO_FIRM


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    HAZARD_IMAGE_DURATION_SEC = 5
    MATCH_DURATION_SEC = 10
    QUIZ_RESOLVE_DELAY_MS = 1500
    MISMATCH_FLIP_BACK_MS = 1000
    HAZARD_PAUSE_CLOCK_DURING_QUIZ = False
    SESSION_IDLE_TTL_SEC = 60


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import safety_games.models  # noqa: F401
        db.create_all()
        yield application
        from safety_games.services.games import registry
        registry.clear_sessions()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def demo_firm(flask_app):
    from safety_games.models import Firm
    firm = Firm(name=DEMO_FIRM['name'], contact=DEMO_FIRM['contact'])
    firm.set_games(DEMO_FIRM['games'])
    db.session.add(firm)
    db.session.commit()
    return firm


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass

