from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

DEMO_FIRM = {
    'name': 'Demo İnşaat',
    'contact': 'isg@demo.example',
    'games': [
        {
            'name': 'Tehlike Avı',
            'status': 'Aktif',
            'assets': [
                {
                    'id': 'scaffold',
                    'url': 'https://example.com/assets/scaffold.jpg',
                    'coordinates': [
                        {'id': 'helmet', 'x': 10, 'y': 10, 'width': 15, 'height': 15},
                        {
                            'id': 'harness', 'x': 50, 'y': 40, 'width': 20, 'height': 25,
                            'options': ['Emniyet kemeri eksik', 'Baret eksik', 'Eldiven eksik', 'Sorun yok'],
                            'correctAnswer': 0,
                        },
                    ],
                },
            ],
        },
        {
            'name': 'Kart Eşleştirme',
            'status': 'Aktif',
            'pairs': [
                {'symbol': 'https://example.com/assets/sign-helmet.png', 'meaning': 'Baret takmak zorunludur'},
                {'symbol': 'https://example.com/assets/sign-fire.png', 'meaning': 'Yangın söndürücü'},
                {'symbol': 'https://example.com/assets/sign-exit.png', 'meaning': 'Acil çıkış'},
            ],
        },
    ],
}


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from safety_games.main import main
    flask_app.register_blueprint(main)

    from safety_games.api.games import games
    # Mount game routes under /api to match frontend API client
    flask_app.register_blueprint(games, url_prefix='/api/games')

    # Register Socket.IO event handlers
    try:
        from safety_games.socketio_events import register_socketio_handlers
        register_socketio_handlers(testing=flask_app.config.get('TESTING', False))
    except Exception as exc:
        flask_app.logger.warning(f"SocketIO events not loaded: {exc}")

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from safety_games.models import Firm
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            firm = Firm(name=DEMO_FIRM['name'], contact=DEMO_FIRM['contact'])
            firm.set_games(DEMO_FIRM['games'])
            db.session.add(firm)

            db.session.commit()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
