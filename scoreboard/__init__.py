from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    if not flask_app.config.get('TESTING'):
        from scoreboard.logging_config import configure_logging
        configure_logging(flask_app.config.get('LOG_LEVEL', 'INFO'), flask_app.config.get('LOG_FORMAT', 'text'))

    allowed_origins = flask_app.config.get('CORS_ALLOWED_ORIGINS', [])
    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Reveal state registry + broadcast hub live on the app, one set per deployment
    from scoreboard.models import RevealStateRepository
    from scoreboard.services.reveal import RevealStateRegistry
    from scoreboard.services.broadcast import BroadcastHub, QueueTransport, SocketIOTransport

    registry = RevealStateRegistry(RevealStateRepository())

    def _active_reveal():
        state = registry.active
        return state.snapshot() if state is not None else None

    hub = BroadcastHub(state_provider=_active_reveal)
    hub.add_transport(SocketIOTransport(socketio, namespace=flask_app.config.get('DISPLAY_NAMESPACE', '/ws')))
    hub.add_transport(QueueTransport())
    hub.attach(registry)
    flask_app.extensions['reveal_registry'] = registry
    flask_app.extensions['broadcast_hub'] = hub

    # Import and register blueprints here
    from scoreboard.api.sessions import sessions
    flask_app.register_blueprint(sessions, url_prefix='/api/sessions')

    from scoreboard.api.seasons import seasons
    flask_app.register_blueprint(seasons, url_prefix='/api')

    from scoreboard.api.console import console
    flask_app.register_blueprint(console, url_prefix='/api/console')

    from scoreboard.api.display import display
    flask_app.register_blueprint(display, url_prefix='/api/display')

    from scoreboard.errors import ScoreboardError

    @flask_app.errorhandler(ScoreboardError)
    def handle_scoreboard_error(exc):
        flask_app.logger.info(f"[error] code={exc.code} status={exc.status_code} message={exc.message}")
        return jsonify(exc.to_dict()), exc.status_code

    # Register Socket.IO event handlers
    from scoreboard.socketio_events import register_socketio_handlers
    register_socketio_handlers(
        namespace=flask_app.config.get('DISPLAY_NAMESPACE', '/ws'),
        testing=flask_app.config.get('TESTING', False),
    )

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from scoreboard.seed import seed_demo_data
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            seed_demo_data()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
