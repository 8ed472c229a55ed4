from flask import Flask, current_app
from flask_cors import CORS
from flask_socketio import SocketIO
from config import Config

allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

SESSION_EXTENSION = 'loto_session'


def get_session():
    """The HostSession of the current app."""
    return current_app.extensions[SESSION_EXTENSION]


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    from loto.logging_config import configure_logging
    configure_logging(flask_app)

    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # One session per host process; background tasks hold it directly
    from loto.services.session import HostSession
    session = HostSession.from_config(flask_app.config)
    flask_app.extensions[SESSION_EXTENSION] = session
    flask_app.logger.info(f"[session] code={session.code} language={session.game.language}")

    from loto.api.session import session_api
    flask_app.register_blueprint(session_api, url_prefix='/api/session')

    from loto.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    from loto.participant import join_command
    flask_app.cli.add_command(join_command)

    return flask_app
