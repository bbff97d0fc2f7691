from flask import Flask, jsonify, request
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

REQUEST_ID_HEADER = 'x-request-id'


def create_app(config_class=Config, broadcaster=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Realtime port used by the progression routes; tests inject a recorder
    from quizflow.services.games.broadcast import SocketIOBroadcaster
    flask_app.extensions['broadcaster'] = broadcaster or SocketIOBroadcaster(socketio)

    from quizflow.main import main
    flask_app.register_blueprint(main)

    from quizflow.api.games import games
    flask_app.register_blueprint(games, url_prefix='/games')

    from quizflow.api.game_state import game_state
    flask_app.register_blueprint(game_state, url_prefix='/games')

    from quizflow.api.player_data import player_data
    flask_app.register_blueprint(player_data, url_prefix='/games')

    from quizflow.api.game_flows import game_flows
    flask_app.register_blueprint(game_flows, url_prefix='/game-flows')

    from quizflow.errors import register_error_handlers
    register_error_handlers(flask_app)

    from quizflow.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    @flask_app.after_request
    def echo_request_id(response):
        request_id = request.headers.get(REQUEST_ID_HEADER)
        if request_id:
            response.headers[REQUEST_ID_HEADER] = request_id
        return response

    from quizflow.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, user_id)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'unauthorized', 'message': 'Authentication required'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database with a demo host and quiz."""
        from quizflow.models import seed_demo_quiz
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            host = User(username='host')
            host.set_password('password')
            db.session.add(host)
            db.session.commit()
            seed_demo_quiz(host)
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
