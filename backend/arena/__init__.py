from flask import Flask
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

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from arena.errors import ArenaError, error_response

    @flask_app.errorhandler(ArenaError)
    def handle_arena_error(exc):
        return error_response(exc)

    from arena.services import init_services
    init_services(flask_app)

    # Import and register blueprints here
    from arena.main import main
    flask_app.register_blueprint(main)

    from arena.api.rooms import rooms
    from arena.api.games import games
    from arena.api.challenges import challenges
    # Mount room and game routes under /api to match frontend API client
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')
    flask_app.register_blueprint(games, url_prefix='/api/games')
    flask_app.register_blueprint(challenges, url_prefix='/api/challenges')

    # Register Socket.IO event handlers against the initialized socketio instance
    from arena.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # Flask-Login user loader
    from arena.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from arena.seed import seed_challenges, seed_users
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            users = seed_users()
            challenges = seed_challenges()
            flask_app.logger.info(f"[db-reset] users={len(users)} challenges={len(challenges)}")
            click.echo('Database has been reset and seeded!')

    @click.command('purge-rooms')
    def purge_rooms_command():
        """Deletes waiting rooms that are past their expiry."""
        purged = flask_app.extensions['arena'].sweeper.sweep()
        click.echo(f'Purged {purged} expired room(s).')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(purge_rooms_command)

    return flask_app
