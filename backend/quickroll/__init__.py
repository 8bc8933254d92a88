# File: backend/quickroll/__init__.py
"""QuickRoll live attendance server - Application Factory."""
import logging
import os
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_socketio import SocketIO

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address)
socketio = SocketIO()

def create_app(config_name: str = None) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    from quickroll.config import get_config
    config_class = get_config(config_name)
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))

    # Realtime transport
    socketio.init_app(
        app,
        cors_allowed_origins=app.config.get('CORS_ORIGINS', ["*"]),
        async_mode=app.config.get('SOCKETIO_ASYNC_MODE'),
        message_queue=app.config.get('SOCKETIO_MESSAGE_QUEUE')
    )

    # Setup logging
    setup_logging(app)

    # In-memory session services
    from quickroll.services.context import init_services
    init_services(app)

    # Register blueprints and socket events
    register_blueprints(app)
    register_socket_events(app)

    # Register error handlers
    register_error_handlers(app)

    # Setup database
    setup_database(app)

    # Add CLI commands
    register_commands(app)

    # Add health check
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'QuickRoll Attendance',
            'version': '1.0.0'
        })

    return app

def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from quickroll.api.auth import auth_bp
    from quickroll.api.sessions import sessions_bp
    from quickroll.api.devices import devices_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(sessions_bp, url_prefix='/api/sessions')
    app.register_blueprint(devices_bp, url_prefix='/api/admin/devices')

def register_socket_events(app: Flask) -> None:
    """Import the socket handlers so they attach to `socketio`."""
    from quickroll.api import session_events
    session_events.configure(app)

def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from quickroll.utils.helpers import handle_error
    from quickroll.services.errors import AttendanceError
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(AttendanceError)
    def attendance_error(error):
        return handle_error(error, error.status_code)

    @app.errorhandler(404)
    def not_found(error):
        return handle_error(error, 404)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return handle_error(error, 500)

    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e, e.code)

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({
            'error': True,
            'message': 'Token has expired',
            'status_code': 401
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Invalid token',
            'status_code': 401
        }), 401

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return jsonify({
            'error': True,
            'message': 'Authorization token required',
            'status_code': 401
        }), 401

def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
    logging.getLogger('quickroll').setLevel(level)

    if not app.debug and not app.testing:
        log_file = app.config.get('LOG_FILE', 'logs/app.log')
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
        logging.getLogger('quickroll').addHandler(file_handler)

        app.logger.setLevel(logging.INFO)
        app.logger.info('QuickRoll startup')

def setup_database(app: Flask) -> None:
    """Import all models so metadata is complete."""
    with app.app_context():
        from quickroll.models import (
            User, UserRole, DeviceSession, DeviceLogin, AttendanceRecord
        )

def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import click

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def init_db(drop):
        """Initialize the database."""
        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')

        db.create_all()
        click.echo('Created all tables.')

    @app.cli.command('create-user')
    @click.option('--email', prompt=True)
    @click.option('--name', prompt=True)
    @click.option('--role', type=click.Choice(['student', 'faculty', 'admin']), default='student')
    @click.option('--roll-number', default=None)
    @click.option('--department', default=None)
    @click.option('--semester', default=None)
    @click.option('--section', default=None)
    def create_user(email, name, role, roll_number, department, semester, section):
        """Mirror a profile from the auth service."""
        from quickroll.models.user import User, UserRole

        user = User(
            email=email.lower().strip(),
            name=name,
            role=UserRole(role),
            roll_number=roll_number,
            organization_unit=department,
            cohort_term=semester,
            group=section
        )
        try:
            user.save()
            click.echo(f'User created: {user.email} (id={user.id})')
        except Exception as e:
            db.session.rollback()
            click.echo(f'Error creating user: {str(e)}')

    @app.cli.command('issue-token')
    @click.argument('email')
    def issue_token(email):
        """Print a bearer token for a local profile."""
        from quickroll.services.auth_service import AuthService

        user = AuthService.get_user_by_email(email)
        if not user:
            click.echo(f'No user with email {email}')
            return
        click.echo(AuthService.issue_token(user))
