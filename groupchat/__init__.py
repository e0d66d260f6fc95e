import os
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_bcrypt import Bcrypt
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_talisman import Talisman
from flask_socketio import SocketIO
from werkzeug.exceptions import HTTPException
from config import config
import sentry_sdk
from sentry_sdk.integrations.flask import FlaskIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.rq import RqIntegration

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
bcrypt = Bcrypt()

# Storage and default limits come from RATELIMIT_* config keys in init_app
limiter = Limiter(key_func=get_remote_address)
socketio = SocketIO()


def init_sentry(app):
    """Initialize Sentry error tracking and performance monitoring"""
    sentry_dsn = app.config.get('SENTRY_DSN')

    if sentry_dsn:
        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[
                FlaskIntegration(),
                SqlalchemyIntegration(),
                RqIntegration(),
            ],
            # Performance monitoring - sample 10% of transactions
            traces_sample_rate=0.1,
            release=os.environ.get('HEROKU_SLUG_COMMIT', 'unknown'),
            environment=app.config.get('FLASK_ENV', 'development'),
            # Don't send personally identifiable information
            send_default_pii=False,
            sample_rate=1.0,
        )
        app.logger.info(f"Sentry initialized for {app.config.get('FLASK_ENV', 'development')} environment")
    else:
        app.logger.info("Sentry DSN not configured - error tracking disabled")


def create_app(config_name='default'):
    """Application factory pattern"""
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # Initialize Sentry error tracking (do this early to catch initialization errors)
    init_sentry(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    bcrypt.init_app(app)
    limiter.init_app(app)

    # Initialize Socket.IO; the message queue (if any) is the cross-instance backplane
    allowed_origins = app.config['SOCKETIO_CORS_ORIGINS']
    if allowed_origins != '*':
        allowed_origins = allowed_origins.split(',')

    socketio.init_app(
        app,
        message_queue=app.config['SOCKETIO_MESSAGE_QUEUE'],
        async_mode=app.config['SOCKETIO_ASYNC_MODE'],
        cors_allowed_origins=allowed_origins,
        logger=app.debug,
        engineio_logger=app.debug
    )

    # Security headers (Talisman) - only in production
    if config_name == 'production':
        Talisman(
            app,
            force_https=True,
            strict_transport_security=True,
            strict_transport_security_max_age=31536000,  # 1 year
            content_security_policy={'default-src': "'none'"},
            frame_options='DENY',
        )

    # Import all models for Flask-Migrate
    with app.app_context():
        from groupchat.models import user, api_token, group, message, reaction, read_receipt  # noqa: F401

    # Presence tracker, realtime engine and the chat services live on the app
    from groupchat.services import init_services
    init_services(app)

    # Initialize Socket.IO event handlers
    from groupchat.services.socketio_manager import init_socketio_events
    init_socketio_events(socketio)

    # Register blueprints
    from groupchat.blueprints.auth import auth_bp
    from groupchat.blueprints.groups import groups_bp
    from groupchat.blueprints.messages import messages_bp
    from groupchat.blueprints.users import users_bp
    from groupchat.blueprints.uploads import uploads_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(groups_bp, url_prefix='/api/groups')
    app.register_blueprint(messages_bp, url_prefix='/api/messages')
    app.register_blueprint(users_bp, url_prefix='/api/users')
    app.register_blueprint(uploads_bp)

    # Error handlers - everything answers in JSON
    from groupchat.errors import ChatError

    @app.errorhandler(ChatError)
    def chat_error(error):
        db.session.rollback()
        if error.status_code >= 500:
            app.logger.error(f"{error.code}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({'error': error.description, 'code': error.name.lower().replace(' ', '_')}), error.code

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()  # Rollback any failed database transactions
        return jsonify({'error': 'Internal server error', 'code': 'internal_error'}), 500

    # Health check endpoint for monitoring and load balancers
    @app.route('/health')
    def health_check():
        """Health check endpoint - returns 200 if app is healthy"""
        from redis import Redis
        from groupchat.services import get_services

        realtime = get_services().realtime
        health_status = {
            'status': 'healthy',
            'version': os.environ.get('HEROKU_RELEASE_VERSION', 'unknown'),
            'environment': app.config.get('FLASK_ENV', 'development'),
            'connections': realtime.connection_count()
        }

        try:
            # Check database connection
            from sqlalchemy import text
            db.session.execute(text('SELECT 1'))
            health_status['database'] = 'connected'
        except Exception as e:
            db.session.rollback()
            health_status['status'] = 'unhealthy'
            health_status['database'] = f'error: {str(e)}'
            return jsonify(health_status), 500

        message_queue = app.config.get('SOCKETIO_MESSAGE_QUEUE')
        if message_queue:
            try:
                # Without the backplane, broadcasts would miss peer instances
                Redis.from_url(message_queue).ping()
                health_status['backplane'] = 'connected'
                if realtime.halted_reason:
                    realtime.resume()
            except Exception as e:
                realtime.halt(f'backplane unreachable: {e}')
                health_status['status'] = 'unhealthy'
                health_status['backplane'] = f'error: {str(e)}'
                return jsonify(health_status), 500

        health_status['accepting_connections'] = realtime.halted_reason is None
        return jsonify(health_status), 200

    return app
