import os
import secrets
import tempfile


class Config:
    """Base configuration"""
    # Generate a temporary key for development if not set
    _secret = os.environ.get('SECRET_KEY')
    if not _secret:
        _secret = secrets.token_hex(32)
        print("WARNING: Using auto-generated SECRET_KEY. Set SECRET_KEY environment variable for production.")
    SECRET_KEY = _secret

    # Database - Handle Heroku's postgres:// -> postgresql:// conversion
    database_url = os.environ.get('DATABASE_URL') or 'postgresql://localhost/groupchat'
    if database_url.startswith('postgres://'):
        database_url = database_url.replace('postgres://', 'postgresql://', 1)
    SQLALCHEMY_DATABASE_URI = database_url
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Database Connection Pool Configuration
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 20,           # Number of persistent connections to keep open
        'max_overflow': 40,        # Additional connections allowed above pool_size
        'pool_pre_ping': True,     # Test connection health before using
        'pool_recycle': 300,       # Recycle connections after 5 minutes
        'pool_timeout': 30,        # Timeout for getting connection from pool
    }

    # Transient database errors (lost connections, lock timeouts) are retried
    DB_RETRY_ATTEMPTS = int(os.environ.get('DB_RETRY_ATTEMPTS', 3))
    DB_RETRY_BASE_DELAY = float(os.environ.get('DB_RETRY_BASE_DELAY', 0.1))  # seconds, doubled per attempt

    # Bearer tokens
    TOKEN_TTL_DAYS = int(os.environ.get('TOKEN_TTL_DAYS', 30))

    # Error Tracking
    SENTRY_DSN = os.environ.get('SENTRY_DSN')

    # Blob storage for image messages: 'cloudinary' or 'local'
    BLOB_STORE = os.environ.get('BLOB_STORE', 'cloudinary')
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER') or os.path.join(os.path.abspath(os.path.dirname(__file__)), 'uploads')

    # Cloudinary (File Storage)
    CLOUDINARY_CLOUD_NAME = os.environ.get('CLOUDINARY_CLOUD_NAME')
    CLOUDINARY_API_KEY = os.environ.get('CLOUDINARY_API_KEY')
    CLOUDINARY_API_SECRET = os.environ.get('CLOUDINARY_API_SECRET')
    CLOUDINARY_FOLDER = os.environ.get('CLOUDINARY_FOLDER', 'chat_images')

    # File Upload Settings
    MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
    MAX_CONTENT_LENGTH = MAX_FILE_SIZE + 1024 * 1024  # multipart overhead
    ALLOWED_IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp', 'heic'}

    # Push notifications: 'rq' enqueues delivery jobs, 'log' only logs them
    PUSH_BACKEND = os.environ.get('PUSH_BACKEND', 'rq')
    PUSH_GATEWAY_URL = os.environ.get('PUSH_GATEWAY_URL')  # e.g. https://exp.host/--/api/v2/push/send
    PUSH_TIMEOUT = 10

    # Redis (for SocketIO message queue, RQ and rate limiting)
    REDIS_URL = os.environ.get('REDIS_URL') or 'redis://localhost:6379/0'

    # For rediss:// (SSL) connections, disable strict certificate verification
    # Heroku Redis uses self-signed certificates in chain
    _redis_url = os.environ.get('REDIS_URL') or 'redis://localhost:6379/0'
    if _redis_url.startswith('rediss://'):
        # SSL encryption enabled, but cert chain has self-signed cert
        _redis_url += '?ssl_cert_reqs=none'

    # SocketIO - the message queue is the backplane shared by all instances.
    # Leave SOCKETIO_MESSAGE_QUEUE empty for a single-instance deployment.
    SOCKETIO_MESSAGE_QUEUE = os.environ.get('SOCKETIO_MESSAGE_QUEUE', _redis_url) or None
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE', 'eventlet')
    SOCKETIO_CORS_ORIGINS = os.environ.get('SOCKETIO_CORS_ORIGINS', '*')

    # Rate limiting (Flask-Limiter)
    RATELIMIT_STORAGE_URI = _redis_url
    RATELIMIT_DEFAULT = '2000 per hour'
    RATELIMIT_HEADERS_ENABLED = True

    # Application
    MESSAGES_PER_PAGE = 50
    MAX_MESSAGES_PER_PAGE = 200
    SEARCH_RESULTS_LIMIT = 50


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    SQLALCHEMY_ECHO = False
    BLOB_STORE = os.environ.get('BLOB_STORE', 'local')
    PUSH_BACKEND = os.environ.get('PUSH_BACKEND', 'log')
    SOCKETIO_MESSAGE_QUEUE = os.environ.get('SOCKETIO_MESSAGE_QUEUE') or None  # Single process unless set
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False

    # Add SSL mode for Postgres on Heroku if not already present
    if 'postgresql://' in Config.database_url and 'sslmode' not in Config.database_url:
        SQLALCHEMY_DATABASE_URI = Config.database_url + '?sslmode=require'


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    # Use DATABASE_URL from environment if set (for CI), otherwise a throwaway SQLite file.
    # A file (not :memory:) so that threads in concurrency tests share one database.
    test_db_url = os.environ.get('TEST_DATABASE_URL') or 'sqlite:///' + os.path.join(tempfile.gettempdir(), 'groupchat_test.db')
    if test_db_url.startswith('postgres://'):
        test_db_url = test_db_url.replace('postgres://', 'postgresql://', 1)
    SQLALCHEMY_DATABASE_URI = test_db_url
    SQLALCHEMY_ENGINE_OPTIONS = {'connect_args': {'timeout': 30, 'check_same_thread': False}} if test_db_url.startswith('sqlite') else {}
    DB_RETRY_BASE_DELAY = 0.01
    RATELIMIT_ENABLED = False  # Disable rate limiting in tests
    RATELIMIT_STORAGE_URI = 'memory://'
    SOCKETIO_ASYNC_MODE = 'threading'  # Use threading mode for tests
    SOCKETIO_MESSAGE_QUEUE = None  # Disable Redis message queue for tests
    BLOB_STORE = 'local'
    UPLOAD_FOLDER = os.path.join(tempfile.gettempdir(), 'groupchat_test_uploads')
    PUSH_BACKEND = 'log'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
