"""Testing configuration."""
import tempfile
from datetime import timedelta
from .base import BaseConfig

class TestingConfig(BaseConfig):
    """Testing configuration class."""
    
    DEBUG = False
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    
    # Database (in-memory SQLite for testing)
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    
    JWT_SECRET_KEY = 'test-jwt-secret-key-with-enough-length'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=5)
    
    # Rate Limiting (disabled for testing)
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'
    
    SOCKETIO_ASYNC_MODE = 'threading'
    
    # Deterministic timing
    CODE_AUTO_REFRESH_SECONDS = 0
    DEVICE_CORRELATION_ASYNC = False
    PHOTO_VERIFICATION_REQUIRED = False
    PHOTO_STORAGE_PATH = tempfile.mkdtemp(prefix='quickroll-photos-')
    
    LOG_LEVEL = 'WARNING'
