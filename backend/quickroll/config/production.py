"""Production configuration."""
import os
from datetime import timedelta
from .base import BaseConfig

class ProductionConfig(BaseConfig):
    """Production configuration class."""
    
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv('SECRET_KEY')  # Must be set in production
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)
    
    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL')
    
    # Redis (required in production: rate limits and cross-worker broadcasts)
    REDIS_URL = os.getenv('REDIS_URL')
    RATELIMIT_STORAGE_URI = os.getenv('REDIS_URL') or 'memory://'
    SOCKETIO_MESSAGE_QUEUE = os.getenv('REDIS_URL')
    SOCKETIO_ASYNC_MODE = os.getenv('SOCKETIO_ASYNC_MODE', 'eventlet')
    
    # Enhanced security
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    
    # Stricter limits
    RATELIMIT_DEFAULT = "100 per day, 20 per hour"
    
    PHOTO_STORAGE_PATH = os.getenv('PHOTO_STORAGE_PATH', '/app/temp-photos')
    
    LOG_LEVEL = 'INFO'
    LOG_FILE = '/app/logs/app.log'
