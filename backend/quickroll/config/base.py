"""Settings shared by every environment."""
import os
from datetime import timedelta

class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False
    
    # JWT Configuration (tokens are issued by the auth service with this key)
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)
    JWT_ALGORITHM = 'HS256'
    
    # CORS
    CORS_ORIGINS = os.environ.get('FRONTEND_URL', 'http://localhost:3000').split(',')
    
    # Rate Limiting
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = "200 per day, 50 per hour"
    
    # Realtime transport
    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE') or 'threading'
    SOCKETIO_MESSAGE_QUEUE = None
    
    # Code grid
    GRID_ROWS = 7
    GRID_COLS = 13
    CODE_AUTO_REFRESH_SECONDS = 8  # 0 disables
    
    # Verification
    PHOTO_VERIFICATION_REQUIRED = True
    PHOTO_STORAGE_PATH = os.environ.get('PHOTO_STORAGE_PATH') or 'temp-photos'
    MAX_PHOTO_SIZE_KB = int(os.environ.get('MAX_PHOTO_SIZE_KB', 500))
    
    # Device correlation
    DEVICE_CORRELATION_ASYNC = True
    SUSPICIOUS_WINDOW_DAYS = 1
    FREQUENT_LOGIN_THRESHOLD = 3
    
    # Course data
    ORGANIZATION_UNITS = ['BTech', 'BCA', 'Law', 'MBA', 'BBA', 'BCom', 'BSc', 'MCA']
    COHORT_TERMS = ['1', '2', '3', '4', '5', '6', '7', '8']
    GROUPS = [
        'A1', 'A2', 'B1', 'B2', 'C1', 'C2', 'D1', 'D2', 'E1', 'E2', 'F1', 'F2',
        'G1', 'G2', 'H1', 'H2', 'I1', 'I2', 'J1', 'J2', 'K1', 'K2', 'L1', 'L2',
        'Placement Group 1', 'Placement Group 2', 'Placement Group 3',
        'Placement Group 4', 'Placement Group 5'
    ]
    
    # Logging
    LOG_LEVEL = 'INFO'
    LOG_FILE = 'logs/app.log'
