"""Development configuration."""
import os
from .base import BaseConfig

class DevelopmentConfig(BaseConfig):
    """Development configuration class."""
    
    DEBUG = True
    TESTING = False
    
    SQLALCHEMY_DATABASE_URI = os.getenv('DEV_DATABASE_URL') or 'sqlite:///quickroll_dev.db'
    
    # Redis (optional in dev)
    REDIS_URL = os.getenv('REDIS_URL')
    
    # Photos are optional while developing against a desktop browser
    PHOTO_VERIFICATION_REQUIRED = os.getenv('PHOTO_VERIFICATION_REQUIRED', 'false').lower() == 'true'
    
    LOG_LEVEL = 'DEBUG'
