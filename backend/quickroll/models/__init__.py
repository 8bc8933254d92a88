"""Models package with all models."""
from .base import BaseModel
from .user import User, UserRole
from .device_session import DeviceSession
from .device_login import DeviceLogin
from .attendance_record import AttendanceRecord

__all__ = [
    'BaseModel', 'User', 'UserRole',
    'DeviceSession', 'DeviceLogin', 'AttendanceRecord'
]
