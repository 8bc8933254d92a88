"""Attendance protocol error taxonomy."""


class AttendanceError(Exception):
    """Base class for recoverable, user-facing protocol errors."""

    code = 'AttendanceError'
    status_code = 400
    default_message = 'Attendance operation failed'

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {'message': self.message, 'code': self.code}


class AlreadyActive(AttendanceError):
    code = 'AlreadyActive'
    status_code = 409
    default_message = 'Session already exists'


class NoActiveSession(AttendanceError):
    code = 'NoActiveSession'
    status_code = 404
    default_message = 'No active session found'


class AlreadyMarked(AttendanceError):
    code = 'AlreadyMarked'
    status_code = 409
    default_message = 'Attendance already marked'


class ForcedAbsent(AlreadyMarked):
    """Identity carries a terminal presentation-mode violation."""

    code = 'ForcedAbsent'
    default_message = 'Marked absent for leaving full-screen mode'


class InvalidOrUsedCode(AttendanceError):
    code = 'InvalidOrUsedCode'
    default_message = 'Invalid or already used code'


class PhotoRequired(AttendanceError):
    code = 'PhotoRequired'
    default_message = 'Photo verification is required for this session'


class Unauthorized(AttendanceError):
    code = 'Unauthorized'
    status_code = 403
    default_message = 'You are not allowed to perform this action'


class ValidationError(AttendanceError):
    code = 'ValidationError'
    default_message = 'Department, semester, and section are required'
