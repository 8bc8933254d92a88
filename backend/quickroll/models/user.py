"""User profile as provided by the auth collaborator."""
from enum import Enum
from quickroll import db
from quickroll.models.base import BaseModel

class UserRole(Enum):
    """User roles enumeration."""
    STUDENT = 'student'
    FACULTY = 'faculty'
    ADMIN = 'admin'

class User(BaseModel):
    """
    Read-mostly profile record.

    Credentials live with the external auth service; this table only mirrors
    the fields the attendance protocol needs for authorization and identity.
    """
    
    __tablename__ = 'users'
    
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.Enum(UserRole), nullable=False, default=UserRole.STUDENT)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    
    # Enrolment (students) or home unit (faculty)
    roll_number = db.Column(db.String(20), nullable=True)
    organization_unit = db.Column(db.String(100), nullable=True, index=True)
    cohort_term = db.Column(db.String(20), nullable=True)
    group = db.Column(db.String(50), nullable=True)
    
    # Relationships
    device_sessions = db.relationship('DeviceSession', backref='user', lazy='dynamic')
    device_logins = db.relationship('DeviceLogin', backref='user', lazy='dynamic')
    
    def is_faculty(self) -> bool:
        """Faculty and admins may own sessions."""
        return self.role in [UserRole.FACULTY, UserRole.ADMIN]
    
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT
    
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
    
    def to_dict(self, exclude: list = None) -> dict:
        result = super().to_dict(exclude=exclude)
        result['role'] = self.role.value if self.role else None
        return result
    
    def __repr__(self) -> str:
        return f'<User {self.email}>'
