"""Authenticated transport connections, kept for manual review."""
from quickroll import db
from quickroll.models.base import BaseModel

class DeviceLogin(BaseModel):
    
    __tablename__ = 'device_logins'
    
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    identity = db.Column(db.String(255), nullable=False)
    organization_unit = db.Column(db.String(100), nullable=True, index=True)
    group = db.Column(db.String(50), nullable=True)
    
    fingerprint = db.Column(db.String(128), nullable=True, index=True)
    ip_address = db.Column(db.String(64), nullable=True)
    country = db.Column(db.String(64), nullable=True)
    
    def __repr__(self):
        return f'<DeviceLogin {self.user_id}-{self.ip_address}>'
