"""Device usage recorded for every successful redemption."""
from quickroll import db
from quickroll.models.base import BaseModel

class DeviceSession(BaseModel):
    """One redemption as seen from the device side."""
    
    __tablename__ = 'device_sessions'
    
    fingerprint = db.Column(db.String(128), nullable=False, index=True)
    network_addresses = db.Column(db.JSON, nullable=False, default=list)
    ip_address = db.Column(db.String(64), nullable=True)
    
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)
    identity = db.Column(db.String(255), nullable=False)
    
    organization_unit = db.Column(db.String(100), nullable=False)
    cohort_term = db.Column(db.String(20), nullable=False)
    group = db.Column(db.String(50), nullable=False)
    
    def to_entry(self) -> dict:
        return {
            'identity': self.identity,
            'userId': self.user_id,
            'ip': self.ip_address,
            'networkAddresses': list(self.network_addresses or []),
            'department': self.organization_unit,
            'semester': self.cohort_term,
            'section': self.group,
            'timestamp': self.created_at.isoformat()
        }
    
    def __repr__(self):
        return f'<DeviceSession {self.fingerprint[:8]}-{self.identity}>'
