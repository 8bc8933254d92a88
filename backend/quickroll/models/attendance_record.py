# backend/quickroll/models/attendance_record.py
"""Final statistics of an ended attendance session."""
from quickroll import db
from quickroll.models.base import BaseModel

class AttendanceRecord(BaseModel):
    """Attendance record saved when a session ends."""
    
    __tablename__ = 'attendance_records'
    
    organization_unit = db.Column(db.String(100), nullable=False, index=True)
    cohort_term = db.Column(db.String(20), nullable=False)
    group = db.Column(db.String(50), nullable=False)
    mode = db.Column(db.String(20), nullable=False, default='roll')
    
    owner_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    
    # Stats
    total_participants = db.Column(db.Integer, default=0)
    present_count = db.Column(db.Integer, default=0)
    absent_count = db.Column(db.Integer, default=0)
    present_list = db.Column(db.JSON, nullable=False, default=list)
    absentees = db.Column(db.JSON, nullable=False, default=list)
    forced_absent = db.Column(db.JSON, nullable=False, default=list)
    ended_at = db.Column(db.DateTime, nullable=True)
    
    @classmethod
    def from_statistics(cls, stats, owner_id: int = None) -> 'AttendanceRecord':
        return cls(
            organization_unit=stats.key.organization_unit,
            cohort_term=stats.key.cohort_term,
            group=stats.key.group,
            mode=stats.mode.value,
            owner_id=owner_id,
            total_participants=stats.total_participants,
            present_count=stats.present_count,
            absent_count=stats.absent_count,
            present_list=list(stats.present_list),
            absentees=list(stats.absentees),
            forced_absent=list(stats.forced_absent),
            ended_at=stats.ended_at
        )
    
    def __repr__(self):
        return f'<AttendanceRecord {self.organization_unit}-{self.cohort_term}-{self.group}>'
