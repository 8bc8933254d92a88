# File: backend/quickroll/api/sessions.py
"""Read-only REST views of live and past attendance sessions."""
from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from quickroll.models.attendance_record import AttendanceRecord
from quickroll.services.auth_service import AuthService
from quickroll.services.context import get_services
from quickroll.services.errors import Unauthorized
from quickroll.utils.decorators import faculty_required
from quickroll.utils.helpers import success_response
from quickroll.utils.validators import Validator

sessions_bp = Blueprint('sessions', __name__)

def _key_from_args():
    config = current_app.config
    return Validator.session_key(
        request.args.to_dict(),
        units=config.get('ORGANIZATION_UNITS'),
        terms=config.get('COHORT_TERMS'),
        groups=config.get('GROUPS')
    )

@sessions_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Session service is running')

@sessions_bp.route('/course-data', methods=['GET'])
@jwt_required()
def course_data():
    """Departments, semesters and sections a session can be opened for."""
    config = current_app.config
    return success_response(data={
        'departments': list(config.get('ORGANIZATION_UNITS') or []),
        'semesters': list(config.get('COHORT_TERMS') or []),
        'sections': list(config.get('GROUPS') or [])
    })

@sessions_bp.route('/active', methods=['GET'])
@jwt_required()
@faculty_required
def active_sessions():
    """List every session currently accepting codes."""
    sessions = get_services().registry.active_sessions()
    return success_response(
        data={'sessions': sessions, 'count': len(sessions)},
        message=f'{len(sessions)} active session(s)'
    )

@sessions_bp.route('/status', methods=['GET'])
@jwt_required()
def session_status():
    """
    Snapshot of one session.

    Faculty see the whole grid; students only see it for their own section,
    with unclaimed codes hidden.
    """
    key = _key_from_args()
    user = AuthService.get_user_by_id(get_jwt_identity())
    if not user:
        raise Unauthorized('User not found')

    if not user.is_faculty():
        if key.organization_unit != user.organization_unit:
            raise Unauthorized('Department does not match your profile')
        if user.cohort_term and key.cohort_term != user.cohort_term:
            raise Unauthorized('Semester does not match your profile')
        if key.group != user.group:
            raise Unauthorized('Section does not match your profile')

    registry = get_services().registry
    session = registry.status(key)
    if session is None:
        data = key.to_dict()
        data['active'] = False
        return success_response(data=data, message='No session found')

    data = session.to_status(reveal_codes=user.is_faculty())
    stats = registry.last_statistics(key)
    if stats is not None:
        data['statistics'] = stats.to_dict()
    return success_response(data=data)

@sessions_bp.route('/records', methods=['GET'])
@jwt_required()
@faculty_required
def session_records():
    """Past sessions, newest first."""
    limit = min(request.args.get('limit', type=int, default=50), 200)
    query = AttendanceRecord.query

    department = request.args.get('department')
    if department:
        query = query.filter_by(organization_unit=department)
    section = request.args.get('section')
    if section:
        query = query.filter_by(group=section)

    records = query.order_by(AttendanceRecord.created_at.desc()).limit(limit).all()
    return success_response(data={
        'records': [record.to_dict() for record in records],
        'count': len(records)
    })
