# File: backend/quickroll/api/session_events.py
"""Live attendance session events over Socket.IO."""
import threading
from dataclasses import dataclass
from functools import wraps
from typing import Dict, Optional

from flask import Flask, current_app, request
from flask_socketio import ConnectionRefusedError, emit, join_room
from sqlalchemy.exc import SQLAlchemyError

from quickroll import db, socketio
from quickroll.models.attendance_record import AttendanceRecord
from quickroll.services.auth_service import AuthService
from quickroll.services.context import get_services
from quickroll.services.device_correlator import DeviceCorrelator, DeviceSignature, client_ip
from quickroll.services.errors import (
    AttendanceError, NoActiveSession, PhotoRequired, Unauthorized, ValidationError
)
from quickroll.services.session_registry import (
    AttendanceSession, SessionKey, SessionMode, ViolationKind
)
from quickroll.utils.helpers import event_error
from quickroll.utils.validators import Validator


@dataclass
class ConnectionContext:
    """Who is behind one socket; built once at connect time."""
    sid: str
    user_id: int
    name: str
    role: str
    email: str
    roll_number: Optional[str]
    organization_unit: Optional[str]
    cohort_term: Optional[str]
    group: Optional[str]
    ip: Optional[str]
    user_agent: str
    fingerprint: Optional[str] = None

    @property
    def is_owner(self) -> bool:
        return self.role in ('faculty', 'admin')

    @property
    def is_student(self) -> bool:
        return self.role == 'student'

    @property
    def photo_owner(self) -> str:
        return self.roll_number or self.user_id

    def identity_for(self, mode: SessionMode) -> Optional[str]:
        if mode == SessionMode.ROLL_BASED:
            return self.roll_number
        return self.email

    def check_enrolment(self, key: SessionKey) -> None:
        """Participants may only reach their own room."""
        if self.is_owner:
            return
        if key.organization_unit != self.organization_unit:
            raise Unauthorized('Department does not match your profile')
        if self.cohort_term and key.cohort_term != self.cohort_term:
            raise Unauthorized('Semester does not match your profile')
        if key.group != self.group:
            raise Unauthorized('Section does not match your profile')


class SessionTransport:
    """Routes events between sockets and the session services."""

    def __init__(self, app: Flask):
        self.app = app
        self.connections: Dict[str, ConnectionContext] = {}
        self._refreshing = set()
        self._refresh_lock = threading.Lock()

    # Broadcasts are scoped to one key: owners get codes, participants don't
    def broadcast_status(self, session: AttendanceSession) -> None:
        key = session.key
        socketio.emit('sessionStatus', session.to_status(reveal_codes=True), to=key.owner_room)
        socketio.emit('sessionStatus', session.to_status(reveal_codes=False), to=key.room)

    def broadcast_grid(self, key: SessionKey, grid) -> None:
        for room, reveal in ((key.owner_room, True), (key.room, False)):
            payload = key.to_dict()
            payload['grid'] = grid.to_payload(reveal_codes=reveal)
            socketio.emit('updateGrid', payload, to=room)

    def broadcast_ended(self, key: SessionKey, stats) -> None:
        payload = stats.to_dict()
        payload['success'] = True
        socketio.emit('sessionEnded', payload, to=key.owner_room)
        socketio.emit('sessionEnded', payload, to=key.room)

    def join(self, ctx: ConnectionContext, key: SessionKey) -> None:
        ctx.check_enrolment(key)
        join_room(key.owner_room if ctx.is_owner else key.room)

    def start_auto_refresh(self, session: AttendanceSession) -> None:
        interval = self.app.config.get('CODE_AUTO_REFRESH_SECONDS') or 0
        if interval <= 0:
            return
        with self._refresh_lock:
            episode = (session.key, session.created_at)
            if episode in self._refreshing:
                return
            self._refreshing.add(episode)
        socketio.start_background_task(self._auto_refresh_loop, session.key, session.created_at, interval)

    def _auto_refresh_loop(self, key: SessionKey, started_at, interval: float) -> None:
        try:
            while True:
                socketio.sleep(interval)
                with self.app.app_context():
                    registry = get_services().registry
                    session = registry.status(key)
                    if session is None or not session.is_active or session.created_at != started_at:
                        break
                    try:
                        grid = registry.refresh_codes(key)
                    except NoActiveSession:
                        break
                    self.broadcast_grid(key, grid)
        finally:
            with self._refresh_lock:
                self._refreshing.discard((key, started_at))

    def record_device(self, key: SessionKey, identity: str,
                      signature: DeviceSignature, user_id: int) -> None:
        """Advisory only: a failure here never affects the claim."""
        with self.app.app_context():
            try:
                DeviceCorrelator.record_redemption(key, identity, signature, user_id=user_id)
            except SQLAlchemyError as e:
                db.session.rollback()
                current_app.logger.error(f"Device correlation failed for {identity}: {e}")


def configure(app: Flask) -> None:
    app.extensions['session_transport'] = SessionTransport(app)


def transport() -> SessionTransport:
    return current_app.extensions['session_transport']


def session_key(data: Dict) -> SessionKey:
    config = current_app.config
    return Validator.session_key(
        data,
        units=config.get('ORGANIZATION_UNITS'),
        terms=config.get('COHORT_TERMS'),
        groups=config.get('GROUPS')
    )


def course_data() -> Dict:
    config = current_app.config
    return {
        'departments': list(config.get('ORGANIZATION_UNITS') or []),
        'semesters': list(config.get('COHORT_TERMS') or []),
        'sections': list(config.get('GROUPS') or [])
    }


def protocol_event(error_event: str = 'error'):
    """
    Resolve the caller's ConnectionContext and report protocol errors on
    `error_event` instead of dropping the connection.
    """
    def decorator(f):
        @wraps(f)
        def wrapper(data=None):
            ctx = transport().connections.get(request.sid)
            if ctx is None:
                emit(error_event, {'success': False, **Unauthorized('Not authenticated').to_dict()})
                return
            try:
                return f(ctx, data or {})
            except AttendanceError as e:
                current_app.logger.info(f"{f.__name__} rejected for {ctx.email}: {e.message}")
                emit(error_event, {'success': False, **event_error(e)})
            except Exception as e:
                current_app.logger.exception(f"Error handling {f.__name__}: {str(e)}")
                emit(error_event, {'success': False, 'message': 'Internal server error', 'code': 'ServerError'})
        return wrapper
    return decorator


def require_owner(ctx: ConnectionContext, action: str) -> None:
    if not ctx.is_owner:
        raise Unauthorized(f'Only faculty members can {action}')


def require_student(ctx: ConnectionContext, action: str) -> None:
    if not ctx.is_student:
        raise Unauthorized(f'Only students can {action}')


def resolve_identity(ctx: ConnectionContext, session: AttendanceSession, data: Dict) -> str:
    """The profile is authoritative; a submitted identity must agree with it."""
    identity = ctx.identity_for(session.mode)
    if not identity:
        raise ValidationError('Your profile has no identity for this session type')

    if session.mode == SessionMode.ROLL_BASED:
        submitted = data.get('rollNumber')
        if submitted and session.normalize_identity(submitted) != session.normalize_identity(identity):
            raise ValidationError('Roll number does not match your profile')
    else:
        submitted = data.get('gmail') or data.get('email')
        if submitted and session.normalize_identity(submitted) != session.normalize_identity(identity):
            raise ValidationError('Email does not match your profile')

    return identity


@socketio.on('connect')
def on_connect(auth=None):
    token = (auth or {}).get('token') or request.args.get('token')
    user, error = AuthService.identify(token)
    if error:
        current_app.logger.info(f"Socket connection refused: {error}")
        raise ConnectionRefusedError(error)

    ip = client_ip(
        request.headers.get('X-Forwarded-For'),
        request.headers.get('X-Real-IP'),
        request.remote_addr
    )
    ctx = ConnectionContext(
        sid=request.sid,
        user_id=user.id,
        name=user.name,
        role=user.role.value,
        email=user.email,
        roll_number=user.roll_number,
        organization_unit=user.organization_unit,
        cohort_term=user.cohort_term,
        group=user.group,
        ip=ip,
        user_agent=request.headers.get('User-Agent', 'Unknown'),
        fingerprint=(auth or {}).get('fingerprint')
    )
    transport().connections[request.sid] = ctx

    signature = DeviceSignature.from_payload(auth or {}, source_ip=ip)
    try:
        DeviceCorrelator.record_login(
            user, signature, ip_address=ip,
            country=request.headers.get('CF-IPCountry')
        )
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Could not record login for {user.email}: {e}")

    current_app.logger.info(f"User connected: {user.name} ({user.role.value})")
    emit('courseData', course_data())


@socketio.on('disconnect')
def on_disconnect(reason=None):
    ctx = transport().connections.pop(request.sid, None)
    if ctx:
        current_app.logger.info(f"User disconnected: {ctx.name}")


@socketio.on('getCourseData')
@protocol_event()
def on_get_course_data(ctx, data):
    emit('courseData', course_data())


@socketio.on('getSessionStatus')
@protocol_event()
def on_get_session_status(ctx, data):
    key = session_key(data)
    transport().join(ctx, key)

    session = get_services().registry.status(key)
    if session is None:
        payload = key.to_dict()
        payload.update({
            'active': False,
            'grid': [],
            'mode': SessionMode.ROLL_BASED.value,
            'sessionType': SessionMode.ROLL_BASED.value,
            'expectedParticipantCount': 0,
            'totalStudents': 0,
            'presentCount': 0,
            'photoVerificationRequired': get_services().registry.photo_verification_required
        })
        emit('sessionStatus', payload)
        return

    emit('sessionStatus', session.to_status(reveal_codes=ctx.is_owner))


@socketio.on('startSession')
@protocol_event()
def on_start_session(ctx, data):
    require_owner(ctx, 'start attendance sessions')
    key = session_key(data)
    mode = SessionMode.parse(data.get('sessionType') or data.get('mode'))
    expected = data.get('totalStudents', data.get('expectedParticipantCount'))

    session = get_services().registry.start(key, mode, expected, owner_id=ctx.user_id)
    current_app.logger.info(
        f"Session started for {key.room} by {ctx.email} "
        f"(type={mode.value}, expected={session.expected_participant_count})"
    )

    channel = transport()
    channel.join(ctx, key)
    channel.broadcast_status(session)
    channel.start_auto_refresh(session)
    emit('success', {'message': 'Session started successfully'})


@socketio.on('endSession')
@protocol_event()
def on_end_session(ctx, data):
    require_owner(ctx, 'end attendance sessions')
    key = session_key(data)
    services = get_services()

    stats = services.registry.end(key, roster=Validator.roster(data))
    session = services.registry.status(key)

    channel = transport()
    channel.broadcast_ended(key, stats)
    channel.broadcast_status(session)
    emit('success', {'message': 'Session ended successfully'})

    # Cleanup and persistence happen after the session is closed
    try:
        services.photos.delete_session_photos(key)
    except OSError as e:
        current_app.logger.error(f"Error cleaning up session photos for {key.room}: {e}")

    try:
        AttendanceRecord.from_statistics(stats, owner_id=ctx.user_id).save()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(f"Error saving attendance record for {key.room}: {e}")


@socketio.on('refreshCodes')
@protocol_event()
def on_refresh_codes(ctx, data):
    require_owner(ctx, 'refresh attendance codes')
    key = session_key(data)
    registry = get_services().registry

    grid = registry.refresh_codes(key)

    channel = transport()
    channel.broadcast_grid(key, grid)
    channel.broadcast_status(registry.status(key))


@socketio.on('uploadAttendancePhoto')
@protocol_event('photoUploadResponse')
def on_upload_photo(ctx, data):
    require_student(ctx, 'upload attendance photos')
    key = session_key(data)
    ctx.check_enrolment(key)

    photo_data = data.get('photoData') or data.get('photoBytesOrDataUri')
    info = get_services().photos.save(photo_data, key, ctx.photo_owner)
    emit('photoUploadResponse', {
        'success': True,
        'message': 'Photo uploaded successfully',
        'photoRef': info['photoRef'],
        'photoInfo': info
    })


@socketio.on('markAttendance')
@protocol_event('attendanceResponse')
def on_mark_attendance(ctx, data):
    require_student(ctx, 'mark attendance')
    key = session_key(data)
    ctx.check_enrolment(key)
    services = get_services()

    session = services.registry.status(key)
    if session is None or not session.is_active:
        raise NoActiveSession()

    identity = resolve_identity(ctx, session, data)
    photo_ref = data.get('photoRef') or data.get('photoFilename')
    if photo_ref and not services.photos.belongs_to(photo_ref, key, ctx.photo_owner):
        raise PhotoRequired('Photo not found, please capture it again')

    signature = DeviceSignature.from_payload(data, source_ip=ctx.ip)
    result = services.engine.redeem(key, identity, data.get('code'), signature, photo_ref)

    emit('attendanceResponse', {
        'success': True,
        'message': result.message,
        'photoVerified': bool(photo_ref),
        'row': result.row,
        'col': result.col
    })

    channel = transport()
    channel.broadcast_grid(key, result.grid)
    channel.broadcast_status(services.registry.status(key))

    if signature is not None:
        if current_app.config.get('DEVICE_CORRELATION_ASYNC'):
            socketio.start_background_task(channel.record_device, key, result.identity, signature, ctx.user_id)
        else:
            channel.record_device(key, result.identity, signature, ctx.user_id)


@socketio.on('fullScreenViolation')
@protocol_event('fullScreenViolationResponse')
def on_full_screen_violation(ctx, data):
    require_student(ctx, 'report full-screen violations')
    key = session_key(data)
    ctx.check_enrolment(key)
    registry = get_services().registry

    session = registry.status(key)
    if session is None or not session.is_active:
        raise NoActiveSession()

    identity = resolve_identity(ctx, session, data)
    kind = ViolationKind.parse(data.get('violationKind'))
    newly_marked = registry.record_violation(key, identity, kind)

    emit('fullScreenViolationResponse', {
        'success': True,
        'message': (
            'You have been marked absent for leaving full-screen mode'
            if newly_marked else 'Violation already recorded'
        ),
        'violationKind': kind.value
    })

    if newly_marked:
        transport().broadcast_status(registry.status(key))
