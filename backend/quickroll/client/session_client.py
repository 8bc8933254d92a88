# backend/quickroll/client/session_client.py
"""Socket.IO clients for session owners and participants."""
import hashlib
import json
import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional

import socketio

from quickroll.client.presentation import PresentationMonitor, UnavailableDisplay
from quickroll.services.device_correlator import DeviceSignature, clean_addresses
from quickroll.services.session_registry import SessionKey, SessionMode, ViolationKind

logger = logging.getLogger(__name__)

OWNER_COMMAND_TIMEOUT = 3


def collect_device_signature(traits: Dict, address_discovery: Callable[[], Iterable[str]] = None,
                             source_ip: str = None) -> DeviceSignature:
    """
    Hash stable device traits (user agent, screen, timezone, ...) into a
    fingerprint. Addresses come from `address_discovery`; a failing probe
    yields a signature without addresses.
    """
    canonical = json.dumps(sorted((str(k), str(v)) for k, v in (traits or {}).items()))
    fingerprint = hashlib.sha256(canonical.encode('utf-8')).hexdigest()

    addresses: List[str] = []
    if address_discovery is not None:
        try:
            addresses = clean_addresses(address_discovery())
        except OSError as e:
            logger.warning(f"Address discovery failed: {e}")

    return DeviceSignature(
        stable_fingerprint=fingerprint,
        network_addresses=frozenset(addresses),
        source_ip=source_ip
    )


def signature_payload(signature: Optional[DeviceSignature]) -> Dict:
    if signature is None:
        return {}
    addresses = sorted(signature.network_addresses)
    return {
        'fingerprint': signature.stable_fingerprint,
        'webRTCIPs': addresses,
        'deviceSignature': {
            'stableFingerprint': signature.stable_fingerprint,
            'networkAddresses': addresses
        }
    }


class SessionClient:
    """
    One authenticated connection scoped to a SessionKey.

    Broadcasts are not replayed after a drop, so every (re)connect asks for a
    fresh `sessionStatus` and the latest snapshot simply replaces the old one.
    """

    def __init__(self, url: str, token: str, key: SessionKey,
                 device_signature: DeviceSignature = None, sio=None):
        self.url = url
        self.token = token
        self.key = key
        self.device_signature = device_signature
        self.sio = sio if sio is not None else socketio.Client(reconnection=True)

        self.status: Optional[Dict] = None
        self.grid: Optional[List] = None
        self.statistics: Optional[Dict] = None
        self.course_data: Optional[Dict] = None
        self.last_error: Optional[Dict] = None

        self._register_handlers()

    def _register_handlers(self) -> None:
        self.sio.on('connect', self._on_connect)
        self.sio.on('disconnect', self._on_disconnect)
        self.sio.on('courseData', self._on_course_data)
        self.sio.on('sessionStatus', self._on_session_status)
        self.sio.on('updateGrid', self._on_update_grid)
        self.sio.on('sessionEnded', self._on_session_ended)
        self.sio.on('error', self._on_error)

    def connect(self) -> None:
        auth = {'token': self.token}
        if self.device_signature is not None:
            auth['fingerprint'] = self.device_signature.stable_fingerprint
        self.sio.connect(self.url, auth=auth)

    def disconnect(self) -> None:
        self.sio.disconnect()

    def key_payload(self, **extra) -> Dict:
        payload = self.key.to_dict()
        payload.update(extra)
        return payload

    def request_status(self) -> None:
        self.sio.emit('getSessionStatus', self.key_payload())

    def _matches_key(self, data: Dict) -> bool:
        return (
            data.get('department') == self.key.organization_unit
            and data.get('semester') == self.key.cohort_term
            and data.get('section') == self.key.group
        )

    def _on_connect(self) -> None:
        logger.info(f"Connected to {self.url}; resyncing {self.key.room}")
        self.request_status()

    def _on_disconnect(self, reason=None) -> None:
        logger.info(f"Disconnected from {self.url}: {reason}")

    def _on_course_data(self, data) -> None:
        self.course_data = data

    def _on_session_status(self, data) -> None:
        if not self._matches_key(data):
            return
        self.status = data
        self.grid = data.get('grid')

    def _on_update_grid(self, data) -> None:
        if self._matches_key(data):
            self.grid = data.get('grid')

    def _on_session_ended(self, data) -> None:
        if self._matches_key(data):
            self.statistics = data

    def _on_error(self, data) -> None:
        self.last_error = data
        logger.warning(f"Server error: {(data or {}).get('message')}")


class OwnerClient(SessionClient):
    """Faculty view: start, end and refresh the session for one key."""

    def __init__(self, url: str, token: str, key: SessionKey,
                 device_signature: DeviceSignature = None, sio=None,
                 command_timeout: float = OWNER_COMMAND_TIMEOUT,
                 timer_factory=threading.Timer):
        self.pending = False
        self.command_timeout = command_timeout
        self.timer_factory = timer_factory
        self._pending_timer = None
        self._pending_generation = 0
        self._pending_lock = threading.Lock()
        super().__init__(url, token, key, device_signature=device_signature, sio=sio)

    def _register_handlers(self) -> None:
        super()._register_handlers()
        self.sio.on('success', self._on_success)

    def start_session(self, mode=SessionMode.ROLL_BASED, expected_count: int = None) -> None:
        mode = SessionMode.parse(mode)
        self._set_pending()
        self.sio.emit('startSession', self.key_payload(
            sessionType=mode.value,
            totalStudents=expected_count
        ))

    def end_session(self, roster: Iterable[str] = None) -> None:
        self._set_pending()
        extra = {'roster': list(roster)} if roster is not None else {}
        self.sio.emit('endSession', self.key_payload(**extra))

    def refresh_codes(self) -> None:
        self.sio.emit('refreshCodes', self.key_payload())

    # The timeout only resets the UI; it says nothing about server state
    def _set_pending(self) -> None:
        with self._pending_lock:
            self._cancel_pending_timer()
            self.pending = True
            self._pending_generation += 1
            self._pending_timer = self.timer_factory(
                self.command_timeout, self._expire_pending, args=(self._pending_generation,)
            )
            self._pending_timer.daemon = True
            self._pending_timer.start()

    def _clear_pending(self) -> None:
        with self._pending_lock:
            self._cancel_pending_timer()
            self._pending_generation += 1
            self.pending = False

    def _cancel_pending_timer(self) -> None:
        if self._pending_timer is not None:
            self._pending_timer.cancel()
            self._pending_timer = None

    def _expire_pending(self, generation: int) -> None:
        with self._pending_lock:
            if generation == self._pending_generation:
                self.pending = False
                self._pending_timer = None

    def _on_success(self, data) -> None:
        self._clear_pending()

    def _on_error(self, data) -> None:
        super()._on_error(data)
        self._clear_pending()


class ParticipantClient(SessionClient):
    """Student view: redeem a code, upload a photo, watch presentation mode."""

    def __init__(self, url: str, token: str, key: SessionKey,
                 roll_number: str = None, email: str = None,
                 device_signature: DeviceSignature = None, sio=None,
                 display: UnavailableDisplay = None, timer_factory=threading.Timer):
        self.roll_number = roll_number
        self.email = email
        self.last_response: Optional[Dict] = None
        self.photo_ref: Optional[str] = None
        self.violation_response: Optional[Dict] = None
        self.monitor = None
        if display is not None:
            self.monitor = PresentationMonitor(
                display, self._report_violation, timer_factory=timer_factory,
                identity=roll_number or email
            )
        super().__init__(url, token, key, device_signature=device_signature, sio=sio)

    def _register_handlers(self) -> None:
        super()._register_handlers()
        self.sio.on('attendanceResponse', self._on_attendance_response)
        self.sio.on('photoUploadResponse', self._on_photo_upload_response)
        self.sio.on('fullScreenViolationResponse', self._on_violation_response)

    def identity_fields(self) -> Dict:
        fields = {}
        if self.roll_number:
            fields['rollNumber'] = self.roll_number
        if self.email:
            fields['gmail'] = self.email
        return fields

    def mark_attendance(self, code: str, photo_ref: str = None) -> None:
        payload = self.key_payload(code=str(code).strip().upper(), **self.identity_fields())
        payload.update(signature_payload(self.device_signature))
        photo_ref = photo_ref or self.photo_ref
        if photo_ref:
            payload['photoRef'] = photo_ref
        self.sio.emit('markAttendance', payload)

    def upload_photo(self, photo_data) -> None:
        self.sio.emit('uploadAttendancePhoto', self.key_payload(photoData=photo_data))

    def _report_violation(self, kind: ViolationKind) -> None:
        payload = self.key_payload(violationKind=kind.value, **self.identity_fields())
        payload.update(signature_payload(self.device_signature))
        self.sio.emit('fullScreenViolation', payload)

    def _on_session_status(self, data) -> None:
        super()._on_session_status(data)
        if self.monitor is None or not self._matches_key(data):
            return
        if data.get('active'):
            if not self.monitor.active:
                self.monitor.activate()
        else:
            self.monitor.deactivate()

    def _on_attendance_response(self, data) -> None:
        self.last_response = data

    def _on_photo_upload_response(self, data) -> None:
        if data and data.get('success'):
            self.photo_ref = data.get('photoRef')
        else:
            self.last_error = data

    def _on_violation_response(self, data) -> None:
        self.violation_response = data
