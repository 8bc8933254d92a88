"""Test the Socket.IO clients against a recording fake."""
import hashlib
import json
import pytest
from quickroll.client.presentation import AvailableDisplay, MonitorState
from quickroll.client.session_client import (
    OWNER_COMMAND_TIMEOUT, OwnerClient, ParticipantClient, SessionClient,
    collect_device_signature
)
from quickroll.services.session_registry import SessionKey

KEY = SessionKey('BTech', '5', 'A1')

class FakeSio:
    def __init__(self):
        self.handlers = {}
        self.emitted = []
        self.connected_with = None

    def on(self, event, handler):
        self.handlers[event] = handler

    def connect(self, url, auth=None):
        self.connected_with = (url, auth)
        self.handlers['connect']()

    def disconnect(self):
        self.handlers['disconnect']('client disconnect')

    def emit(self, event, data=None):
        self.emitted.append((event, data))

    def deliver(self, event, data=None):
        self.handlers[event](data)

    def events(self, name):
        return [data for event, data in self.emitted if event == name]

class FakeTimer:
    created = []

    def __init__(self, interval, function, args=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self):
        pass

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args)

@pytest.fixture(autouse=True)
def reset_timers():
    FakeTimer.created = []

@pytest.fixture
def sio():
    return FakeSio()

def status(active=True, section='A1'):
    return {
        'department': 'BTech', 'semester': '5', 'section': section,
        'active': active, 'grid': [[{'code': None, 'used': False}]]
    }

def test_device_signature_is_order_independent():
    a = collect_device_signature({'ua': 'x', 'tz': 'UTC'}, lambda: ['10.0.0.1', 'junk'])
    b = collect_device_signature({'tz': 'UTC', 'ua': 'x'})

    assert a.stable_fingerprint == b.stable_fingerprint
    expected = hashlib.sha256(json.dumps([['tz', 'UTC'], ['ua', 'x']]).encode('utf-8')).hexdigest()
    assert a.stable_fingerprint == expected
    assert a.network_addresses == frozenset({'10.0.0.1'})

def test_device_signature_survives_failed_discovery():
    def broken():
        raise OSError('no network')

    signature = collect_device_signature({'ua': 'x'}, broken)
    assert signature.network_addresses == frozenset()

def test_connect_and_reconnect_resync(sio):
    client = SessionClient('http://server', 'tok', KEY, sio=sio)
    client.connect()

    assert sio.connected_with == ('http://server', {'token': 'tok'})
    assert sio.events('getSessionStatus') == [KEY.to_dict()]

    # A reconnect fires `connect` again
    sio.handlers['connect']()
    assert len(sio.events('getSessionStatus')) == 2

def test_snapshot_ignores_other_rooms(sio):
    client = SessionClient('http://server', 'tok', KEY, sio=sio)

    sio.deliver('sessionStatus', status(section='A2'))
    assert client.status is None

    sio.deliver('sessionStatus', status())
    assert client.status['active'] is True

    grid = [[{'code': None, 'used': True}]]
    sio.deliver('updateGrid', dict(KEY.to_dict(), grid=grid))
    assert client.grid == grid

    sio.deliver('sessionEnded', dict(KEY.to_dict(), presentCount=3))
    assert client.statistics['presentCount'] == 3

def test_owner_commands(sio):
    owner = OwnerClient('http://server', 'tok', KEY, sio=sio, timer_factory=FakeTimer)

    owner.start_session('roll', 60)
    assert owner.pending is True
    assert sio.events('startSession') == [dict(KEY.to_dict(), sessionType='roll', totalStudents=60)]

    sio.deliver('success', {'message': 'Session started successfully'})
    assert owner.pending is False
    assert FakeTimer.created[0].cancelled

    owner.refresh_codes()
    owner.end_session(roster=['01', '02'])
    assert sio.events('endSession')[0]['roster'] == ['01', '02']
    assert sio.events('refreshCodes') == [KEY.to_dict()]

def test_owner_pending_times_out(sio):
    owner = OwnerClient('http://server', 'tok', KEY, sio=sio, timer_factory=FakeTimer)

    owner.end_session()
    timer = FakeTimer.created[0]
    assert timer.interval == OWNER_COMMAND_TIMEOUT

    timer.fire()
    assert owner.pending is False

def test_owner_stale_timeout_does_not_clear_new_command(sio):
    owner = OwnerClient('http://server', 'tok', KEY, sio=sio, timer_factory=FakeTimer)

    owner.start_session('roll', 10)
    owner.end_session()
    FakeTimer.created[0].fire()
    assert owner.pending is True

def test_owner_error_clears_pending(sio):
    owner = OwnerClient('http://server', 'tok', KEY, sio=sio, timer_factory=FakeTimer)

    owner.start_session('roll', 10)
    sio.deliver('error', {'message': 'Session already exists', 'code': 'AlreadyActive'})
    assert owner.pending is False
    assert owner.last_error['code'] == 'AlreadyActive'

def test_participant_mark_attendance(sio):
    signature = collect_device_signature({'ua': 'x'}, lambda: ['192.168.0.7'])
    client = ParticipantClient('http://server', 'tok', KEY, roll_number='07',
                               device_signature=signature, sio=sio)

    sio.deliver('photoUploadResponse', {'success': True, 'photoRef': 'p.jpg'})
    client.mark_attendance(' ab12 ')

    sent = sio.events('markAttendance')[0]
    assert sent['code'] == 'AB12'
    assert sent['rollNumber'] == '07'
    assert sent['photoRef'] == 'p.jpg'
    assert sent['fingerprint'] == signature.stable_fingerprint
    assert sent['webRTCIPs'] == ['192.168.0.7']

    sio.deliver('attendanceResponse', {'success': True})
    assert client.last_response == {'success': True}

def test_participant_connect_sends_fingerprint(sio):
    signature = collect_device_signature({'ua': 'x'})
    client = ParticipantClient('http://server', 'tok', KEY, email='a@example.com',
                               device_signature=signature, sio=sio)
    client.connect()

    assert sio.connected_with[1]['fingerprint'] == signature.stable_fingerprint

def test_monitor_follows_session_and_reports(sio):
    geometry = {'window': (1920, 1080)}
    display = AvailableDisplay(lambda: geometry['window'], lambda: (1920, 1080))
    client = ParticipantClient('http://server', 'tok', KEY, roll_number='07', sio=sio,
                               display=display, timer_factory=FakeTimer)

    sio.deliver('sessionStatus', status(active=True))
    assert client.monitor.active

    client.monitor.on_visibility_change(hidden=True)
    FakeTimer.created[0].fire()

    assert client.monitor.state == MonitorState.FORCED_ABSENT
    sent = sio.events('fullScreenViolation')
    assert len(sent) == 1
    assert sent[0]['violationKind'] == 'page_hidden'
    assert sent[0]['rollNumber'] == '07'

    sio.deliver('fullScreenViolationResponse', {'success': True})
    assert client.violation_response == {'success': True}

def test_monitor_stops_when_session_ends(sio):
    display = AvailableDisplay(lambda: (1920, 1080), lambda: (1920, 1080))
    client = ParticipantClient('http://server', 'tok', KEY, roll_number='07', sio=sio,
                               display=display, timer_factory=FakeTimer)

    sio.deliver('sessionStatus', status(active=True))
    client.monitor.on_mode_exit()
    sio.deliver('sessionStatus', status(active=False))

    FakeTimer.created[0].fire()
    assert sio.events('fullScreenViolation') == []
    assert not client.monitor.active

def test_monitor_restarts_for_next_session(sio):
    display = AvailableDisplay(lambda: (1920, 1080), lambda: (1920, 1080))
    client = ParticipantClient('http://server', 'tok', KEY, roll_number='07', sio=sio,
                               display=display, timer_factory=FakeTimer)

    sio.deliver('sessionStatus', status(active=True))
    client.monitor.on_mode_exit()
    FakeTimer.created[0].fire()
    sio.deliver('sessionStatus', status(active=True))
    assert client.monitor.state == MonitorState.FORCED_ABSENT

    sio.deliver('sessionStatus', status(active=False))
    sio.deliver('sessionStatus', status(active=True))
    assert client.monitor.on_mode_exit() == MonitorState.SUSPECTED_EXIT
    assert len(FakeTimer.created) == 2

    FakeTimer.created[1].fire()
    assert len(sio.events('fullScreenViolation')) == 2
