"""Test device signature parsing and correlation reports."""
from datetime import datetime, timedelta
from quickroll import db
from quickroll.models.device_login import DeviceLogin
from quickroll.models.device_session import DeviceSession
from quickroll.services.device_correlator import (
    DeviceCorrelator, DeviceSignature, clean_addresses, client_ip
)
from quickroll.services.session_registry import SessionKey

KEY = SessionKey('BTech', '5', 'A1')

def signature(fingerprint, *addresses):
    return DeviceSignature(fingerprint, frozenset(addresses), source_ip='10.0.0.5')

def test_signature_from_legacy_payload():
    sig = DeviceSignature.from_payload(
        {'fingerprint': 'abc', 'webRTCIPs': ['192.168.1.4', 'not-an-ip', ' 10.0.0.1 ']},
        source_ip='1.2.3.4'
    )
    assert sig.stable_fingerprint == 'abc'
    assert sig.network_addresses == frozenset({'192.168.1.4', '10.0.0.1'})
    assert sig.source_ip == '1.2.3.4'

def test_signature_from_nested_payload():
    sig = DeviceSignature.from_payload({
        'deviceSignature': {'stableFingerprint': 'xyz', 'networkAddresses': ['::1']}
    })
    assert sig.stable_fingerprint == 'xyz'
    assert sig.to_dict()['networkAddresses'] == ['::1']

def test_signature_missing_fingerprint():
    assert DeviceSignature.from_payload({'webRTCIPs': ['10.0.0.1']}) is None

def test_signature_from_malformed_payload():
    assert DeviceSignature.from_payload({'deviceSignature': 'abc'}) is None
    assert DeviceSignature.from_payload(['fingerprint']) is None

    sig = DeviceSignature.from_payload({'deviceSignature': ['x'], 'fingerprint': 'fp', 'webRTCIPs': 7})
    assert sig.stable_fingerprint == 'fp'
    assert sig.network_addresses == frozenset()

def test_clean_addresses_drops_garbage():
    assert clean_addresses(['999.1.1.1', 'fe80::1', None]) == ['fe80::1']

def test_client_ip_precedence():
    assert client_ip('203.0.113.9, 10.0.0.1', '10.0.0.2', '10.0.0.3') == '203.0.113.9'
    assert client_ip(None, '10.0.0.2', '10.0.0.3') == '10.0.0.2'
    assert client_ip(None, None, '::ffff:10.0.0.3') == '10.0.0.3'
    assert client_ip(None, None, '::1') == '127.0.0.1'
    assert client_ip() is None

def test_find_suspicious_groups_shared_fingerprints(app, student, other_student):
    DeviceCorrelator.record_redemption(KEY, '07', signature('shared'), user_id=student.id)
    DeviceCorrelator.record_redemption(KEY, '08', signature('shared'), user_id=other_student.id)
    DeviceCorrelator.record_redemption(KEY, '09', signature('own-device'))

    findings = DeviceCorrelator.find_suspicious(window_days=1)

    assert len(findings) == 1
    assert findings[0]['deviceSignature'] == 'shared'
    assert findings[0]['distinctIdentities'] == 2
    assert {s['identity'] for s in findings[0]['sessions']} == {'07', '08'}

def test_find_suspicious_three_identities_one_device(app):
    for identity in ('07', '08', '09'):
        DeviceCorrelator.record_redemption(KEY, identity, signature('lab-pc'))

    findings = DeviceCorrelator.find_suspicious()

    assert len(findings) == 1
    assert findings[0]['distinctIdentities'] == 3
    assert len(findings[0]['sessions']) == 3

def test_find_suspicious_ignores_same_identity(app):
    for _ in range(3):
        DeviceCorrelator.record_redemption(KEY, '07', signature('same'))
    assert DeviceCorrelator.find_suspicious() == []

def test_find_suspicious_respects_window(app):
    DeviceCorrelator.record_redemption(KEY, '07', signature('old'))
    old = DeviceCorrelator.record_redemption(KEY, '08', signature('old'))
    old.created_at = datetime.utcnow() - timedelta(days=3)
    db.session.commit()

    assert DeviceCorrelator.find_suspicious(window_days=1) == []
    assert len(DeviceCorrelator.find_suspicious(window_days=7)) == 1

def test_record_redemption_without_signature(app):
    assert DeviceCorrelator.record_redemption(KEY, '07', None) is None
    assert DeviceSession.query.count() == 0

def test_frequent_logins_above_threshold(app, student, other_student):
    for ip in ('10.0.0.1', '10.0.0.2', '10.0.0.1', '10.0.0.3'):
        DeviceCorrelator.record_login(student, signature('phone'), ip_address=ip, country='IN')
    DeviceCorrelator.record_login(other_student, signature('laptop'), ip_address='10.0.0.9')

    report = DeviceCorrelator.frequent_logins('BTech', threshold=3)

    assert len(report) == 1
    entry = report[0]
    assert entry['identity'] == '07'
    assert entry['count'] == 4
    assert entry['ipAddresses'] == ['10.0.0.1', '10.0.0.2', '10.0.0.3']
    assert entry['countries'] == ['IN']

def test_frequent_logins_filters_unit(app, student):
    for _ in range(5):
        DeviceCorrelator.record_login(student, signature('phone'))

    assert DeviceCorrelator.frequent_logins('Law') == []
    assert DeviceLogin.query.count() == 5
