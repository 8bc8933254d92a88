# backend/quickroll/services/device_correlator.py
"""Device/identity correlation for proxy-attendance auditing."""
import ipaddress
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, FrozenSet, Iterable, List, Optional

from quickroll import db
from quickroll.models.device_login import DeviceLogin
from quickroll.models.device_session import DeviceSession

logger = logging.getLogger(__name__)

DEFAULT_LOGIN_THRESHOLD = 3


@dataclass(frozen=True)
class DeviceSignature:
    """Stable fingerprint plus the network addresses seen for one attempt."""
    stable_fingerprint: str
    network_addresses: FrozenSet[str] = field(default_factory=frozenset)
    source_ip: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict, source_ip: str = None) -> Optional['DeviceSignature']:
        """Build a signature from a markAttendance / fullScreenViolation payload."""
        if not isinstance(data, dict):
            return None
        nested = data.get('deviceSignature')
        if not isinstance(nested, dict):
            nested = {}
        fingerprint = nested.get('stableFingerprint') or data.get('fingerprint')
        if not fingerprint:
            return None
        addresses = nested.get('networkAddresses') or data.get('webRTCIPs') or []
        return cls(
            stable_fingerprint=str(fingerprint),
            network_addresses=frozenset(clean_addresses(addresses)),
            source_ip=source_ip
        )

    def to_dict(self) -> Dict:
        return {
            'stableFingerprint': self.stable_fingerprint,
            'networkAddresses': sorted(self.network_addresses),
            'sourceIp': self.source_ip
        }


def clean_addresses(addresses: Iterable) -> List[str]:
    """Keep only parseable IPv4/IPv6 addresses, normalized."""
    result = []
    if isinstance(addresses, (str, bytes)) or not isinstance(addresses, Iterable):
        return result
    for raw in addresses:
        try:
            result.append(str(ipaddress.ip_address(str(raw).strip())))
        except ValueError:
            continue
    return result


def client_ip(forwarded_for: str = None, real_ip: str = None, remote_addr: str = None) -> Optional[str]:
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
    candidate = forwarded_for or real_ip or remote_addr
    if not candidate:
        return None
    candidate = candidate.split(',')[0].strip()
    if candidate in ('::1', '::ffff:127.0.0.1'):
        return '127.0.0.1'
    if candidate.startswith('::ffff:'):
        candidate = candidate[len('::ffff:'):]
    return candidate


class DeviceCorrelator:
    """
    Records device usage and reports signatures shared across identities.

    Findings are advisory only; nothing here can fail a redemption.
    """

    @staticmethod
    def record_redemption(key, identity: str, signature: DeviceSignature,
                          user_id: int = None) -> Optional[DeviceSession]:
        if signature is None:
            return None

        entry = DeviceSession(
            fingerprint=signature.stable_fingerprint,
            network_addresses=sorted(signature.network_addresses),
            ip_address=signature.source_ip,
            user_id=user_id,
            identity=identity,
            organization_unit=key.organization_unit,
            cohort_term=key.cohort_term,
            group=key.group
        )
        db.session.add(entry)
        db.session.commit()
        return entry

    @staticmethod
    def find_suspicious(window_days: float = 1) -> List[Dict]:
        """
        Group redemptions in the window by fingerprint and keep groups used
        by at least two distinct identities.
        """
        since = datetime.utcnow() - timedelta(days=window_days)
        rows = (
            DeviceSession.query
            .filter(DeviceSession.created_at >= since)
            .order_by(DeviceSession.created_at.asc())
            .all()
        )

        groups = defaultdict(list)
        for row in rows:
            groups[row.fingerprint].append(row)

        suspicious = []
        for fingerprint, entries in groups.items():
            identities = {entry.identity for entry in entries}
            if len(identities) < 2:
                continue
            suspicious.append({
                'deviceSignature': fingerprint,
                'distinctIdentities': len(identities),
                'sessions': [entry.to_entry() for entry in entries]
            })

        suspicious.sort(key=lambda item: item['distinctIdentities'], reverse=True)
        if suspicious:
            logger.info('Found %d suspicious device signatures in the last %s day(s)',
                        len(suspicious), window_days)
        return suspicious

    @staticmethod
    def record_login(user, signature: Optional[DeviceSignature] = None,
                     ip_address: str = None, country: str = None) -> DeviceLogin:
        entry = DeviceLogin(
            user_id=user.id,
            identity=user.roll_number or user.email,
            organization_unit=user.organization_unit,
            group=user.group,
            fingerprint=signature.stable_fingerprint if signature else None,
            ip_address=ip_address or (signature.source_ip if signature else None),
            country=country
        )
        db.session.add(entry)
        db.session.commit()
        return entry

    @staticmethod
    def frequent_logins(organization_unit: str = None,
                        threshold: int = DEFAULT_LOGIN_THRESHOLD,
                        hours: int = 24) -> List[Dict]:
        """
        Devices whose login count for one identity exceeds `threshold`
        within the last `hours`, annotated with the IPs and countries seen.
        """
        since = datetime.utcnow() - timedelta(hours=hours)
        query = DeviceLogin.query.filter(DeviceLogin.created_at >= since)
        if organization_unit:
            query = query.filter(DeviceLogin.organization_unit == organization_unit)

        buckets = defaultdict(list)
        for row in query.all():
            buckets[(row.user_id, row.fingerprint)].append(row)

        result = []
        for (user_id, fingerprint), entries in buckets.items():
            if len(entries) <= threshold:
                continue
            latest = max(entries, key=lambda e: e.created_at)
            result.append({
                'userId': user_id,
                'identity': latest.identity,
                'department': latest.organization_unit,
                'section': latest.group,
                'fingerprint': fingerprint,
                'count': len(entries),
                'ipAddresses': sorted({e.ip_address for e in entries if e.ip_address}),
                'countries': sorted({e.country for e in entries if e.country}),
                'lastSeen': latest.created_at.isoformat()
            })

        result.sort(key=lambda item: item['lastSeen'], reverse=True)
        return result
