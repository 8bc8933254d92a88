# backend/quickroll/services/session_registry.py
"""In-memory registry of live attendance sessions."""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

from quickroll.services.code_grid import CodeGridService, Grid, DEFAULT_ROWS, DEFAULT_COLS
from quickroll.services.errors import AlreadyActive, NoActiveSession, ValidationError

logger = logging.getLogger(__name__)


class SessionMode(Enum):
    """How presence is counted for a session."""
    ROLL_BASED = 'roll'
    IDENTITY_BASED = 'identity'

    @classmethod
    def parse(cls, value) -> 'SessionMode':
        if isinstance(value, cls):
            return value
        if value in (None, ''):
            return cls.ROLL_BASED
        normalized = str(value).strip().lower()
        # legacy clients call identity sessions "gmail"
        if normalized in ('gmail', 'email', 'identity', 'identity_based'):
            return cls.IDENTITY_BASED
        if normalized in ('roll', 'roll_based'):
            return cls.ROLL_BASED
        raise ValidationError(f'Unknown session type: {value}')


class SessionState(Enum):
    INACTIVE = 'inactive'
    ACTIVE = 'active'
    ENDED = 'ended'


class ViolationKind(Enum):
    """Why a participant left presentation mode."""
    MODE_EXITED = 'mode_exited'
    SPLIT_OR_FLOATING_WINDOW = 'split_or_floating_window'
    PAGE_HIDDEN = 'page_hidden'

    @classmethod
    def parse(cls, value) -> 'ViolationKind':
        if isinstance(value, cls):
            return value
        if value in (None, ''):
            return cls.MODE_EXITED
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f'Unknown violation kind: {value}')


@dataclass
class PresentationViolation:
    """A participant's loss of presentation mode."""
    identity: Optional[str]
    kind: ViolationKind
    detected_at: datetime = field(default_factory=datetime.utcnow)
    grace_deadline: Optional[datetime] = None


@dataclass(frozen=True)
class SessionKey:
    """(organization unit, cohort term, group) triple naming one room."""
    organization_unit: str
    cohort_term: str
    group: str

    @property
    def room(self) -> str:
        return f'{self.organization_unit}_{self.cohort_term}_{self.group}'

    @property
    def owner_room(self) -> str:
        return f'{self.room}:owner'

    def to_dict(self) -> Dict:
        return {
            'department': self.organization_unit,
            'semester': self.cohort_term,
            'section': self.group
        }


@dataclass
class Claim:
    identity: str
    row: int
    col: int
    device_signature: object = None
    photo_ref: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)


@dataclass
class Statistics:
    """Final counts computed when a session ends."""
    key: SessionKey
    mode: SessionMode
    total_participants: int
    present_count: int
    absent_count: int
    absentees: List[str]
    present_list: List[str]
    forced_absent: List[str]
    over_claimed: bool
    ended_at: datetime

    def to_dict(self) -> Dict:
        result = self.key.to_dict()
        result.update({
            'totalParticipants': self.total_participants,
            'totalStudents': self.total_participants,
            'presentCount': self.present_count,
            'absentCount': self.absent_count,
            'absentees': list(self.absentees),
            'presentList': list(self.present_list),
            'presentStudents': list(self.present_list),
            'forcedAbsent': list(self.forced_absent),
            'overClaimed': self.over_claimed,
            'mode': self.mode.value,
            'sessionType': self.mode.value,
            'endedAt': self.ended_at.isoformat()
        })
        return result


@dataclass
class AttendanceSession:
    key: SessionKey
    mode: SessionMode
    grid: Grid
    expected_participant_count: int = 0
    photo_verification_required: bool = False
    owner_id: Optional[str] = None
    state: SessionState = SessionState.ACTIVE
    created_at: datetime = field(default_factory=datetime.utcnow)
    ended_at: Optional[datetime] = None
    claims: Dict[str, Claim] = field(default_factory=dict)
    forced_absent: Dict[str, PresentationViolation] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.state == SessionState.ACTIVE

    @property
    def roll_width(self) -> int:
        return max(2, len(str(self.expected_participant_count or 0)))

    def normalize_identity(self, identity) -> str:
        """Roll numbers are compared zero-padded ('7' and '07' are one student)."""
        value = str(identity or '').strip()
        if self.mode == SessionMode.ROLL_BASED and value.isdigit():
            return value.zfill(self.roll_width)
        if self.mode == SessionMode.IDENTITY_BASED:
            return value.lower()
        return value

    def to_status(self, reveal_codes: bool = True) -> Dict:
        result = self.key.to_dict()
        result.update({
            'active': self.is_active,
            'grid': self.grid.to_payload(reveal_codes=reveal_codes),
            'mode': self.mode.value,
            'sessionType': self.mode.value,
            'expectedParticipantCount': self.expected_participant_count,
            'totalStudents': self.expected_participant_count,
            'presentCount': len(self.claims),
            'photoVerificationRequired': self.photo_verification_required
        })
        return result


class SessionRegistry:
    """
    Owns every AttendanceSession, one per SessionKey.

    All mutations for a key run under that key's lock; the redemption engine
    takes the same lock through `lock_for`.
    """

    def __init__(self, rows: int = DEFAULT_ROWS, cols: int = DEFAULT_COLS,
                 photo_verification_required: bool = False):
        self.rows = rows
        self.cols = cols
        self.photo_verification_required = photo_verification_required
        self._sessions: Dict[SessionKey, AttendanceSession] = {}
        self._statistics: Dict[SessionKey, Statistics] = {}
        self._locks: Dict[SessionKey, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def lock_for(self, key: SessionKey) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def start(self, key: SessionKey, mode, expected_count=None,
              owner_id: str = None) -> AttendanceSession:
        """Open a session for `key`; AlreadyActive if one is running."""
        mode = SessionMode.parse(mode)
        expected = self._validate_expected_count(mode, expected_count)

        with self.lock_for(key):
            current = self._sessions.get(key)
            if current is not None and current.is_active:
                raise AlreadyActive()

            session = AttendanceSession(
                key=key,
                mode=mode,
                grid=CodeGridService.generate(self.rows, self.cols),
                expected_participant_count=expected,
                photo_verification_required=self.photo_verification_required,
                owner_id=owner_id
            )
            self._sessions[key] = session
            self._statistics.pop(key, None)

        logger.info('Started session %s (mode=%s, expected=%s)', key.room, mode.value, expected)
        return session

    def status(self, key: SessionKey) -> Optional[AttendanceSession]:
        return self._sessions.get(key)

    def get_active(self, key: SessionKey) -> AttendanceSession:
        """Caller must hold the key lock when mutating the result."""
        session = self._sessions.get(key)
        if session is None or not session.is_active:
            raise NoActiveSession()
        return session

    def refresh_codes(self, key: SessionKey) -> Grid:
        """Regenerate every unclaimed code of the active session."""
        with self.lock_for(key):
            session = self.get_active(key)
            session.grid = CodeGridService.regenerate_unclaimed(session.grid)
            grid = session.grid

        logger.debug('Refreshed codes for %s', key.room)
        return grid

    def record_violation(self, key: SessionKey, identity: str, kind=None) -> bool:
        """
        Record a terminal presentation-mode violation.

        An existing claim is left in place. Returns False when the identity
        was already marked, so duplicate reports are harmless.
        """
        kind = ViolationKind.parse(kind)
        with self.lock_for(key):
            session = self.get_active(key)
            identity = session.normalize_identity(identity)
            if not identity:
                raise ValidationError('Identity is required')
            if identity in session.forced_absent:
                return False
            session.forced_absent[identity] = PresentationViolation(identity, kind)

        logger.warning('Presentation violation in %s: %s (%s)', key.room, identity, kind.value)
        return True

    def end(self, key: SessionKey, roster: Iterable[str] = None) -> Statistics:
        """Close the session and compute its final statistics."""
        roster = self.clean_roster(roster)
        with self.lock_for(key):
            session = self.get_active(key)
            ended_at = datetime.utcnow()
            stats = self._compute_statistics(session, roster, ended_at)
            session.state = SessionState.ENDED
            session.ended_at = ended_at
            self._statistics[key] = stats

        logger.info(
            'Ended session %s: present=%s absent=%s',
            key.room, stats.present_count, stats.absent_count
        )
        return stats

    def last_statistics(self, key: SessionKey) -> Optional[Statistics]:
        return self._statistics.get(key)

    def active_sessions(self) -> List[Dict]:
        result = []
        for key, session in list(self._sessions.items()):
            if not session.is_active:
                continue
            summary = key.to_dict()
            summary.update({
                'totalStudents': session.expected_participant_count,
                'presentCount': len(session.claims),
                'sessionType': session.mode.value,
                'createdAt': session.created_at.isoformat()
            })
            result.append(summary)
        return result

    @staticmethod
    def _validate_expected_count(mode: SessionMode, expected_count) -> int:
        if mode == SessionMode.IDENTITY_BASED:
            try:
                return max(0, int(expected_count or 0))
            except (TypeError, ValueError):
                return 0

        try:
            expected = int(expected_count)
        except (TypeError, ValueError):
            raise ValidationError('Total students must be a positive number')
        if expected < 1:
            raise ValidationError('Total students must be a positive number')
        return expected

    @staticmethod
    def clean_roster(roster) -> Optional[List[str]]:
        if roster is None:
            return None
        if not isinstance(roster, (list, tuple)):
            raise ValidationError('Roster must be a list of identities')
        for entry in roster:
            if isinstance(entry, bool) or not isinstance(entry, (str, int)):
                raise ValidationError('Roster entries must be roll numbers or emails')
        return list(roster)

    @staticmethod
    def _compute_statistics(session: AttendanceSession, roster: Iterable[str],
                            ended_at: datetime) -> Statistics:
        present = list(session.claims.keys())
        present_set: Set[str] = set(present)

        if roster is not None:
            roster_ids = [session.normalize_identity(r) for r in roster]
        elif session.mode == SessionMode.ROLL_BASED:
            width = session.roll_width
            roster_ids = [str(i).zfill(width) for i in range(1, session.expected_participant_count + 1)]
        else:
            roster_ids = []

        absentees = [identity for identity in roster_ids if identity not in present_set]

        if session.mode == SessionMode.ROLL_BASED:
            total = session.expected_participant_count
            absent_count = max(0, total - len(present))
        else:
            total = len(roster_ids) if roster is not None else len(present)
            absent_count = len(absentees)

        return Statistics(
            key=session.key,
            mode=session.mode,
            total_participants=total,
            present_count=len(present),
            absent_count=absent_count,
            absentees=absentees,
            present_list=present,
            forced_absent=list(session.forced_absent.keys()),
            over_claimed=session.mode == SessionMode.ROLL_BASED and len(present) > total,
            ended_at=ended_at
        )
