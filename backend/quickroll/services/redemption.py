# backend/quickroll/services/redemption.py
"""Single-use code redemption with exactly-once semantics."""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from quickroll.services.code_grid import Grid
from quickroll.services.errors import (
    AlreadyMarked, ForcedAbsent, InvalidOrUsedCode, PhotoRequired, ValidationError
)
from quickroll.services.session_registry import Claim, SessionKey, SessionRegistry

logger = logging.getLogger(__name__)


@dataclass
class ClaimResult:
    success: bool
    identity: str
    row: int
    col: int
    grid: Grid
    message: str = 'Attendance marked successfully'

    def to_dict(self) -> Dict:
        return {
            'success': self.success,
            'message': self.message,
            'identity': self.identity,
            'row': self.row,
            'col': self.col
        }


class RedemptionEngine:
    """Validates submitted codes against the live grid of a session."""

    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    def redeem(self, key: SessionKey, identity: str, submitted_code: str,
               device_signature=None, photo_ref: Optional[str] = None) -> ClaimResult:
        """
        Claim the cell holding `submitted_code` for `identity`.

        Checks run in order and stop at the first failure:
        NoActiveSession, PhotoRequired, AlreadyMarked, ForcedAbsent,
        InvalidOrUsedCode. The identity and code checks and the claim itself
        happen under the session lock, so racing redemptions of one code or one
        identity produce exactly one success.
        """
        with self.registry.lock_for(key):
            session = self.registry.get_active(key)

            if session.photo_verification_required and not photo_ref:
                raise PhotoRequired()

            normalized = session.normalize_identity(identity)
            if not normalized:
                raise ValidationError('Identity is required')

            if normalized in session.claims:
                raise AlreadyMarked()

            if normalized in session.forced_absent:
                raise ForcedAbsent()

            position = session.grid.find_unclaimed(submitted_code)
            if position is None:
                raise InvalidOrUsedCode()

            row, col = position
            session.grid.claim(row, col, normalized, device_signature, photo_ref)
            session.claims[normalized] = Claim(
                identity=normalized,
                row=row,
                col=col,
                device_signature=device_signature,
                photo_ref=photo_ref
            )
            grid = session.grid

        logger.info('Attendance marked in %s for %s at (%s, %s)', key.room, normalized, row, col)
        return ClaimResult(success=True, identity=normalized, row=row, col=col, grid=grid)
