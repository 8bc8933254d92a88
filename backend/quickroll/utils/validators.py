"""Validation utilities for the application."""
from typing import Dict, Iterable, List, Optional

from quickroll.services.errors import ValidationError
from quickroll.services.session_registry import SessionKey, SessionRegistry

# Wire names first, then the descriptive aliases newer clients send
KEY_FIELDS = (
    ('department', 'organizationUnit'),
    ('semester', 'cohortTerm'),
    ('section', 'group'),
)

class Validator:
    """Validation helper class."""
    
    @staticmethod
    def session_key(data: Dict, units: Iterable[str] = None,
                    terms: Iterable[str] = None, groups: Iterable[str] = None) -> SessionKey:
        """Build a SessionKey from a request payload or raise ValidationError."""
        if not isinstance(data, dict):
            raise ValidationError()
        
        values = []
        for wire_name, alias in KEY_FIELDS:
            value = data.get(wire_name)
            if value in (None, ''):
                value = data.get(alias)
            if value in (None, ''):
                raise ValidationError()
            values.append(str(value).strip())
        
        unit, term, group = values
        if units and unit not in units:
            raise ValidationError('Invalid department')
        if terms and term not in terms:
            raise ValidationError('Invalid semester')
        if groups and group not in groups:
            raise ValidationError('Invalid section')
        
        return SessionKey(unit, term, group)

    @staticmethod
    def roster(data: Dict) -> Optional[List[str]]:
        """Optional roster of roll numbers or emails sent with endSession."""
        return SessionRegistry.clean_roster(data.get('roster'))
