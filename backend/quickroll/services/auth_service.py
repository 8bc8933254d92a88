"""Adapter over the external auth collaborator."""
from typing import Optional, Tuple

from flask_jwt_extended import create_access_token, decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from quickroll import db
from quickroll.models.user import User


class AuthService:
    """Validates bearer credentials and looks up profiles."""

    @staticmethod
    def identify(token: str) -> Tuple[Optional[User], Optional[str]]:
        """Resolve a bearer token to an active user; returns (user, error)."""
        if not token:
            return None, "Authentication token is required"

        if token.lower().startswith('bearer '):
            token = token[7:].strip()

        try:
            claims = decode_token(token)
        except (JWTExtendedException, PyJWTError):
            return None, "Invalid authentication token"

        user = AuthService.get_user_by_id(claims.get('sub'))
        if not user:
            return None, "User not found"

        if not user.is_active:
            return None, "Account is deactivated"

        return user, None

    @staticmethod
    def get_user_by_id(user_id) -> Optional[User]:
        """Get user by ID."""
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    @staticmethod
    def get_user_by_email(email: str) -> Optional[User]:
        if not email:
            return None
        return User.query.filter_by(email=email.lower().strip()).first()

    @staticmethod
    def issue_token(user: User) -> str:
        """Sign a token the same way the auth service does (dev and tests)."""
        return create_access_token(
            identity=str(user.id),
            additional_claims={'role': user.role.value}
        )
