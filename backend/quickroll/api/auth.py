# File: backend/quickroll/api/auth.py
"""Profile lookups for bearer tokens issued by the auth service."""
from flask import Blueprint
from flask_jwt_extended import jwt_required, get_jwt_identity
from quickroll import limiter
from quickroll.services.auth_service import AuthService
from quickroll.utils.helpers import success_response, error_response

auth_bp = Blueprint("auth", __name__)

@auth_bp.route("/health", methods=["GET"])
def health_check():
    """Health check endpoint."""
    return success_response(message="Auth service is running")

@auth_bp.route("/me", methods=["GET"])
@jwt_required()
@limiter.limit("30 per minute")
def current_user():
    """Return the profile behind the current token."""
    user = AuthService.get_user_by_id(get_jwt_identity())

    if not user:
        return error_response("User not found", 404)

    if not user.is_active:
        return error_response("Account is deactivated", 403)

    return success_response(data=user.to_dict())
