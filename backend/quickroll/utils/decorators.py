# backend/quickroll/utils/decorators.py
"""Custom decorators for authorization."""
from functools import wraps
from flask_jwt_extended import get_jwt_identity
from quickroll.services.auth_service import AuthService
from quickroll.utils.helpers import error_response

def faculty_required(f):
    """Decorator to require faculty role or higher."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = AuthService.get_user_by_id(get_jwt_identity())
        
        if not user:
            return error_response("User not found", 404)
        
        if not user.is_faculty():
            return error_response("Faculty access required", 403)
        
        return f(*args, **kwargs)
    return decorated_function
