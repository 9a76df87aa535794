from flask import request, jsonify
from flask_login import current_user
from functools import wraps
import logging

logger = logging.getLogger(__name__)

# Exact paths that never require login
LOGIN_WHITELIST = [
    '/api/auth/login',
    '/api/auth/register',
    '/api/auth/otp/send',
    '/api/auth/otp/verify',
]


def is_public_browse_path(path: str) -> bool:
    if path.startswith('/api/products'):
        return True
    if path.startswith('/api/recipes'):
        return True
    return False


def setup_auth_middleware(app):

    @app.before_request
    def require_login():
        path = request.path
        method = request.method.upper()

        # Only the JSON API is guarded
        if not path.startswith('/api/'):
            return None

        # Allow whitelist paths
        if path in LOGIN_WHITELIST:
            return None

        # Allow anonymous browsing for safe methods
        if method in (
            'GET',
            'HEAD',
                'OPTIONS') and is_public_browse_path(path):
            return None

        # Check login status
        if not current_user.is_authenticated:
            return jsonify({'error': 'Not logged in',
                           'login_required': True}), 401

        return None


def role_required(*allowed_roles):
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({'error': 'Not logged in'}), 401

            # allowed_roles is a list of role names.
            if current_user.role.value not in allowed_roles:
                logger.warning(
                    "User %s attempted to access roles %s, current role: %s",
                    current_user.id,
                    allowed_roles,
                    current_user.role.value,
                )
                return jsonify({'error': 'Insufficient permissions'}), 403

            return f(*args, **kwargs)
        return decorated_function
    return decorator
