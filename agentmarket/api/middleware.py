from functools import wraps
from datetime import datetime

from flask import request, g, current_app

from ..models import db
from ..models.api_key import APIKey
from ..utils.auth import get_current_user, has_role
from .utils import error_response


def require_api_auth(f):
    """Service-to-service endpoints: X-API-Key and X-API-Secret headers."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        api_key = request.headers.get('X-API-Key')
        api_secret = request.headers.get('X-API-Secret')

        if not api_key or not api_secret:
            return error_response(
                "API Key and Secret Key are required. Please provide X-API-Key and X-API-Secret headers.",
                "MISSING_API_CREDENTIALS",
                401
            )

        key_obj = APIKey.query.filter_by(api_key=api_key).first()
        if not key_obj:
            return error_response("Invalid API Key", "INVALID_KEY", 401)

        if not key_obj.is_active:
            return error_response("API Key is inactive", "INACTIVE_KEY", 403)

        if key_obj.is_expired():
            return error_response("API Key has expired", "EXPIRED_KEY", 403)

        if not key_obj.verify_secret(api_secret):
            return error_response("Invalid API Secret", "INVALID_SECRET", 401)

        key_obj.last_used = datetime.utcnow()
        db.session.commit()

        g.api_key = key_obj
        current_app.logger.debug("API key %s authenticated for %s", key_obj.name, request.path)
        return f(*args, **kwargs)
    return decorated_function


def require_login(f):
    """Session-authenticated endpoints. The signed-in user is placed on g.user."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user = get_current_user()
        if user is None:
            return error_response("Authentication required", "UNAUTHENTICATED", 401)
        g.user = user
        return f(*args, **kwargs)
    return decorated_function


def require_role(role_name):
    def decorator(f):
        @wraps(f)
        @require_login
        def decorated_function(*args, **kwargs):
            if not has_role(g.user, role_name):
                return error_response("You do not have permission to perform this action", "FORBIDDEN", 403)
            return f(*args, **kwargs)
        return decorated_function
    return decorator
