from functools import wraps

from flask import jsonify, request, current_app
from werkzeug.exceptions import BadRequest

from ..models import db
from ..services.errors import LedgerError


def success_response(data=None, message=None, status_code=200):
    """Create a standardized success response"""
    response = {
        "success": True,
        "data": data if data is not None else {}
    }
    if message:
        response["message"] = message
    return jsonify(response), status_code


def error_response(error_message, error_code=None, status_code=400, details=None):
    """Create a standardized error response"""
    response = {
        "success": False,
        "error": error_message
    }
    if error_code:
        response["code"] = error_code
    if details:
        response["details"] = details
    return jsonify(response), status_code


def ledger_error_response(error):
    """Render an expected ledger failure with its code, status and details"""
    return error_response(error.message, error.code, error.status_code, error.details)


def handle_errors(f):
    """Map LedgerError to its envelope; anything else is logged and becomes a 500"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except LedgerError as e:
            current_app.logger.info("%s %s -> %s: %s", request.method, request.path, e.code, e.message)
            return ledger_error_response(e)
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Unhandled error in %s %s", request.method, request.path)
            return error_response("Internal server error", "INTERNAL_ERROR", 500)
    return decorated_function


def validate_request_json(required_fields=None):
    """Decorator to validate JSON request data"""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # A non-silent parse caches the body for the view's own request.get_json()
            try:
                data = request.get_json(force=True)
            except BadRequest:
                data = None
            if not isinstance(data, dict):
                return error_response("Request must be a JSON object", "INVALID_CONTENT_TYPE", 400)

            if required_fields:
                missing_fields = [field for field in required_fields if field not in data or data[field] is None]
                if missing_fields:
                    return error_response(
                        f"Missing required fields: {', '.join(missing_fields)}",
                        "MISSING_FIELDS",
                        400
                    )
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def get_pagination():
    page = request.args.get('page', 1, type=int)
    per_page = min(request.args.get('per_page', 20, type=int), 100)
    return max(page, 1), max(per_page, 1)


def format_pagination(pagination):
    return {
        'page': pagination.page,
        'per_page': pagination.per_page,
        'total': pagination.total,
        'pages': pagination.pages,
    }
