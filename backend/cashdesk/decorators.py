# Overview: Error-mapping decorator for API routes.

from functools import wraps
from flask import jsonify, current_app

from .validation import DeficitError, InvariantViolation


def error_response(exc: DeficitError):
    return jsonify({"error": str(exc), "code": exc.code}), exc.http_status


def handle_errors(failure_message: str):
    """
    Convert engine errors raised by a route into explicit JSON results.

    - DeficitError subclasses -> {"error", "code"} with the error's HTTP status
    - InvariantViolation is also logged with its traceback (programming error)
    - Anything else -> logged, generic 500

    Usage:
        @deficits_bp.post("/<int:record_id>/payments")
        @handle_errors("Failed to apply payment")
        def apply_payment_route(record_id):
            ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except InvariantViolation as e:
                current_app.logger.exception(failure_message)
                return error_response(e)
            except DeficitError as e:
                return error_response(e)
            except Exception:
                current_app.logger.exception(failure_message)
                return jsonify({"error": "Internal server error", "code": "internal_error"}), 500

        return decorated_function

    return decorator
