# Overview: Request decorators that turn service results and errors into the JSON envelope.

from __future__ import annotations

from functools import wraps

from flask import current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from .errors import StockroomError, ValidationError
from .extensions import db

STORE_ERROR_CODE = "STORE_ERROR"


def failure(message: str, code: str, status: int, details: dict | None = None):
    body = {"success": False, "error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status


def service_action(status: int = 200):
    """
    Wrap a route so callers only ever see the structured envelope.

    - return value          -> {"success": true, "data": <value>}, `status`
    - StockroomError        -> {"success": false, "error", "code"}, e.http_status
    - SQLAlchemyError/other -> STORE_ERROR 500, logged with traceback

    The session is rolled back on every failure so nothing half-written
    leaks into the next request.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                data = f(*args, **kwargs)
            except StockroomError as e:
                db.session.rollback()
                current_app.logger.info("%s rejected: %s (%s)", f.__name__, e.message, e.code)
                return failure(e.message, e.code, e.http_status, e.details)
            except SQLAlchemyError:
                db.session.rollback()
                current_app.logger.exception("Database failure in %s", f.__name__)
                return failure("Database error", STORE_ERROR_CODE, 500)
            except Exception:
                db.session.rollback()
                current_app.logger.exception("Unexpected failure in %s", f.__name__)
                return failure("Unexpected error", STORE_ERROR_CODE, 500)

            return jsonify({"success": True, "data": data}), status

        return decorated_function

    return decorator


def json_body() -> dict:
    """The request's JSON object; anything else is a ValidationError."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def query_int(name: str, default: int | None = None) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")
