"""
Error taxonomy and JSON error responses.

Views raise APIError (usually through the factory helpers below); the
handlers registered by ``register_error_handlers`` turn it, werkzeug
HTTP exceptions, and database errors into one JSON shape:

    {"error": {"type": ..., "message": ..., "details": ..., "code": ...},
     "timestamp": "..."}

Unexpected exceptions are logged with a traceback and collapsed to a
generic 500; the exception message is exposed only in debug mode.
"""

import enum
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ErrorType(str, enum.Enum):
    VALIDATION = 'VALIDATION_ERROR'
    AUTHENTICATION = 'AUTHENTICATION_ERROR'
    AUTHORIZATION = 'AUTHORIZATION_ERROR'
    NOT_FOUND = 'NOT_FOUND_ERROR'
    CONFLICT = 'CONFLICT_ERROR'
    RATE_LIMIT = 'RATE_LIMIT_ERROR'
    SERVER = 'SERVER_ERROR'
    DATABASE = 'DATABASE_ERROR'
    FILE_UPLOAD = 'FILE_UPLOAD_ERROR'
    EMAIL = 'EMAIL_ERROR'


# Status code -> error type for werkzeug HTTP exceptions.
_HTTP_STATUS_TYPES = {
    400: ErrorType.VALIDATION,
    401: ErrorType.AUTHENTICATION,
    403: ErrorType.AUTHORIZATION,
    404: ErrorType.NOT_FOUND,
    405: ErrorType.VALIDATION,
    409: ErrorType.CONFLICT,
    413: ErrorType.VALIDATION,
    415: ErrorType.VALIDATION,
    429: ErrorType.RATE_LIMIT,
}


class APIError(Exception):
    """An error that is safe to show to the API caller."""

    def __init__(
        self,
        error_type: ErrorType,
        message: str,
        status_code: int = 500,
        details: Any = None,
        code: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.message = message
        self.status_code = status_code
        self.details = details
        self.code = code
        self.headers = headers or {}
        # Additional top-level body fields (e.g. retry_after).
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        error: Dict[str, Any] = {
            'type': self.error_type.value,
            'message': self.message,
        }
        if self.details is not None:
            error['details'] = self.details
        if self.code is not None:
            error['code'] = self.code
        body = {'error': error, 'timestamp': _timestamp()}
        body.update(self.extra)
        return body


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


# --- Factory helpers ---

def validation_error(message: str = 'Validation failed', details: Any = None, code: str = None) -> APIError:
    return APIError(ErrorType.VALIDATION, message, 400, details, code)


def authentication_error(message: str = 'Authentication required', code: str = None) -> APIError:
    return APIError(ErrorType.AUTHENTICATION, message, 401, code=code)


def authorization_error(message: str = 'Insufficient permissions', code: str = None) -> APIError:
    return APIError(ErrorType.AUTHORIZATION, message, 403, code=code)


def not_found(resource: str = 'Resource') -> APIError:
    return APIError(ErrorType.NOT_FOUND, f'{resource} not found', 404)


def conflict(message: str, details: Any = None) -> APIError:
    return APIError(ErrorType.CONFLICT, message, 409, details)


def rate_limit_error(message: str = 'Rate limit exceeded', headers=None, retry_after: int = None) -> APIError:
    extra = {'retry_after': retry_after} if retry_after is not None else None
    return APIError(ErrorType.RATE_LIMIT, message, 429, headers=headers, extra=extra)


def payload_too_large(message: str = 'Request body too large', code: str = 'BODY_TOO_LARGE') -> APIError:
    return APIError(ErrorType.VALIDATION, message, 413, code=code)


def server_error(message: str = 'Internal server error') -> APIError:
    return APIError(ErrorType.SERVER, message, 500)


def database_error(message: str = 'Database operation failed') -> APIError:
    return APIError(ErrorType.DATABASE, message, 500)


def file_upload_error(message: str, details: Any = None) -> APIError:
    return APIError(ErrorType.FILE_UPLOAD, message, 400, details)


def email_error(message: str) -> APIError:
    return APIError(ErrorType.EMAIL, message, 500)


def form_errors(form) -> list:
    """Flatten WTForms errors into a list of {field, message} dicts."""
    return [
        {'field': field, 'message': message}
        for field, messages in form.errors.items()
        for message in messages
    ]


def error_response(error: APIError):
    response = jsonify(error.to_dict())
    response.status_code = error.status_code
    for name, value in error.headers.items():
        response.headers[name] = str(value)
    return response


def register_error_handlers(app: Flask) -> None:
    """Map exceptions to JSON error responses."""

    @app.errorhandler(APIError)
    def handle_api_error(e: APIError):
        return error_response(e)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        """404/405/413 and friends raised by werkzeug itself."""
        status = e.code or 500
        error_type = _HTTP_STATUS_TYPES.get(status, ErrorType.SERVER)
        code = 'BODY_TOO_LARGE' if status == 413 else None
        return error_response(APIError(error_type, e.description or e.name, status, code=code))

    @app.errorhandler(sqlite3.IntegrityError)
    def handle_integrity_error(e: sqlite3.IntegrityError):
        logger.warning('Integrity constraint violated: %s', e)
        return error_response(conflict('Unique constraint violation'))

    @app.errorhandler(sqlite3.Error)
    def handle_database_error(e: sqlite3.Error):
        logger.exception('Database error')
        return error_response(database_error())

    @app.errorhandler(Exception)
    def handle_unexpected_error(e: Exception):
        """No stack traces or internal details outside debug mode."""
        logger.exception('Unhandled error')
        message = str(e) if current_app.debug else 'Internal server error'
        return error_response(server_error(message))
