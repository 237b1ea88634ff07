"""
Per-endpoint request size and content-type limits.

MAX_CONTENT_LENGTH is the global ceiling enforced by werkzeug; these
named limits are tighter and checked from the declared Content-Length
before the body is read.
"""

from functools import wraps

from flask import current_app, request

from photoselect.errors import payload_too_large, validation_error


def check_request_limits(name: str) -> None:
    """Raise an APIError if the current request breaks limit ``name``."""
    limits = current_app.config['REQUEST_LIMITS'][name]

    if len(request.url) > current_app.config['MAX_URL_LENGTH']:
        raise validation_error('URL too long', code='URL_TOO_LONG')

    content_length = request.content_length
    if content_length is not None and content_length > limits['max_body_size']:
        raise payload_too_large(
            f'Request body exceeds {limits["max_body_size"]} bytes',
        )

    allowed_types = limits.get('content_types')
    if allowed_types and request.method in ('POST', 'PUT', 'PATCH'):
        if request.mimetype not in allowed_types:
            raise validation_error(
                'Unsupported content type',
                details={'allowed': list(allowed_types)},
                code='INVALID_CONTENT_TYPE',
            )


def request_limits(name: str):
    """Decorator applying the named request limits to a view."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            check_request_limits(name)
            return f(*args, **kwargs)
        return decorated_function
    return decorator
