"""
Access-control decorators for API views.

Stacking order on a view, outermost first:

    @rate_limit(...)        perimeter, counts every attempt
    @request_limits(...)    size and content-type checks
    @login_required         session + session security tracker
    @roles_required(...)    role check against g.user
    @csrf_protect           token check on mutating methods
"""

from functools import wraps

from flask import g, request, session

from photoselect.errors import authentication_error, authorization_error
from photoselect.security.audit import log_session_invalid


def load_session_user():
    """Return the user row for the current session, or None."""
    from photoselect.auth.models import get_user_by_id

    user_id = session.get('user_id')
    if not user_id:
        return None
    return get_user_by_id(user_id)


def login_required(f):
    """
    Decorator that ensures the user is authenticated.

    Loads the user into ``g.user`` and runs the session security
    checks (lockout, revocation, idle timeout, recent re-auth on
    sensitive paths). Responds 401 or 403 as JSON.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        from photoselect.extensions import get_session_tracker

        user = load_session_user()
        if user is None:
            session.clear()
            raise authentication_error()

        check = get_session_tracker().validate_session(user['email'], request.path)
        if not check.valid:
            log_session_invalid(user['email'], check.code)
            if check.terminate:
                session.clear()
            if check.code == 'SESSION_INVALID':
                raise authorization_error(check.message, code=check.code)
            raise authentication_error(check.message, code=check.code)

        g.user = user
        return f(*args, **kwargs)
    return decorated_function


def roles_required(*roles):
    """Decorator restricting a view to the given roles. Use inside @login_required."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if g.user['role'] not in roles:
                raise authorization_error()
            return f(*args, **kwargs)
        return decorated_function
    return decorator
