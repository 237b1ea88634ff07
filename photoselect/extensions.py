"""
Flask extension instances. Created here, initialized in the app factory.

Keeping them out of __init__.py prevents circular imports and lets
blueprints and socket handlers import them independently.

The in-memory security stores (CSRF tokens, rate-limit windows, session
tracker) are per-app objects kept in ``app.extensions``; see the
accessors at the bottom of this module.
"""

from flask import current_app
from flask_bcrypt import Bcrypt
from flask_session import Session
from flask_socketio import SocketIO

# Password hashing. Rounds come from BCRYPT_LOG_ROUNDS.
bcrypt = Bcrypt()

# Server-side session management. Replaces Flask's client-side cookie sessions.
sess = Session()

# Realtime channel. Threading async mode matches the single-process
# gthread gunicorn worker; the in-memory stores cannot be shared across processes.
socketio = SocketIO(async_mode='threading', manage_session=False)


def get_csrf_store():
    """Return the CSRF token store of the current app."""
    return current_app.extensions['photoselect.csrf']


def get_rate_limiter():
    """Return the rate limiter of the current app."""
    return current_app.extensions['photoselect.rate_limiter']


def get_session_tracker():
    """Return the session security tracker of the current app."""
    return current_app.extensions['photoselect.session_tracker']


def get_storage():
    """Return the photo storage manager of the current app."""
    return current_app.extensions['photoselect.storage']


def get_email_service():
    """Return the email service of the current app."""
    return current_app.extensions['photoselect.email']
