"""
CSRF token service.

Tokens are 32 random bytes (hex), stored in memory keyed by session
identity (the user's email) with a fixed expiry. Validation checks
expiry first, then compares in constant time. Expired entries are
purged opportunistically whenever a new token is written.

The store is process-local. It does not survive restarts and is not
shared between workers.
"""

import hmac
import secrets
import threading
import time
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Dict, Optional

from flask import current_app, request, session

from photoselect.errors import authorization_error
from photoselect.security.audit import log_csrf_failure

TOKEN_BYTES = 32

# Methods that never change state and so never need a token.
SAFE_METHODS = frozenset(('GET', 'HEAD', 'OPTIONS'))


@dataclass
class _StoredToken:
    token: str
    expires_at: float


class CSRFTokenStore:
    """In-memory map of session key -> expiring CSRF token."""

    def __init__(self, ttl: int = 3600, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self.clock = clock
        self._tokens: Dict[str, _StoredToken] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)

    def create_token(self, session_key: str) -> str:
        """Issue a fresh token for ``session_key``, replacing any previous one."""
        token = secrets.token_hex(TOKEN_BYTES)
        now = self.clock()
        with self._lock:
            self._tokens[session_key] = _StoredToken(token, now + self.ttl)
            self._purge_expired(now)
        return token

    def get_token(self, session_key: str) -> str:
        """Return the current unexpired token, creating one if needed."""
        with self._lock:
            stored = self._tokens.get(session_key)
            if stored is not None and self.clock() < stored.expires_at:
                return stored.token
        return self.create_token(session_key)

    def validate_token(self, session_key: str, token: Optional[str]) -> bool:
        """
        Check ``token`` against the stored token for ``session_key``.

        Returns False for unknown keys, expired tokens (which are removed),
        and malformed input. Never raises.
        """
        if not session_key or not token or not isinstance(token, str):
            return False

        with self._lock:
            stored = self._tokens.get(session_key)
            if stored is None:
                return False
            if self.clock() > stored.expires_at:
                del self._tokens[session_key]
                return False
            expected = stored.token

        return hmac.compare_digest(expected.encode('ascii'), token.encode('utf-8'))

    def revoke(self, session_key: str) -> None:
        with self._lock:
            self._tokens.pop(session_key, None)

    def cleanup_expired(self) -> int:
        with self._lock:
            return self._purge_expired(self.clock())

    def _purge_expired(self, now: float) -> int:
        # Caller holds the lock.
        expired = [key for key, stored in self._tokens.items() if now > stored.expires_at]
        for key in expired:
            del self._tokens[key]
        return len(expired)


def session_key() -> Optional[str]:
    """Session identity the CSRF token is keyed by: email, then user id."""
    return session.get('user_email') or session.get('user_id')


def token_from_request() -> Optional[str]:
    """Read the submitted token from the header, JSON body, or form body."""
    token = request.headers.get(current_app.config['CSRF_HEADER_NAME'])
    if token:
        return token

    field = current_app.config['CSRF_FIELD_NAME']
    if request.is_json:
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            return body.get(field)
        return None
    return request.form.get(field)


def csrf_protect(f):
    """
    Decorator that requires a valid CSRF token on state-changing requests.

    Must sit inside @login_required so the session identity is known.
    Failure is a 403 with code CSRF_TOKEN_INVALID.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_app.config.get('CSRF_ENABLED', True):
            return f(*args, **kwargs)
        if request.method in SAFE_METHODS:
            return f(*args, **kwargs)

        from photoselect.extensions import get_csrf_store

        if not get_csrf_store().validate_token(session_key(), token_from_request()):
            log_csrf_failure()
            raise authorization_error('Invalid CSRF token', code='CSRF_TOKEN_INVALID')
        return f(*args, **kwargs)
    return decorated_function
