"""
Session security tracker.

In-memory bookkeeping per user identity (normalized email):

- last activity, for the idle timeout
- last password authentication, for re-auth on sensitive endpoints
- failed login counters and lockouts
- revoked identities, whose next request must log in again

All maps are guarded by one lock. A clock callable is injected so tests
can move time forward without sleeping.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Set

logger = logging.getLogger(__name__)

# Unlocked failure counters older than this are forgotten.
STALE_ATTEMPT_AGE = 60 * 60  # seconds


@dataclass
class _LoginAttempts:
    count: int = 0
    last_attempt: float = 0.0
    locked_until: Optional[float] = None


@dataclass
class SessionCheck:
    """Outcome of validate_session. ``code`` is set when invalid."""

    valid: bool
    code: Optional[str] = None
    message: Optional[str] = None
    # True when the login session must be discarded, not just re-confirmed.
    terminate: bool = False


class SessionSecurityTracker:
    """Idle timeout, lockout and recent-authentication checks."""

    def __init__(
        self,
        idle_timeout: int = 1800,
        max_age: int = 86400,
        reauth_window: int = 600,
        lockout_threshold: int = 5,
        lockout_duration: int = 900,
        sensitive_endpoints: Iterable[str] = (),
        cleanup_interval: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        self.idle_timeout = idle_timeout
        self.max_age = max_age
        self.reauth_window = reauth_window
        self.lockout_threshold = lockout_threshold
        self.lockout_duration = lockout_duration
        self.sensitive_endpoints = tuple(sensitive_endpoints)
        self.cleanup_interval = cleanup_interval
        self.clock = clock

        self._lock = threading.Lock()
        self._activity: Dict[str, float] = {}
        self._authenticated_at: Dict[str, float] = {}
        self._attempts: Dict[str, _LoginAttempts] = {}
        self._revoked: Set[str] = set()
        self._last_cleanup = clock()

    @classmethod
    def from_config(cls, config) -> 'SessionSecurityTracker':
        return cls(
            idle_timeout=config['SESSION_IDLE_TIMEOUT'],
            max_age=config['SESSION_MAX_AGE'],
            reauth_window=config['REAUTH_WINDOW'],
            lockout_threshold=config['LOCKOUT_THRESHOLD'],
            lockout_duration=config['LOCKOUT_DURATION'],
            sensitive_endpoints=config['SENSITIVE_ENDPOINTS'],
            cleanup_interval=config['SESSION_CLEANUP_INTERVAL'],
        )

    # --- Session activity ---

    def is_sensitive(self, path: str) -> bool:
        return any(path.startswith(endpoint) for endpoint in self.sensitive_endpoints)

    def validate_session(self, identity: str, path: str = '') -> SessionCheck:
        """
        Check an authenticated request for ``identity`` hitting ``path``.

        Order: lockout, revocation, idle timeout, recent authentication
        for sensitive paths. A valid check refreshes last activity.
        """
        self._maybe_cleanup()
        now = self.clock()

        with self._lock:
            attempts = self._attempts.get(identity)
            if attempts and attempts.locked_until and now < attempts.locked_until:
                return SessionCheck(
                    False, 'SESSION_INVALID', 'Account is temporarily locked', terminate=True,
                )

            if identity in self._revoked:
                self._revoked.discard(identity)
                self._activity.pop(identity, None)
                return SessionCheck(
                    False, 'REAUTH_REQUIRED', 'Session ended, please sign in again', terminate=True,
                )

            last_activity = self._activity.get(identity, now)
            if now - last_activity > self.idle_timeout:
                del self._activity[identity]
                return SessionCheck(
                    False, 'REAUTH_REQUIRED', 'Session expired due to inactivity', terminate=True,
                )

            if self.is_sensitive(path):
                authenticated_at = self._authenticated_at.get(identity)
                if authenticated_at is None or now - authenticated_at > self.reauth_window:
                    return SessionCheck(
                        False, 'REAUTH_REQUIRED', 'Recent authentication required for this operation',
                    )

            self._activity[identity] = now
            return SessionCheck(True)

    def record_authentication(self, identity: str) -> None:
        """Mark a successful password check (login or re-authentication)."""
        now = self.clock()
        with self._lock:
            self._authenticated_at[identity] = now
            self._activity[identity] = now
            self._revoked.discard(identity)

    def end_session(self, identity: str) -> None:
        """
        Force ``identity`` to authenticate again.

        Used on logout and on privilege changes, where the holder of an
        existing session cookie must not keep the old privileges.
        """
        with self._lock:
            self._activity.pop(identity, None)
            self._authenticated_at.pop(identity, None)
            self._revoked.add(identity)
        logger.info('Session ended for %s', identity)

    # --- Login attempts ---

    def is_locked(self, identity: str) -> bool:
        with self._lock:
            attempts = self._attempts.get(identity)
            return bool(
                attempts and attempts.locked_until and self.clock() < attempts.locked_until
            )

    def record_login_attempt(self, identity: str, success: bool) -> dict:
        """
        Record a login attempt and return the current state.

        A success clears the counter. The failure that reaches
        the threshold locks the identity for lockout_duration and resets
        the counter for the next cycle. Unknown emails are tracked too, so
        lockout behaviour does not reveal which accounts exist.

        Returns:
            dict with keys: attempts, locked, remaining_attempts
        """
        now = self.clock()
        with self._lock:
            if success:
                self._attempts.pop(identity, None)
                return {'attempts': 0, 'locked': False, 'remaining_attempts': self.lockout_threshold}

            attempts = self._attempts.setdefault(identity, _LoginAttempts())
            if attempts.locked_until and now >= attempts.locked_until:
                attempts.locked_until = None

            attempts.count += 1
            attempts.last_attempt = now

            if attempts.count >= self.lockout_threshold:
                attempts.locked_until = now + self.lockout_duration
                attempts.count = 0
                logger.warning('Account locked after repeated failed logins: %s', identity)
                return {
                    'attempts': self.lockout_threshold,
                    'locked': True,
                    'remaining_attempts': 0,
                }

            return {
                'attempts': attempts.count,
                'locked': False,
                'remaining_attempts': self.lockout_threshold - attempts.count,
            }

    # --- Maintenance ---

    def cleanup_expired(self) -> None:
        """Drop old activity records and stale, unlocked failure counters."""
        now = self.clock()
        with self._lock:
            for identity, last_activity in list(self._activity.items()):
                if now - last_activity > self.max_age:
                    del self._activity[identity]
            for identity, authenticated_at in list(self._authenticated_at.items()):
                if now - authenticated_at > self.max_age:
                    del self._authenticated_at[identity]
            for identity, attempts in list(self._attempts.items()):
                locked = attempts.locked_until and now < attempts.locked_until
                if not locked and now - attempts.last_attempt > STALE_ATTEMPT_AGE:
                    del self._attempts[identity]
            self._last_cleanup = now

    def _maybe_cleanup(self) -> None:
        if self.clock() - self._last_cleanup >= self.cleanup_interval:
            self.cleanup_expired()

    def get_session_stats(self) -> dict:
        now = self.clock()
        with self._lock:
            return {
                'active_sessions': sum(
                    1 for last in self._activity.values() if now - last <= self.idle_timeout
                ),
                'locked_accounts': sum(
                    1 for a in self._attempts.values() if a.locked_until and now < a.locked_until
                ),
                'recent_failed_attempts': sum(
                    a.count for a in self._attempts.values()
                    if now - a.last_attempt <= STALE_ATTEMPT_AGE
                ),
            }
