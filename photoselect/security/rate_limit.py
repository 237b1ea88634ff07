"""
Named fixed-window rate limiting.

Counters are keyed by (configuration name, client identity) and kept
in the ``limits`` library's in-memory storage, which expires windows on
its own. The decorator form guards views; socket handlers call
``enforce`` directly because they have no view to decorate.

Known limitation: state is per process and lost on restart. Multiple
instances do not share counters.
"""

import math
import time
from dataclasses import dataclass
from functools import wraps
from typing import Dict, Optional

from flask import current_app, request
from limits import RateLimitItem, parse, storage, strategies

from photoselect.errors import rate_limit_error
from photoselect.security.audit import log_rate_limit_exceeded

# Authorization header prefix length used as the identity of API clients.
AUTH_IDENTITY_PREFIX = 20


@dataclass
class RateLimitStatus:
    limited: bool
    limit: int
    remaining: int
    reset_at: float

    @property
    def retry_after(self) -> int:
        return max(0, math.ceil(self.reset_at - time.time()))

    def headers(self) -> Dict[str, str]:
        return {
            'X-RateLimit-Limit': str(self.limit),
            'X-RateLimit-Remaining': str(self.remaining),
            'X-RateLimit-Reset': str(int(self.reset_at)),
        }


class RateLimiter:
    """Fixed-window counters for a set of named limits."""

    def __init__(self, limits: Dict[str, str]):
        self._items: Dict[str, RateLimitItem] = {
            name: parse(value) for name, value in limits.items()
        }
        self._storage = storage.MemoryStorage()
        self._strategy = strategies.FixedWindowRateLimiter(self._storage)

    def _item(self, name: str) -> RateLimitItem:
        try:
            return self._items[name]
        except KeyError:
            raise ValueError(f'Unknown rate limit configuration: {name}') from None

    def is_rate_limited(self, name: str, identity: str) -> bool:
        """True once the current window's count has reached the maximum."""
        return not self._strategy.test(self._item(name), name, identity)

    def increment(self, name: str, identity: str) -> bool:
        """Count one request. Returns False if it was over the limit."""
        return self._strategy.hit(self._item(name), name, identity)

    def status(self, name: str, identity: str) -> RateLimitStatus:
        item = self._item(name)
        stats = self._strategy.get_window_stats(item, name, identity)
        return RateLimitStatus(
            limited=stats.remaining <= 0,
            limit=item.amount,
            remaining=max(0, stats.remaining),
            reset_at=stats.reset_time,
        )

    def clear(self, name: str, identity: str) -> None:
        self._strategy.clear(self._item(name), name, identity)


def client_identity() -> str:
    """
    Identify the caller for rate limiting.

    API clients are keyed by a prefix of their Authorization header.
    Behind trusted proxies (PROXY_COUNT) browsers are keyed by the
    address ProxyFix resolved; otherwise by the first X-Forwarded-For
    hop, X-Real-IP, or the socket peer address, in that order.
    """
    auth = request.headers.get('Authorization')
    if auth:
        return f'auth:{auth[:AUTH_IDENTITY_PREFIX]}'

    if current_app.config.get('PROXY_COUNT'):
        return f'ip:{request.remote_addr or "unknown"}'

    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        ip = forwarded.split(',')[0].strip()
    else:
        ip = request.headers.get('X-Real-IP') or request.remote_addr or 'unknown'
    return f'ip:{ip}'


def enforce(name: str, identity: Optional[str] = None) -> Optional[RateLimitStatus]:
    """
    Count the current request against limit ``name``.

    Raises a 429 APIError with rate-limit headers when the window is full.
    Returns the window status after counting, or None when disabled.
    """
    if not current_app.config.get('RATELIMIT_ENABLED', True):
        return None

    from photoselect.extensions import get_rate_limiter

    limiter = get_rate_limiter()
    identity = identity or client_identity()

    if limiter.is_rate_limited(name, identity):
        status = limiter.status(name, identity)
        log_rate_limit_exceeded(name, identity)
        headers = status.headers()
        headers['Retry-After'] = str(status.retry_after)
        raise rate_limit_error(
            'Too many requests. Please try again later.',
            headers=headers,
            retry_after=status.retry_after,
        )

    limiter.increment(name, identity)
    return limiter.status(name, identity)


def rate_limit(name: str):
    """Decorator applying the named rate limit to a view."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            status = enforce(name)
            response = current_app.make_response(f(*args, **kwargs))
            if status is not None:
                for header, value in status.headers().items():
                    response.headers[header] = value
            return response
        return decorated_function
    return decorator
