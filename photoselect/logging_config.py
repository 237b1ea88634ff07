"""
Structured security audit logging plus the application logger.

Security events are logged as JSON on the 'security.audit' logger for
machine parsing. Operational messages go through the 'photoselect'
logger hierarchy (module-level ``logging.getLogger(__name__)``).

NEVER logs: passwords, session or CSRF tokens, invitation tokens,
or full request bodies. Per OWASP Logging Cheat Sheet.
"""

import json
import logging
import re
import time
from typing import Any, Dict


# Control characters that could enable log injection attacks.
_LOG_INJECTION_PATTERN = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')

# Context fields copied from the record into the JSON entry when present.
AUDIT_CONTEXT_FIELDS = (
    'ip',
    'email',
    'user_id',
    'user_agent',
    'request_id',
    'reason',
    'path',
    'method',
    'identity',
    'workspace_id',
    'limit_name',
)


def sanitize_log_value(value: str, max_length: int = 256) -> str:
    """
    Sanitize a string for safe inclusion in log output.

    Prevents log injection by removing control characters and
    truncating to a maximum length.
    """
    cleaned = _LOG_INJECTION_PATTERN.sub('', str(value))
    return cleaned[:max_length]


class SecurityAuditFormatter(logging.Formatter):
    """JSON formatter for security audit events."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            'timestamp': time.strftime('%Y-%m-%dT%H:%M:%S%z', time.gmtime(record.created)),
            'level': record.levelname,
            'event': getattr(record, 'event', 'unknown'),
            'message': record.getMessage(),
        }

        for field in AUDIT_CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = sanitize_log_value(str(value))

        return json.dumps(log_entry)


def setup_security_logging(app) -> logging.Logger:
    """
    Configure the security audit logger.

    Returns a dedicated 'security.audit' logger that writes JSON to stderr.
    """
    logger = logging.getLogger('security.audit')
    logger.setLevel(logging.INFO)

    # Repeated create_app() calls (tests) must not stack handlers.
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(SecurityAuditFormatter())
    logger.addHandler(console_handler)

    return logger


def setup_app_logging(app) -> logging.Logger:
    """Configure the 'photoselect' logger used by application modules."""
    logger = logging.getLogger('photoselect')
    logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s [%(name)s] %(message)s'
    ))
    logger.addHandler(handler)

    return logger


def audit_log(event: str, message: str, level: int = logging.INFO, **context) -> None:
    """
    Log a security audit event.

    Args:
        event: Event type (e.g., 'login_success', 'csrf_failure')
        message: Human-readable description
        level: Logging level, INFO unless the event is a warning
        **context: Additional context (ip, email, user_agent, request_id, ...)
    """
    logger = logging.getLogger('security.audit')
    extra = {'event': event}
    extra.update(context)
    logger.log(level, message, extra=extra)
