"""
Audit helpers. One function per security event.

Each helper gathers the request context (IP, user agent, request id)
and writes one JSON entry to the 'security.audit' logger. Values that
come from the client are sanitized before logging.
"""

import logging

from flask import g, has_request_context, request

from photoselect.logging_config import audit_log, sanitize_log_value


def get_request_context() -> dict:
    """
    Extract security-relevant context from the current request.

    Returns:
        dict with ip, user_agent, request_id, path and method.
        Empty outside a request (e.g. CLI commands).
    """
    if not has_request_context():
        return {}
    return {
        'ip': request.remote_addr or 'unknown',
        'user_agent': sanitize_log_value(
            request.headers.get('User-Agent', 'unknown'),
            max_length=200,
        ),
        'request_id': g.get('request_id', 'unknown'),
        'path': request.path,
        'method': request.method,
    }


def log_login_success(email: str) -> None:
    audit_log(
        event='login_success',
        message=f'Successful login for {sanitize_log_value(email)}',
        email=sanitize_log_value(email),
        **get_request_context(),
    )


def log_login_failed(email: str, reason: str = 'invalid_credentials') -> None:
    audit_log(
        event='login_failed',
        message=f'Failed login for {sanitize_log_value(email)}: {reason}',
        level=logging.WARNING,
        email=sanitize_log_value(email),
        reason=reason,
        **get_request_context(),
    )


def log_account_locked(email: str) -> None:
    audit_log(
        event='account_locked',
        message=f'Account locked for {sanitize_log_value(email)}',
        level=logging.WARNING,
        email=sanitize_log_value(email),
        **get_request_context(),
    )


def log_logout(email: str) -> None:
    audit_log(
        event='logout',
        message=f'Logout for {sanitize_log_value(email)}',
        email=sanitize_log_value(email),
        **get_request_context(),
    )


def log_reauthenticated(email: str) -> None:
    audit_log(
        event='reauthenticated',
        message=f'Re-authentication for {sanitize_log_value(email)}',
        email=sanitize_log_value(email),
        **get_request_context(),
    )


def log_csrf_failure() -> None:
    audit_log(
        event='csrf_failure',
        message='CSRF token validation failed',
        level=logging.WARNING,
        **get_request_context(),
    )


def log_rate_limit_exceeded(limit_name: str, identity: str) -> None:
    audit_log(
        event='rate_limit_exceeded',
        message=f'Rate limit "{limit_name}" exceeded',
        level=logging.WARNING,
        limit_name=limit_name,
        identity=sanitize_log_value(identity, max_length=64),
        **get_request_context(),
    )


def log_session_invalid(email: str, reason: str) -> None:
    audit_log(
        event='session_invalid',
        message=f'Session rejected for {sanitize_log_value(email)}: {reason}',
        level=logging.WARNING,
        email=sanitize_log_value(email),
        reason=reason,
        **get_request_context(),
    )


def log_role_changed(user_id: str, old_role: str, new_role: str) -> None:
    audit_log(
        event='role_changed',
        message=f'Role of user {user_id} changed from {old_role} to {new_role}',
        user_id=user_id,
        **get_request_context(),
    )


def log_photos_deleted(user_id: str, photo_ids: list) -> None:
    event = 'photo_deleted' if len(photo_ids) == 1 else 'photos_bulk_deleted'
    audit_log(
        event=event,
        message=f'User {user_id} deleted {len(photo_ids)} photo(s): {photo_ids}',
        user_id=user_id,
        **get_request_context(),
    )


def log_invitation_created(user_id: str, email: str, role: str) -> None:
    audit_log(
        event='invitation_created',
        message=f'User {user_id} invited {sanitize_log_value(email)} as {role}',
        user_id=user_id,
        email=sanitize_log_value(email),
        **get_request_context(),
    )


def log_invitation_accepted(user_id: str, email: str) -> None:
    audit_log(
        event='invitation_accepted',
        message=f'Invitation for {sanitize_log_value(email)} accepted',
        user_id=user_id,
        email=sanitize_log_value(email),
        **get_request_context(),
    )


def log_webhook_signature_invalid(reason: str) -> None:
    audit_log(
        event='webhook_signature_invalid',
        message='Stripe webhook signature rejected',
        level=logging.WARNING,
        reason=reason,
        **get_request_context(),
    )
