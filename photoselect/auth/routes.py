"""
Authentication routes: register, login, logout, re-authentication,
current user, and CSRF token issue.

Request flow (login POST):
1. Rate limiter (auth configuration), outer perimeter
2. Request limits, small JSON or form bodies only
3. WTForms validation, input constraints
4. Timing-safe credential verification, bcrypt ALWAYS runs
5. Lockout check, AFTER bcrypt for timing consistency
6. Success/failure handling with audit logging
"""

import uuid
from datetime import datetime, timezone

from flask import current_app, g, jsonify, session

from photoselect.auth import auth_bp
from photoselect.auth.decorators import login_required
from photoselect.auth.forms import LoginForm, ReauthenticateForm, RegisterForm
from photoselect.auth.models import (
    SUPER_ADMIN,
    USER,
    count_users,
    create_user,
    get_user_by_email,
    normalize_email,
    public_user,
)
from photoselect.auth.security import check_password, verify_credentials
from photoselect.errors import APIError, ErrorType, conflict, form_errors, validation_error
from photoselect.extensions import get_csrf_store, get_session_tracker
from photoselect.security.audit import (
    log_account_locked,
    log_login_failed,
    log_login_success,
    log_logout,
    log_reauthenticated,
)
from photoselect.security.csrf import csrf_protect, session_key
from photoselect.security.rate_limit import rate_limit
from photoselect.security.request_limits import request_limits


def _locked_error() -> APIError:
    # Generic message: does not confirm the email exists.
    return APIError(
        ErrorType.RATE_LIMIT,
        'Too many failed attempts. Please try again later.',
        429,
        code='ACCOUNT_LOCKED',
    )


def _invalid_credentials(remaining_attempts: int = None) -> APIError:
    details = None
    if remaining_attempts is not None:
        details = {'remaining_attempts': remaining_attempts}
    return APIError(
        ErrorType.AUTHENTICATION,
        'Invalid email or password.',
        401,
        details=details,
    )


# --- Request Hooks ---

@auth_bp.before_app_request
def set_request_id() -> None:
    """Generate a short request ID for log correlation."""
    g.request_id = str(uuid.uuid4())[:8]


# --- Routes ---

@auth_bp.route('/auth/register', methods=['POST'])
@rate_limit('auth')
@request_limits('auth')
def register():
    """
    Create an account. The very first account becomes SUPER_ADMIN;
    everyone else starts as USER until invited into a workspace.
    """
    form = RegisterForm()
    if not form.validate_on_submit():
        raise validation_error(details=form_errors(form))

    email = normalize_email(form.email.data)
    if get_user_by_email(email) is not None:
        raise conflict('An account with this email already exists.')

    role = SUPER_ADMIN if count_users() == 0 else USER
    user = create_user(email, form.name.data, form.password.data, role=role)

    return jsonify({'user': user}), 201


@auth_bp.route('/auth/login', methods=['POST'])
@rate_limit('auth')
@request_limits('auth')
def login():
    """
    Authenticate and start a server-side session.

    Security controls applied at this endpoint:
    - Rate limiting: 'auth' configuration per client identity
    - Timing-safe verification: bcrypt always runs, even for unknown users
    - Account lockout: tracked per email, including unknown emails
    - Generic errors: never reveals whether the email exists
    """
    form = LoginForm()
    if not form.validate_on_submit():
        raise validation_error(details=form_errors(form))

    email = normalize_email(form.email.data)
    password = form.password.data
    tracker = get_session_tracker()

    # Step 1: ALWAYS run bcrypt before looking at lockout state, so a
    # locked account responds in the same time as an unlocked one.
    credentials_valid, user = verify_credentials(email, password)

    # Step 2: Lockout check.
    if tracker.is_locked(email):
        log_login_failed(email, reason='account_locked')
        raise _locked_error()

    if not credentials_valid:
        result = tracker.record_login_attempt(email, success=False)

        if result['locked']:
            log_account_locked(email)
            raise _locked_error()

        log_login_failed(email)

        # Warn once the remaining attempts fall to the warning level.
        warning_after = current_app.config['LOCKOUT_WARNING_AFTER']
        threshold = current_app.config['LOCKOUT_THRESHOLD']
        if result['remaining_attempts'] <= threshold - warning_after:
            raise _invalid_credentials(result['remaining_attempts'])
        raise _invalid_credentials()

    # --- Successful Login ---
    # Session fixation prevention: drop old session data before storing
    # authenticated state. Per OWASP ASVS V3.2.1.
    session.clear()
    session['user_id'] = user['id']
    session['user_email'] = email
    session['login_time'] = datetime.now(timezone.utc).isoformat()
    session.permanent = True

    tracker.record_login_attempt(email, success=True)
    tracker.record_authentication(email)
    log_login_success(email)

    return jsonify({
        'user': public_user(user),
        'csrf_token': get_csrf_store().create_token(email),
    })


@auth_bp.route('/auth/logout', methods=['POST'])
@login_required
@csrf_protect
def logout():
    """
    Logout. POST-only so it cannot be triggered by a cross-site GET.

    Server-side invalidation: the session file is discarded, the CSRF
    token revoked, and any other session of this user ends with it.
    Per OWASP ASVS V3.3.1.
    """
    email = g.user['email']

    session.clear()
    get_session_tracker().end_session(email)
    get_csrf_store().revoke(email)

    log_logout(email)
    return jsonify({'message': 'You have been logged out successfully.'})


@auth_bp.route('/auth/reauthenticate', methods=['POST'])
@rate_limit('auth')
@login_required
@csrf_protect
def reauthenticate():
    """Confirm the password again to unlock sensitive endpoints for a while."""
    form = ReauthenticateForm()
    if not form.validate_on_submit():
        raise validation_error(details=form_errors(form))

    email = g.user['email']
    tracker = get_session_tracker()

    if not check_password(g.user, form.password.data):
        result = tracker.record_login_attempt(email, success=False)
        if result['locked']:
            log_account_locked(email)
            session.clear()
            raise _locked_error()
        log_login_failed(email, reason='reauthentication_failed')
        raise _invalid_credentials()

    tracker.record_login_attempt(email, success=True)
    tracker.record_authentication(email)
    log_reauthenticated(email)
    return jsonify({'message': 'Re-authenticated'})


@auth_bp.route('/auth/me')
@login_required
def me():
    return jsonify({'user': public_user(g.user)})


@auth_bp.route('/csrf/token')
@rate_limit('csrf')
@login_required
def csrf_token():
    """Issue (or return the still-valid) CSRF token for this session."""
    token = get_csrf_store().get_token(session_key())
    return jsonify({'csrf_token': token})
