"""
User administration, security statistics, storage and email diagnostics.
"""

import logging
from datetime import datetime, timezone

from flask import g, jsonify, request

from photoselect.admin import admin_bp
from photoselect.admin.forms import AdminCreateUserForm, ChangeRoleForm, TestEmailForm
from photoselect.auth.decorators import login_required, roles_required
from photoselect.auth.models import (
    MANAGER_ROLES,
    ROLES,
    SUPER_ADMIN,
    create_user,
    get_user_by_email,
    get_user_by_id,
    list_users,
    public_user,
    update_user_role,
)
from photoselect.errors import (
    conflict,
    email_error,
    form_errors,
    not_found,
    validation_error,
)
from photoselect.extensions import get_csrf_store, get_email_service, get_session_tracker, get_storage
from photoselect.security.audit import log_role_changed
from photoselect.security.csrf import csrf_protect
from photoselect.security.rate_limit import rate_limit
from photoselect.security.request_limits import request_limits
from photoselect.workspaces.models import get_workspace

logger = logging.getLogger(__name__)


def _require_workspace(workspace_id):
    if workspace_id and get_workspace(workspace_id) is None:
        raise not_found('Workspace')


@admin_bp.route('/users')
@rate_limit('general')
@login_required
def workspace_users():
    """Members of the caller's workspace. Super admins may pass ?workspace_id=."""
    user = g.user
    workspace_id = user['workspace_id']
    if user['role'] == SUPER_ADMIN:
        workspace_id = request.args.get('workspace_id') or workspace_id
    if not workspace_id:
        return jsonify({'users': []})
    return jsonify({'users': list_users(workspace_id=workspace_id)})


@admin_bp.route('/admin/users')
@rate_limit('general')
@login_required
@roles_required(SUPER_ADMIN)
def admin_list_users():
    role = request.args.get('role') or None
    if role is not None and role not in ROLES:
        raise validation_error('Invalid role')
    users = list_users(workspace_id=request.args.get('workspace_id') or None, role=role)
    return jsonify({'users': users})


@admin_bp.route('/admin/users', methods=['POST'])
@rate_limit('sensitive')
@request_limits('auth')
@login_required
@roles_required(SUPER_ADMIN)
@csrf_protect
def admin_create_user():
    form = AdminCreateUserForm()
    if not form.validate_on_submit():
        raise validation_error('Invalid input data', details=form_errors(form))

    if get_user_by_email(form.email.data) is not None:
        raise conflict('User with this email already exists')

    workspace_id = form.workspace_id.data or None
    _require_workspace(workspace_id)

    user = create_user(
        form.email.data,
        form.name.data,
        form.password.data,
        role=form.role.data,
        workspace_id=workspace_id,
    )
    logger.info('User %s created by %s', user['id'], g.user['id'])
    return jsonify({'user': user}), 201


@admin_bp.route('/admin/users/<user_id>/role', methods=['PATCH'])
@rate_limit('sensitive')
@login_required
@roles_required(SUPER_ADMIN)
@csrf_protect
def change_role(user_id):
    """
    Change a user's role (and optionally workspace).

    The target's session state is revoked so their next request must
    log in again and picks up the new privileges.
    """
    form = ChangeRoleForm()
    if not form.validate_on_submit():
        raise validation_error('Invalid input data', details=form_errors(form))

    target = get_user_by_id(user_id)
    if target is None:
        raise not_found('User')
    if target['id'] == g.user['id']:
        raise validation_error('You cannot change your own role')

    workspace_id = form.workspace_id.data or target['workspace_id']
    _require_workspace(workspace_id)

    old_role = target['role']
    update_user_role(target['id'], form.role.data, workspace_id)
    get_session_tracker().end_session(target['email'])
    get_csrf_store().revoke(target['email'])
    log_role_changed(target['id'], old_role, form.role.data)

    return jsonify({'user': public_user(get_user_by_id(target['id']))})


@admin_bp.route('/admin/security/stats')
@rate_limit('general')
@login_required
@roles_required(SUPER_ADMIN)
def security_stats():
    return jsonify({
        'sessions': get_session_tracker().get_session_stats(),
        'csrf_tokens': len(get_csrf_store()),
        'storage': get_storage().describe(),
        'timestamp': datetime.now(timezone.utc).isoformat(),
    })


@admin_bp.route('/storage/status')
@rate_limit('general')
@login_required
@roles_required(*MANAGER_ROLES)
def storage_status():
    return jsonify({
        'storage': get_storage().describe(),
        'timestamp': datetime.now(timezone.utc).isoformat(),
    })


@admin_bp.route('/email/test', methods=['POST'])
@rate_limit('sensitive')
@login_required
@roles_required(SUPER_ADMIN)
@csrf_protect
def test_email():
    form = TestEmailForm()
    if not form.validate_on_submit():
        raise validation_error('Email address is required', details=form_errors(form))

    result = get_email_service().send_test_email(form.email.data)
    if not result.success:
        raise email_error(result.error or 'Failed to send test email')

    return jsonify({
        'success': True,
        'message': 'Test email sent successfully',
        'development_mode': result.development_mode,
    })
