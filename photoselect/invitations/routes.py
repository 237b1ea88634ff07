"""
Invitation routes: create, look up by token, accept, revoke.
"""

import logging

from flask import current_app, g, jsonify

from photoselect.auth.decorators import login_required
from photoselect.auth.models import BUSINESS_OWNER, SUPER_ADMIN, get_user_by_email, normalize_email, update_user_role
from photoselect.billing.models import check_user_limit
from photoselect.db import transaction
from photoselect.errors import (
    APIError,
    ErrorType,
    authorization_error,
    conflict,
    form_errors,
    not_found,
    validation_error,
)
from photoselect.extensions import get_email_service
from photoselect.invitations import invitations_bp
from photoselect.invitations.forms import TOKEN_PATTERN, AcceptInvitationForm, CreateInvitationForm
from photoselect.invitations.models import (
    EXPIRED,
    PENDING,
    REVOKED,
    InvitationError,
    check_invite_permission,
    create_invitation,
    get_invitation,
    get_invitation_by_token,
    get_pending_invitation_for_email,
    invitation_details,
    is_expired,
    mark_accepted,
    set_status,
)
from photoselect.security.audit import log_invitation_accepted, log_invitation_created
from photoselect.security.csrf import csrf_protect
from photoselect.security.rate_limit import rate_limit
from photoselect.workspaces.models import get_workspace

logger = logging.getLogger(__name__)


def _rule_error(e: InvitationError) -> APIError:
    error_type = ErrorType.AUTHORIZATION if e.status == 403 else ErrorType.VALIDATION
    return APIError(error_type, e.message, e.status)


@invitations_bp.route('/create', methods=['POST'])
@rate_limit('invitation')
@login_required
@csrf_protect
def create():
    form = CreateInvitationForm()
    if not form.validate_on_submit():
        raise validation_error(details=form_errors(form))

    inviter = g.user
    email = normalize_email(form.email.data)
    role = form.role.data

    workspace = None
    if form.workspace_id.data:
        workspace = get_workspace(form.workspace_id.data)
        if workspace is None:
            raise not_found('Workspace')

    try:
        check_invite_permission(inviter, role, workspace)
    except InvitationError as e:
        raise _rule_error(e) from None

    if get_user_by_email(email) is not None:
        raise conflict('User already exists with this email')
    if get_pending_invitation_for_email(email) is not None:
        raise conflict('Pending invitation already exists for this email')

    if workspace is not None and inviter['role'] != SUPER_ADMIN:
        limit = check_user_limit(workspace['id'], inviter['id'])
        if not limit['allowed']:
            raise APIError(
                ErrorType.AUTHORIZATION,
                'User limit reached for your plan',
                403,
                details=limit,
                code='PLAN_LIMIT_REACHED',
            )

    invitation = create_invitation(
        email,
        role,
        workspace['id'] if workspace else None,
        inviter['id'],
        current_app.config['INVITATION_EXPIRY_HOURS'],
    )
    log_invitation_created(inviter['id'], email, role)

    result = get_email_service().send_invitation(
        email,
        invitation['token'],
        role,
        inviter['name'],
        workspace_name=workspace['name'] if workspace else None,
        expires_at=invitation['expires_at'],
    )
    if not result.success:
        logger.warning('Invitation %s created but email failed: %s', invitation['id'], result.error)

    return jsonify({
        'success': True,
        'invitation': invitation_details(invitation),
        'email_sent': result.success,
        'email_error': result.error,
    }), 201


@invitations_bp.route('/<token>')
@rate_limit('invitation')
def lookup(token):
    """Public invitation details for the accept page. No session needed."""
    if not TOKEN_PATTERN.match(token):
        raise validation_error('Invalid invitation token format')

    invitation = get_invitation_by_token(token)
    if invitation is None or invitation['status'] != PENDING or is_expired(invitation):
        raise not_found('Invitation')

    return jsonify({'invitation': invitation_details(invitation)})


@invitations_bp.route('/accept', methods=['POST'])
@rate_limit('sensitive')
@login_required
@csrf_protect
def accept():
    """
    Accept an invitation as the logged-in user.

    The session's email must match the invited email. On success the
    user's role and workspace are replaced by the invitation's.
    """
    form = AcceptInvitationForm()
    if not form.validate_on_submit():
        raise validation_error(details=form_errors(form))

    invitation = get_invitation_by_token(form.token.data)
    if invitation is None:
        raise not_found('Invitation')
    if invitation['status'] != PENDING:
        raise conflict('Invitation is no longer valid')
    if is_expired(invitation):
        set_status(invitation['id'], EXPIRED)
        raise validation_error('Invitation has expired', code='INVITATION_EXPIRED')

    user = g.user
    if normalize_email(user['email']) != invitation['email']:
        raise authorization_error('This invitation was sent to a different email address')

    with transaction():
        update_user_role(user['id'], invitation['role'], invitation['workspace_id'], commit=False)
        mark_accepted(invitation['id'], user['id'], commit=False)

    log_invitation_accepted(user['id'], user['email'])
    return jsonify({
        'success': True,
        'role': invitation['role'],
        'workspace_id': invitation['workspace_id'],
    })


@invitations_bp.route('/<invitation_id>/revoke', methods=['POST'])
@rate_limit('invitation')
@login_required
@csrf_protect
def revoke(invitation_id):
    invitation = get_invitation(invitation_id)
    if invitation is None:
        raise not_found('Invitation')

    user = g.user
    allowed = (
        user['role'] == SUPER_ADMIN
        or invitation['invited_by_id'] == user['id']
        or (user['role'] == BUSINESS_OWNER and invitation['workspace_id']
            and invitation['workspace_id'] == user['workspace_id'])
    )
    if not allowed:
        raise authorization_error('You cannot revoke this invitation')
    if invitation['status'] != PENDING:
        raise conflict('Only pending invitations can be revoked')

    set_status(invitation_id, REVOKED)
    return jsonify({'success': True, 'status': REVOKED})
