"""
Workspace routes: admin creation and listing, detail, rename, status.
"""

from flask import g, jsonify

from photoselect.auth.decorators import login_required, roles_required
from photoselect.auth.models import BUSINESS_OWNER, MANAGER_ROLES, SUPER_ADMIN, update_user_role
from photoselect.billing.models import check_workspace_limit
from photoselect.errors import APIError, ErrorType, authorization_error, conflict, form_errors, not_found, validation_error
from photoselect.security.csrf import csrf_protect
from photoselect.security.rate_limit import rate_limit
from photoselect.workspaces import workspaces_bp
from photoselect.workspaces.forms import CreateWorkspaceForm, UpdateWorkspaceForm, WorkspaceStatusForm
from photoselect.workspaces.models import (
    can_access_workspace,
    create_workspace,
    get_workspace,
    get_workspace_by_slug,
    list_workspaces,
    set_workspace_status,
    slug_taken,
    slugify,
    update_workspace,
    workspace_members,
)


def _can_manage(user, workspace) -> bool:
    if user['role'] == SUPER_ADMIN:
        return True
    if user['role'] != BUSINESS_OWNER:
        return False
    return workspace['owner_id'] == user['id'] or user['workspace_id'] == workspace['id']


def _workspace_detail(workspace) -> dict:
    detail = dict(workspace)
    detail['users'] = workspace_members(workspace['id'])
    return detail


@workspaces_bp.route('/admin/workspaces', methods=['POST'])
@rate_limit('general')
@login_required
@roles_required(*MANAGER_ROLES)
@csrf_protect
def create():
    form = CreateWorkspaceForm()
    if not form.validate_on_submit():
        raise validation_error('Invalid input data', details=form_errors(form))

    slug = form.slug.data or slugify(form.name.data)
    if not slug:
        raise validation_error('Invalid slug format')
    if slug_taken(slug):
        raise conflict('Workspace with this slug already exists')

    user = g.user
    if user['role'] == BUSINESS_OWNER:
        limit = check_workspace_limit(user['id'])
        if not limit['allowed']:
            raise APIError(
                ErrorType.AUTHORIZATION,
                'Workspace limit reached for your plan',
                403,
                details=limit,
                code='PLAN_LIMIT_REACHED',
            )

    workspace = create_workspace(form.name.data, slug, form.description.data, owner_id=user['id'])

    # An owner without a workspace becomes a member of their first one.
    if user['role'] == BUSINESS_OWNER and not user['workspace_id']:
        update_user_role(user['id'], BUSINESS_OWNER, workspace['id'])

    return jsonify({'success': True, 'workspace': workspace}), 201


@workspaces_bp.route('/admin/workspaces')
@rate_limit('general')
@login_required
@roles_required(*MANAGER_ROLES)
def index():
    return jsonify({'success': True, 'workspaces': list_workspaces(g.user)})


@workspaces_bp.route('/workspaces/<workspace_id>')
@rate_limit('general')
@login_required
def detail(workspace_id):
    workspace = get_workspace(workspace_id)
    if workspace is None:
        raise not_found('Workspace')
    if not can_access_workspace(g.user, workspace_id):
        raise authorization_error('Access denied to this workspace')
    return jsonify({'workspace': _workspace_detail(workspace)})


@workspaces_bp.route('/workspaces/slug/<slug>')
@rate_limit('general')
@login_required
def detail_by_slug(slug):
    workspace = get_workspace_by_slug(slug)
    if workspace is None:
        raise not_found('Workspace')
    if not can_access_workspace(g.user, workspace['id']):
        raise authorization_error('Access denied to this workspace')
    return jsonify({'workspace': _workspace_detail(workspace)})


@workspaces_bp.route('/workspaces/<workspace_id>', methods=['PATCH'])
@rate_limit('general')
@login_required
@roles_required(*MANAGER_ROLES)
@csrf_protect
def rename(workspace_id):
    """Rename a workspace. The slug is regenerated from the new name."""
    workspace = get_workspace(workspace_id)
    if workspace is None:
        raise not_found('Workspace')
    if not _can_manage(g.user, workspace):
        raise authorization_error('You can only edit your own workspace')

    form = UpdateWorkspaceForm()
    if not form.validate_on_submit():
        raise validation_error('Invalid input data', details=form_errors(form))

    slug = slugify(form.name.data)
    if not slug:
        raise validation_error('Name must contain letters or digits')
    if slug_taken(slug, exclude_id=workspace_id):
        raise conflict('A workspace with this name already exists')

    updated = update_workspace(workspace_id, form.name.data, slug, form.description.data)
    return jsonify({'success': True, 'workspace': updated})


@workspaces_bp.route('/workspaces/<workspace_id>/status', methods=['PATCH'])
@rate_limit('general')
@login_required
@roles_required(*MANAGER_ROLES)
@csrf_protect
def change_status(workspace_id):
    workspace = get_workspace(workspace_id)
    if workspace is None:
        raise not_found('Workspace')
    if not _can_manage(g.user, workspace):
        raise authorization_error('You can only change your own workspace')

    form = WorkspaceStatusForm()
    if not form.validate_on_submit():
        raise validation_error('Status must be ACTIVE or INACTIVE', details=form_errors(form))

    updated = set_workspace_status(workspace_id, form.status.data)
    return jsonify({'success': True, 'workspace': updated})
