"""
Photo routes: listing, upload, selection toggle, delete, serve, download.
"""

import io
import logging
import zipfile

from flask import current_app, g, jsonify, redirect, request, send_file
from werkzeug.utils import secure_filename

from photoselect.auth.decorators import login_required, roles_required
from photoselect.auth.models import MANAGER_ROLES, SUPER_ADMIN
from photoselect.billing.models import check_photo_limit
from photoselect.errors import (
    APIError,
    ErrorType,
    authorization_error,
    file_upload_error,
    form_errors,
    not_found,
    validation_error,
)
from photoselect.extensions import get_storage
from photoselect.photos import photos_bp
from photoselect.photos.forms import UploadPhotoForm, parse_photo_ids
from photoselect.photos.models import (
    create_photo,
    deletable_photos,
    delete_photos,
    get_photo,
    get_photo_by_filename,
    list_photos,
    photo_with_selections,
    selected_photos,
    toggle_selection,
    workspace_photos,
)
from photoselect.realtime import broadcast_photo_selected, broadcast_photo_uploaded
from photoselect.security.audit import log_photos_deleted
from photoselect.security.csrf import csrf_protect
from photoselect.security.rate_limit import rate_limit
from photoselect.security.request_limits import request_limits
from photoselect.storage import S3, StorageError, file_extension, validate_filename
from photoselect.workspaces.models import can_access_workspace, get_workspace

logger = logging.getLogger(__name__)


def _int_arg(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = request.args.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise validation_error(f'{name} must be an integer') from None
    if not minimum <= value <= maximum:
        raise validation_error(f'{name} must be between {minimum} and {maximum}')
    return value


def _can_upload_to(user, workspace) -> bool:
    if user['role'] == SUPER_ADMIN:
        return True
    return user['workspace_id'] == workspace['id'] or workspace['owner_id'] == user['id']


def _remove_files(photos) -> None:
    """Best-effort file cleanup after the rows are gone."""
    storage = get_storage()
    for photo in photos:
        storage.delete(photo['filename'], photo['storage_type'])


@photos_bp.route('')
@rate_limit('general')
@login_required
def index():
    """Paginated photos: all for SUPER_ADMIN, own workspace for everyone else."""
    page = _int_arg('page', 1, 1, 100000)
    limit = _int_arg(
        'limit',
        current_app.config['PHOTOS_PER_PAGE'],
        1,
        current_app.config['MAX_PHOTOS_PER_PAGE'],
    )
    return jsonify(list_photos(g.user, page, limit))


@photos_bp.route('/workspace/<workspace_id>')
@rate_limit('general')
@login_required
def by_workspace(workspace_id):
    workspace = get_workspace(workspace_id)
    if workspace is None:
        raise not_found('Workspace')
    if not can_access_workspace(g.user, workspace_id):
        raise authorization_error('Access denied to this workspace')
    return jsonify({
        'workspace': dict(workspace),
        'photos': workspace_photos(workspace_id, g.user['id']),
    })


@photos_bp.route('/upload', methods=['POST'])
@rate_limit('upload')
@request_limits('upload')
@login_required
@roles_required(*MANAGER_ROLES)
@csrf_protect
def upload():
    form = UploadPhotoForm()
    if not form.validate_on_submit():
        raise validation_error(details=form_errors(form))

    workspace = get_workspace(form.workspace_id.data)
    if workspace is None:
        raise not_found('Workspace')
    if not _can_upload_to(g.user, workspace):
        raise authorization_error('Access denied to this workspace')

    file = form.file.data
    config = current_app.config
    if file.mimetype not in config['ALLOWED_IMAGE_TYPES']:
        raise file_upload_error(
            'Invalid file type. Only images are allowed.',
            details={'allowed': list(config['ALLOWED_IMAGE_TYPES'])},
        )
    original_name = file.filename or 'photo'
    if file_extension(original_name) not in config['ALLOWED_IMAGE_EXTENSIONS']:
        raise file_upload_error('Invalid file extension.')

    file.stream.seek(0, io.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    if size == 0:
        raise file_upload_error('File is empty.')
    if size > config['MAX_PHOTO_SIZE']:
        raise APIError(
            ErrorType.FILE_UPLOAD,
            f'File too large. Maximum size is {config["MAX_PHOTO_SIZE"] // (1024 * 1024)}MB.',
            413,
            code='FILE_TOO_LARGE',
        )

    if g.user['role'] != SUPER_ADMIN:
        limit = check_photo_limit(workspace['id'], g.user['id'])
        if not limit['allowed']:
            raise APIError(
                ErrorType.AUTHORIZATION,
                'Photo limit reached for your plan',
                403,
                details=limit,
                code='PLAN_LIMIT_REACHED',
            )

    stored = get_storage().save(file.stream, original_name, file.mimetype)
    photo = create_photo(stored, original_name[:255], file.mimetype, workspace['id'], g.user['id'])

    broadcast_photo_uploaded(workspace['id'], f'{g.user["name"]} uploaded {original_name}')
    return jsonify({'success': True, 'photo': photo}), 201


@photos_bp.route('/<int:photo_id>/select', methods=['POST'])
@rate_limit('general')
@login_required
@csrf_protect
def select(photo_id):
    """Toggle the caller's selection of a photo."""
    photo = get_photo(photo_id)
    if photo is None:
        raise not_found('Photo')
    if not can_access_workspace(g.user, photo['workspace_id']):
        raise authorization_error('Access denied to this photo')

    selected = toggle_selection(photo_id, g.user['id'])
    broadcast_photo_selected(photo, g.user, selected)

    return jsonify({
        'selected': selected,
        'photo': photo_with_selections(photo_id, g.user['id']),
        'message': 'Photo selected' if selected else 'Photo deselected',
    })


@photos_bp.route('/<int:photo_id>/delete', methods=['DELETE'])
@rate_limit('sensitive')
@login_required
@roles_required(*MANAGER_ROLES)
@csrf_protect
def delete(photo_id):
    if get_photo(photo_id) is None:
        raise not_found('Photo')

    permitted = deletable_photos(g.user, [photo_id])
    if not permitted:
        raise authorization_error('You do not have permission to delete this photo')

    delete_photos([photo_id])
    _remove_files(permitted)
    log_photos_deleted(g.user['id'], [photo_id])

    return jsonify({'success': True, 'message': 'Photo deleted successfully'})


@photos_bp.route('/bulk-delete', methods=['DELETE'])
@rate_limit('sensitive')
@login_required
@csrf_protect
def bulk_delete():
    """
    Delete every requested photo the caller may delete; skip the rest.

    404 when none of the requested photos is deletable by the caller.
    """
    photo_ids = parse_photo_ids(
        request.get_json(silent=True),
        current_app.config['MAX_BULK_DELETE'],
    )

    permitted = deletable_photos(g.user, photo_ids)
    if not permitted:
        raise not_found('No deletable photos')

    permitted_ids = [photo['id'] for photo in permitted]
    deleted_count = delete_photos(permitted_ids)
    _remove_files(permitted)
    log_photos_deleted(g.user['id'], permitted_ids)

    return jsonify({
        'success': True,
        'deleted_count': deleted_count,
        'requested_count': len(photo_ids),
        'deleted_ids': permitted_ids,
    })


@photos_bp.route('/serve/<filename>')
@rate_limit('general')
@login_required
def serve(filename):
    if not validate_filename(filename, current_app.config['ALLOWED_IMAGE_EXTENSIONS']):
        raise validation_error('Invalid filename')

    photo = get_photo_by_filename(filename)
    if photo is None:
        raise not_found('Photo')
    if not can_access_workspace(g.user, photo['workspace_id']):
        raise authorization_error('Access denied to this photo')

    storage = get_storage()
    try:
        if photo['storage_type'] == S3:
            response = redirect(storage.backend(S3).presigned_url(filename))
        else:
            local = storage.local
            if not local.exists(filename):
                raise not_found('Photo file')
            response = send_file(local.path_for(filename), mimetype=photo['mime_type'])
    except StorageError as e:
        logger.error('Failed to serve %s: %s', filename, e)
        raise not_found('Photo file') from None

    response.headers['Cache-Control'] = 'private, max-age=3600'
    return response


@photos_bp.route('/download', methods=['POST'])
@rate_limit('general')
@login_required
@csrf_protect
def download():
    """ZIP archive of the caller's selected photos (optionally a subset)."""
    body = request.get_json(silent=True)
    photo_ids = parse_photo_ids(
        body if body is not None else {},
        current_app.config['MAX_PHOTOS_PER_PAGE'],
        required=False,
    )

    photos = selected_photos(g.user['id'], photo_ids)
    if not photos:
        raise not_found('Selected photos')

    storage = get_storage()
    buffer = io.BytesIO()
    added = 0
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as archive:
        for photo in photos:
            try:
                data = storage.read(photo['filename'], photo['storage_type'])
            except (StorageError, OSError) as e:
                logger.warning('Skipping %s in download: %s', photo['filename'], e)
                continue
            # Prefix the id so identical original names do not collide.
            name = secure_filename(photo['original_name']) or photo['filename']
            archive.writestr(f'{photo["id"]}_{name}', data)
            added += 1

    if added == 0:
        raise not_found('Selected photo files')

    buffer.seek(0)
    return send_file(
        buffer,
        mimetype='application/zip',
        as_attachment=True,
        download_name='selected-photos.zip',
    )
