"""
Realtime broadcast hub (Socket.IO).

Every workspace has one room, ``workspace:<id>``. Clients join their
own workspace's room (SUPER_ADMIN may join any) and receive:

    photoSelected     a member toggled a selection
    photoUploaded     new photos are available, re-fetch the list
    userConnected     a member joined the room
    userDisconnected  a member left

Identity always comes from the HTTP session cookie sent with the
handshake, never from event payloads. Delivery order is whatever the
transport gives; there is no deduplication or replay, so a client that
misses events re-fetches state over HTTP.
"""

import logging
import threading
from typing import Dict, Optional

from flask import request
from flask_socketio import disconnect, emit, join_room, leave_room

from photoselect.auth.decorators import load_session_user
from photoselect.auth.models import SUPER_ADMIN
from photoselect.errors import APIError
from photoselect.extensions import get_session_tracker, socketio
from photoselect.security.audit import log_session_invalid
from photoselect.security.rate_limit import enforce
from photoselect.security.session_security import SessionCheck

logger = logging.getLogger(__name__)

# sid -> {'user_id', 'user_name', 'room'}
_connections: Dict[str, dict] = {}
_connections_lock = threading.Lock()


def workspace_room(workspace_id: str) -> str:
    return f'workspace:{workspace_id}'


# --- Server-originated broadcasts (called from HTTP views) ---

def broadcast_photo_uploaded(workspace_id: str, message: str) -> None:
    socketio.emit(
        'photoUploaded',
        {'workspace_id': workspace_id, 'message': message},
        to=workspace_room(workspace_id),
    )


def broadcast_photo_selected(photo, user, selected: bool) -> None:
    socketio.emit(
        'photoSelected',
        selection_payload(photo, user, selected),
        to=workspace_room(photo['workspace_id']),
    )


def selection_payload(photo, user, selected: bool) -> dict:
    return {
        'photo_id': photo['id'],
        'workspace_id': photo['workspace_id'],
        'user_id': user['id'],
        'user_name': user['name'],
        'selected': selected,
    }


def _can_join(user, workspace_id: str) -> bool:
    if user['role'] == SUPER_ADMIN:
        return True
    return bool(workspace_id) and user['workspace_id'] == workspace_id


def _error(message: str, code: str = None) -> dict:
    ack = {'success': False, 'error': message}
    if code:
        ack['code'] = code
    return ack


def _failed_session_check(user) -> Optional[SessionCheck]:
    """
    Run the session security checks HTTP views get from login_required.

    Returns the failed check, or None when the session is still valid.
    """
    tracker = get_session_tracker()
    check = tracker.validate_session(user['email'])
    if check.valid:
        return None

    log_session_invalid(user['email'], check.code)
    if check.terminate:
        # A socket cannot clear the session cookie. Keep the session
        # revoked so the next HTTP request discards it.
        tracker.end_session(user['email'])
    return check


def _event_user():
    """
    Return (user, None) for a valid session, or (None, error ack).

    A session that has been terminated also loses its socket.
    """
    user = load_session_user()
    if user is None:
        return None, _error('Authentication required', 'AUTHENTICATION_ERROR')

    failed = _failed_session_check(user)
    if failed is not None:
        if failed.terminate:
            disconnect()
        return None, _error(failed.message, failed.code)
    return user, None


def register_socketio_handlers(socketio) -> None:
    """Register Socket.IO event handlers on ``socketio``."""
    from photoselect.photos.models import get_photo, toggle_selection
    from photoselect.workspaces.models import get_workspace

    @socketio.on('connect')
    def handle_connect(auth=None):
        """Refuse sockets without a valid authenticated HTTP session."""
        user = load_session_user()
        if user is None:
            logger.info('Rejected unauthenticated socket connection')
            return False
        if _failed_session_check(user) is not None:
            return False

        with _connections_lock:
            _connections[request.sid] = {
                'user_id': user['id'],
                'user_name': user['name'],
                'room': None,
            }
        logger.debug('Socket %s connected for user %s', request.sid, user['id'])

    @socketio.on('joinRoom')
    def handle_join_room(data=None):
        user, error = _event_user()
        if error is not None:
            return error

        data = data if isinstance(data, dict) else {}
        workspace_id = data.get('workspace_id') or user['workspace_id']
        if not workspace_id or not _can_join(user, workspace_id):
            return _error('Access denied to this workspace', 'AUTHORIZATION_ERROR')
        if get_workspace(workspace_id) is None:
            return _error('Workspace not found', 'NOT_FOUND_ERROR')

        room = workspace_room(workspace_id)
        with _connections_lock:
            connection = _connections.setdefault(
                request.sid, {'user_id': user['id'], 'user_name': user['name'], 'room': None},
            )
            previous = connection['room']
            connection['room'] = room

        if previous and previous != room:
            leave_room(previous)
        join_room(room)

        emit(
            'userConnected',
            {'user_id': user['id'], 'user_name': user['name']},
            to=room,
            include_self=False,
        )
        return {'success': True, 'room': room}

    @socketio.on('selectPhoto')
    def handle_select_photo(data=None):
        """
        Toggle the caller's selection of a photo and tell the room.

        The caller gets the new state as the acknowledgement; the other
        room members get it as a photoSelected event.
        """
        user, error = _event_user()
        if error is not None:
            return error

        enforce('general', identity=f'user:{user["id"]}')

        photo_id = data.get('photo_id') if isinstance(data, dict) else None
        if not isinstance(photo_id, int) or isinstance(photo_id, bool) or photo_id <= 0:
            return _error('photo_id must be a positive integer', 'VALIDATION_ERROR')

        photo = get_photo(photo_id)
        if photo is None:
            return _error('Photo not found', 'NOT_FOUND_ERROR')
        if not _can_join(user, photo['workspace_id']):
            return _error('Access denied to this photo', 'AUTHORIZATION_ERROR')

        selected = toggle_selection(photo_id, user['id'])
        payload = selection_payload(photo, user, selected)
        emit('photoSelected', payload, to=workspace_room(photo['workspace_id']), include_self=False)
        return payload

    @socketio.on('uploadPhoto')
    def handle_upload_photo(data=None):
        """Relay an upload notice so other members refresh their gallery."""
        user, error = _event_user()
        if error is not None:
            return error

        enforce('general', identity=f'user:{user["id"]}')

        data = data if isinstance(data, dict) else {}
        workspace_id = data.get('workspace_id')
        if not workspace_id or not _can_join(user, workspace_id):
            return _error('Access denied to this workspace', 'AUTHORIZATION_ERROR')

        message = str(data.get('message') or 'New photos uploaded')[:500]
        emit(
            'photoUploaded',
            {'workspace_id': workspace_id, 'message': message},
            to=workspace_room(workspace_id),
            include_self=False,
        )
        return {'success': True}

    @socketio.on('disconnect')
    def handle_disconnect(reason=None):
        with _connections_lock:
            connection = _connections.pop(request.sid, None)
        if connection and connection['room']:
            socketio.emit(
                'userDisconnected',
                {'user_id': connection['user_id'], 'user_name': connection['user_name']},
                to=connection['room'],
                skip_sid=request.sid,
            )
        logger.debug('Socket %s disconnected', request.sid)

    @socketio.on_error_default
    def handle_socket_error(e):
        """Failed events are acknowledged with an error instead of dropping the socket."""
        if isinstance(e, APIError):
            return _error(e.message, e.code or e.error_type.value)
        logger.exception('Socket event failed')
        return _error('Internal server error', 'SERVER_ERROR')
