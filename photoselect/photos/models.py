"""
Photo and selection queries.

Scoping rules for who may delete a photo:

- SUPER_ADMIN: any photo
- BUSINESS_OWNER: photos in a workspace they belong to or own
- everyone else: only photos they uploaded, in their own workspace
"""

import sqlite3
from typing import Iterable, List, Optional

from photoselect.auth.models import BUSINESS_OWNER, SUPER_ADMIN
from photoselect.db import get_db, transaction, utc_now

_PHOTO_WITH_UPLOADER = '''
    SELECT p.*, u.name AS uploaded_by_name, u.email AS uploaded_by_email
    FROM photos p
    JOIN users u ON u.id = p.uploaded_by_id
'''


def get_photo(photo_id: int) -> Optional[sqlite3.Row]:
    return get_db().execute('SELECT * FROM photos WHERE id = ?', (photo_id,)).fetchone()


def get_photo_by_filename(filename: str) -> Optional[sqlite3.Row]:
    return get_db().execute('SELECT * FROM photos WHERE filename = ?', (filename,)).fetchone()


def create_photo(stored, original_name: str, mime_type: str, workspace_id: str, uploaded_by_id: str) -> dict:
    db = get_db()
    cursor = db.execute(
        '''INSERT INTO photos (filename, original_name, url, mime_type, size, storage_type,
                               workspace_id, uploaded_by_id, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)''',
        (stored.filename, original_name, stored.url, mime_type, stored.size,
         stored.storage_type, workspace_id, uploaded_by_id, utc_now()),
    )
    db.commit()
    return dict(get_photo(cursor.lastrowid))


def _attach_selections(photos: List[dict], current_user_id: Optional[str] = None) -> List[dict]:
    """Add ``selections`` (and ``selected`` for the current user) to each photo."""
    if not photos:
        return photos
    ids = [photo['id'] for photo in photos]
    placeholders = ', '.join('?' for _ in ids)
    rows = get_db().execute(
        f'''SELECT s.photo_id, s.user_id, u.name AS user_name, u.color, s.created_at
            FROM photo_selections s JOIN users u ON u.id = s.user_id
            WHERE s.photo_id IN ({placeholders})
            ORDER BY s.created_at''',
        ids,
    ).fetchall()

    by_photo = {photo_id: [] for photo_id in ids}
    for row in rows:
        by_photo[row['photo_id']].append({
            'user_id': row['user_id'],
            'user_name': row['user_name'],
            'color': row['color'],
            'created_at': row['created_at'],
        })

    for photo in photos:
        photo['selections'] = by_photo[photo['id']]
        if current_user_id is not None:
            photo['selected'] = any(s['user_id'] == current_user_id for s in photo['selections'])
    return photos


def list_photos(user, page: int, limit: int) -> dict:
    """One page of photos visible to ``user``, newest first."""
    db = get_db()
    where, params = '', []
    if user['role'] != SUPER_ADMIN:
        where = 'WHERE p.workspace_id = ?'
        params.append(user['workspace_id'] or '')

    total = db.execute(f'SELECT COUNT(*) FROM photos p {where}', params).fetchone()[0]
    rows = db.execute(
        f'{_PHOTO_WITH_UPLOADER} {where} ORDER BY p.created_at DESC, p.id DESC LIMIT ? OFFSET ?',
        (*params, limit, (page - 1) * limit),
    ).fetchall()

    return {
        'photos': _attach_selections([dict(row) for row in rows], user['id']),
        'pagination': {
            'page': page,
            'limit': limit,
            'total': total,
            'pages': (total + limit - 1) // limit,
            'has_more': page * limit < total,
        },
    }


def workspace_photos(workspace_id: str, current_user_id: str) -> List[dict]:
    rows = get_db().execute(
        f'{_PHOTO_WITH_UPLOADER} WHERE p.workspace_id = ? ORDER BY p.created_at DESC, p.id DESC',
        (workspace_id,),
    ).fetchall()
    return _attach_selections([dict(row) for row in rows], current_user_id)


def photo_with_selections(photo_id: int, current_user_id: str) -> Optional[dict]:
    row = get_db().execute(f'{_PHOTO_WITH_UPLOADER} WHERE p.id = ?', (photo_id,)).fetchone()
    if row is None:
        return None
    return _attach_selections([dict(row)], current_user_id)[0]


def toggle_selection(photo_id: int, user_id: str) -> bool:
    """
    Flip the (photo, user) selection row.

    Deletes it if present, creates it if absent. Returns the new state.
    """
    with transaction() as db:
        deleted = db.execute(
            'DELETE FROM photo_selections WHERE photo_id = ? AND user_id = ?',
            (photo_id, user_id),
        ).rowcount
        if deleted:
            return False
        db.execute(
            'INSERT INTO photo_selections (photo_id, user_id, created_at) VALUES (?, ?, ?)',
            (photo_id, user_id, utc_now()),
        )
        return True


def can_delete_photo(user, photo, workspace_owner_id: Optional[str] = None) -> bool:
    if user['role'] == SUPER_ADMIN:
        return True
    if user['role'] == BUSINESS_OWNER:
        return photo['workspace_id'] == user['workspace_id'] or workspace_owner_id == user['id']
    return photo['uploaded_by_id'] == user['id'] and photo['workspace_id'] == user['workspace_id']


def deletable_photos(user, photo_ids: Iterable[int]) -> List[sqlite3.Row]:
    """The subset of ``photo_ids`` that ``user`` may delete."""
    ids = list(photo_ids)
    if not ids:
        return []
    placeholders = ', '.join('?' for _ in ids)
    rows = get_db().execute(
        f'''SELECT p.*, w.owner_id AS workspace_owner_id
            FROM photos p JOIN workspaces w ON w.id = p.workspace_id
            WHERE p.id IN ({placeholders})''',
        ids,
    ).fetchall()
    return [row for row in rows if can_delete_photo(user, row, row['workspace_owner_id'])]


def delete_photos(photo_ids: List[int]) -> int:
    """
    Delete photos and their selections in one transaction.

    Returns the number of photo rows removed.
    """
    if not photo_ids:
        return 0
    placeholders = ', '.join('?' for _ in photo_ids)
    with transaction() as db:
        db.execute(f'DELETE FROM photo_selections WHERE photo_id IN ({placeholders})', photo_ids)
        return db.execute(f'DELETE FROM photos WHERE id IN ({placeholders})', photo_ids).rowcount


def selected_photos(user_id: str, photo_ids: Optional[List[int]] = None) -> List[sqlite3.Row]:
    """Photos the user has selected, optionally narrowed to ``photo_ids``."""
    query = '''SELECT p.* FROM photos p
               JOIN photo_selections s ON s.photo_id = p.id
               WHERE s.user_id = ?'''
    params: list = [user_id]
    if photo_ids:
        query += f' AND p.id IN ({", ".join("?" for _ in photo_ids)})'
        params.extend(photo_ids)
    return get_db().execute(query + ' ORDER BY p.id', params).fetchall()
