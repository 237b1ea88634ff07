"""
Workspace queries and tenant-access rules.
"""

import re
import sqlite3
from typing import Optional

from photoselect.auth.models import SUPER_ADMIN
from photoselect.db import get_db, new_id, utc_now

ACTIVE = 'ACTIVE'
INACTIVE = 'INACTIVE'
SUSPENDED = 'SUSPENDED'
STATUSES = (ACTIVE, INACTIVE, SUSPENDED)

SLUG_PATTERN = re.compile(r'^[a-z0-9-]+$')
MAX_SLUG_LENGTH = 50


def slugify(name: str) -> str:
    """Lower-case, runs of anything else collapsed to '-', trimmed."""
    slug = re.sub(r'[^a-z0-9]+', '-', name.strip().lower()).strip('-')
    return slug[:MAX_SLUG_LENGTH].strip('-')


def can_access_workspace(user, workspace_id: str) -> bool:
    """SUPER_ADMIN sees every workspace; everyone else only their own."""
    if user['role'] == SUPER_ADMIN:
        return True
    return bool(workspace_id) and user['workspace_id'] == workspace_id


def get_workspace(workspace_id: str) -> Optional[sqlite3.Row]:
    return get_db().execute('SELECT * FROM workspaces WHERE id = ?', (workspace_id,)).fetchone()


def get_workspace_by_slug(slug: str) -> Optional[sqlite3.Row]:
    return get_db().execute('SELECT * FROM workspaces WHERE slug = ?', (slug,)).fetchone()


def create_workspace(name: str, slug: str, description: Optional[str], owner_id: Optional[str]) -> dict:
    """Raises sqlite3.IntegrityError on a duplicate slug."""
    db = get_db()
    workspace_id = new_id()
    now = utc_now()
    db.execute(
        '''INSERT INTO workspaces (id, name, slug, description, status, owner_id, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)''',
        (workspace_id, name.strip(), slug, description or None, ACTIVE, owner_id, now, now),
    )
    db.commit()
    return dict(get_workspace(workspace_id))


def update_workspace(workspace_id: str, name: str, slug: str, description: Optional[str]) -> dict:
    db = get_db()
    db.execute(
        'UPDATE workspaces SET name = ?, slug = ?, description = ?, updated_at = ? WHERE id = ?',
        (name.strip(), slug, description or None, utc_now(), workspace_id),
    )
    db.commit()
    return dict(get_workspace(workspace_id))


def set_workspace_status(workspace_id: str, status: str) -> dict:
    db = get_db()
    db.execute(
        'UPDATE workspaces SET status = ?, updated_at = ? WHERE id = ?',
        (status, utc_now(), workspace_id),
    )
    db.commit()
    return dict(get_workspace(workspace_id))


def slug_taken(slug: str, exclude_id: Optional[str] = None) -> bool:
    row = get_db().execute(
        'SELECT id FROM workspaces WHERE slug = ? AND id != ?',
        (slug, exclude_id or ''),
    ).fetchone()
    return row is not None


def list_workspaces(user) -> list:
    """
    Workspaces visible in the admin list, with member and photo counts.

    SUPER_ADMIN sees all; a BUSINESS_OWNER sees the ones they own or belong to.
    """
    query = '''
        SELECT w.*,
               (SELECT COUNT(*) FROM users u WHERE u.workspace_id = w.id) AS user_count,
               (SELECT COUNT(*) FROM photos p WHERE p.workspace_id = w.id) AS photo_count
        FROM workspaces w
    '''
    params = ()
    if user['role'] != SUPER_ADMIN:
        query += ' WHERE w.owner_id = ? OR w.id = ?'
        params = (user['id'], user['workspace_id'] or '')
    query += ' ORDER BY w.created_at DESC'
    return [dict(row) for row in get_db().execute(query, params).fetchall()]


def workspace_members(workspace_id: str) -> list:
    rows = get_db().execute(
        '''SELECT id, name, email, role, color, created_at FROM users
           WHERE workspace_id = ? ORDER BY created_at''',
        (workspace_id,),
    ).fetchall()
    return [dict(row) for row in rows]
