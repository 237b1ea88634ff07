"""
User queries.

Emails are stored normalized (stripped, lower-case). Password hashes
never leave this module's callers: use ``public_user`` before returning
a row to the client.
"""

import sqlite3
from typing import Optional

from photoselect.db import get_db, new_id, utc_now
from photoselect.extensions import bcrypt

SUPER_ADMIN = 'SUPER_ADMIN'
BUSINESS_OWNER = 'BUSINESS_OWNER'
STAFF = 'STAFF'
USER = 'USER'
ROLES = (SUPER_ADMIN, BUSINESS_OWNER, STAFF, USER)

# Roles allowed to manage photos and workspaces.
MANAGER_ROLES = (SUPER_ADMIN, BUSINESS_OWNER)

DEFAULT_COLOR = '#3B82F6'

_PUBLIC_COLUMNS = 'id, email, name, role, workspace_id, color, created_at'


def normalize_email(email: str) -> str:
    return (email or '').strip().lower()


def public_user(row) -> Optional[dict]:
    """User row as a dict without the password hash."""
    if row is None:
        return None
    user = dict(row)
    user.pop('password_hash', None)
    return user


def get_user_by_email(email: str) -> Optional[sqlite3.Row]:
    db = get_db()
    return db.execute(
        'SELECT * FROM users WHERE email = ?',
        (normalize_email(email),),
    ).fetchone()


def get_user_by_id(user_id: str) -> Optional[sqlite3.Row]:
    db = get_db()
    return db.execute('SELECT * FROM users WHERE id = ?', (user_id,)).fetchone()


def count_users() -> int:
    return get_db().execute('SELECT COUNT(*) FROM users').fetchone()[0]


def create_user(
    email: str,
    name: str,
    password: str,
    role: str = USER,
    workspace_id: Optional[str] = None,
    commit: bool = True,
) -> dict:
    """
    Insert a user with a bcrypt password hash.

    Raises sqlite3.IntegrityError if the email is taken.
    """
    db = get_db()
    user_id = new_id()
    password_hash = bcrypt.generate_password_hash(password).decode('utf-8')
    db.execute(
        '''INSERT INTO users (id, email, name, password_hash, role, workspace_id, color, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?)''',
        (user_id, normalize_email(email), name.strip(), password_hash, role,
         workspace_id, DEFAULT_COLOR, utc_now()),
    )
    if commit:
        db.commit()
    return public_user(get_user_by_id(user_id))


def update_user_role(user_id: str, role: str, workspace_id: Optional[str] = None, commit: bool = True) -> None:
    db = get_db()
    db.execute(
        'UPDATE users SET role = ?, workspace_id = ? WHERE id = ?',
        (role, workspace_id, user_id),
    )
    if commit:
        db.commit()


def list_users(workspace_id: Optional[str] = None, role: Optional[str] = None) -> list:
    clauses, params = [], []
    if workspace_id:
        clauses.append('workspace_id = ?')
        params.append(workspace_id)
    if role:
        clauses.append('role = ?')
        params.append(role)
    where = f'WHERE {" AND ".join(clauses)}' if clauses else ''
    rows = get_db().execute(
        f'SELECT {_PUBLIC_COLUMNS} FROM users {where} ORDER BY created_at',
        params,
    ).fetchall()
    return [dict(row) for row in rows]


def count_workspace_users(workspace_id: str) -> int:
    return get_db().execute(
        'SELECT COUNT(*) FROM users WHERE workspace_id = ?',
        (workspace_id,),
    ).fetchone()[0]
