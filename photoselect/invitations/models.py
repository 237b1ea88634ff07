"""
Invitation queries and the rules for who may invite whom.
"""

import secrets
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Optional

from photoselect.auth.models import BUSINESS_OWNER, STAFF, SUPER_ADMIN, USER
from photoselect.db import get_db, new_id, utc_now

PENDING = 'PENDING'
ACCEPTED = 'ACCEPTED'
EXPIRED = 'EXPIRED'
REVOKED = 'REVOKED'

TOKEN_BYTES = 32


class InvitationError(Exception):
    """An invitation rule was broken. ``status`` is the HTTP status to report."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_expired(invitation, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    return parse_timestamp(invitation['expires_at']) < now


def check_invite_permission(inviter, role: str, workspace) -> None:
    """
    Raise InvitationError (403/400) unless ``inviter`` may invite ``role``.

    - nobody invites SUPER_ADMIN
    - only SUPER_ADMIN invites BUSINESS_OWNER
    - STAFF/USER need SUPER_ADMIN or BUSINESS_OWNER and a workspace
    - a BUSINESS_OWNER invites only into a workspace they own or belong to
    """
    if role == SUPER_ADMIN:
        raise InvitationError('Cannot invite Super Admin users', 403)
    if role == BUSINESS_OWNER and inviter['role'] != SUPER_ADMIN:
        raise InvitationError('Only Super Admin can invite Business Owners', 403)
    if role in (STAFF, USER):
        if inviter['role'] not in (SUPER_ADMIN, BUSINESS_OWNER):
            raise InvitationError('Only Super Admin or Business Owner can invite Staff/Users', 403)
        if workspace is None:
            raise InvitationError('Workspace is required for Staff and User invitations', 400)
    if workspace is not None and inviter['role'] == BUSINESS_OWNER:
        if workspace['owner_id'] != inviter['id'] and inviter['workspace_id'] != workspace['id']:
            raise InvitationError('You can only invite users to workspaces you own', 403)


def get_pending_invitation_for_email(email: str) -> Optional[sqlite3.Row]:
    return get_db().execute(
        '''SELECT * FROM invitations
           WHERE email = ? AND status = ? AND expires_at > ?
           ORDER BY created_at DESC LIMIT 1''',
        (email, PENDING, utc_now()),
    ).fetchone()


def create_invitation(email: str, role: str, workspace_id: Optional[str], invited_by_id: str, expires_in_hours: int) -> dict:
    db = get_db()
    invitation_id = new_id()
    expires_at = (datetime.now(timezone.utc) + timedelta(hours=expires_in_hours)).isoformat()
    db.execute(
        '''INSERT INTO invitations (id, token, email, role, workspace_id, invited_by_id,
                                    status, expires_at, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)''',
        (invitation_id, generate_token(), email, role, workspace_id, invited_by_id,
         PENDING, expires_at, utc_now()),
    )
    db.commit()
    return dict(get_invitation(invitation_id))


def get_invitation(invitation_id: str) -> Optional[sqlite3.Row]:
    return get_db().execute('SELECT * FROM invitations WHERE id = ?', (invitation_id,)).fetchone()


def get_invitation_by_token(token: str) -> Optional[sqlite3.Row]:
    return get_db().execute('SELECT * FROM invitations WHERE token = ?', (token,)).fetchone()


def invitation_details(invitation) -> dict:
    """Public view of an invitation: no token, with inviter and workspace names."""
    row = get_db().execute(
        '''SELECT i.id, i.email, i.role, i.status, i.expires_at, i.created_at, i.workspace_id,
                  u.name AS invited_by_name, u.email AS invited_by_email,
                  w.name AS workspace_name, w.slug AS workspace_slug
           FROM invitations i
           JOIN users u ON u.id = i.invited_by_id
           LEFT JOIN workspaces w ON w.id = i.workspace_id
           WHERE i.id = ?''',
        (invitation['id'],),
    ).fetchone()
    return dict(row)


def set_status(invitation_id: str, status: str, commit: bool = True) -> None:
    db = get_db()
    db.execute('UPDATE invitations SET status = ? WHERE id = ?', (status, invitation_id))
    if commit:
        db.commit()


def mark_accepted(invitation_id: str, user_id: str, commit: bool = True) -> None:
    db = get_db()
    db.execute(
        'UPDATE invitations SET status = ?, accepted_at = ?, accepted_by_id = ? WHERE id = ?',
        (ACCEPTED, utc_now(), user_id, invitation_id),
    )
    if commit:
        db.commit()


def expire_overdue_invitations(db: sqlite3.Connection) -> int:
    """Mark PENDING invitations past their expiry as EXPIRED. Returns the count."""
    cursor = db.execute(
        'UPDATE invitations SET status = ? WHERE status = ? AND expires_at < ?',
        (EXPIRED, PENDING, utc_now()),
    )
    db.commit()
    return cursor.rowcount
