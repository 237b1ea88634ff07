"""
SQLite connection management and schema.

Uses parameterized queries exclusively (? placeholders) to prevent
SQL injection. Per OWASP ASVS V5.3.4.

Connections live on Flask's g object for the duration of one request
(or one socket event) and are closed by teardown_appcontext. Foreign
keys are enforced per connection so that deleting a workspace or photo
cascades to its photos and selections.
"""

import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone

from flask import current_app, g

SCHEMA = '''
CREATE TABLE IF NOT EXISTS workspaces (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    slug        TEXT UNIQUE NOT NULL,
    description TEXT,
    status      TEXT NOT NULL DEFAULT 'ACTIVE'
                CHECK (status IN ('ACTIVE', 'INACTIVE', 'SUSPENDED')),
    owner_id    TEXT REFERENCES users(id) ON DELETE SET NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
    id            TEXT PRIMARY KEY,
    email         TEXT UNIQUE NOT NULL,
    name          TEXT NOT NULL,
    password_hash TEXT NOT NULL,
    role          TEXT NOT NULL DEFAULT 'USER'
                  CHECK (role IN ('SUPER_ADMIN', 'BUSINESS_OWNER', 'STAFF', 'USER')),
    workspace_id  TEXT REFERENCES workspaces(id) ON DELETE SET NULL,
    color         TEXT NOT NULL DEFAULT '#3B82F6',
    created_at    TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS photos (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    filename        TEXT UNIQUE NOT NULL,
    original_name   TEXT NOT NULL,
    url             TEXT NOT NULL,
    mime_type       TEXT NOT NULL,
    size            INTEGER NOT NULL,
    storage_type    TEXT NOT NULL DEFAULT 'local',
    workspace_id    TEXT NOT NULL REFERENCES workspaces(id) ON DELETE CASCADE,
    uploaded_by_id  TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    created_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS photo_selections (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    photo_id    INTEGER NOT NULL REFERENCES photos(id) ON DELETE CASCADE,
    user_id     TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    created_at  TEXT NOT NULL,
    UNIQUE (photo_id, user_id)
);

CREATE TABLE IF NOT EXISTS invitations (
    id              TEXT PRIMARY KEY,
    token           TEXT UNIQUE NOT NULL,
    email           TEXT NOT NULL,
    role            TEXT NOT NULL,
    workspace_id    TEXT REFERENCES workspaces(id) ON DELETE CASCADE,
    invited_by_id   TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    status          TEXT NOT NULL DEFAULT 'PENDING'
                    CHECK (status IN ('PENDING', 'ACCEPTED', 'EXPIRED', 'REVOKED')),
    expires_at      TEXT NOT NULL,
    accepted_at     TEXT,
    accepted_by_id  TEXT REFERENCES users(id) ON DELETE SET NULL,
    created_at      TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS subscriptions (
    id                      TEXT PRIMARY KEY,
    user_id                 TEXT UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    plan_type               TEXT NOT NULL DEFAULT 'STARTER'
                            CHECK (plan_type IN ('STARTER', 'PROFESSIONAL', 'ENTERPRISE')),
    status                  TEXT NOT NULL DEFAULT 'ACTIVE',
    stripe_customer_id      TEXT,
    stripe_subscription_id  TEXT UNIQUE,
    stripe_price_id         TEXT,
    current_period_start    TEXT,
    current_period_end      TEXT,
    cancel_at_period_end    INTEGER NOT NULL DEFAULT 0,
    is_development_mode     INTEGER NOT NULL DEFAULT 0,
    created_at              TEXT NOT NULL,
    updated_at              TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_users_workspace ON users(workspace_id);
CREATE INDEX IF NOT EXISTS idx_photos_workspace ON photos(workspace_id);
CREATE INDEX IF NOT EXISTS idx_selections_user ON photo_selections(user_id);
CREATE INDEX IF NOT EXISTS idx_invitations_email ON invitations(email, status);
'''


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string (the storage format for timestamps)."""
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


def database_path(app) -> str:
    return os.path.join(app.instance_path, app.config['DATABASE_NAME'])


def connect(path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row  # Enables dict-like access: row['email']
    conn.execute('PRAGMA foreign_keys = ON')
    return conn


def get_db() -> sqlite3.Connection:
    """
    Get a database connection for the current request.

    Connections are stored in Flask's g object and reused within
    a single request. Closed automatically via teardown_appcontext.
    """
    if 'db' not in g:
        g.db = connect(database_path(current_app))
        g.db.execute('PRAGMA journal_mode=WAL')
    return g.db


def close_db(exception=None) -> None:
    """Close the database connection at the end of the request."""
    db = g.pop('db', None)
    if db is not None:
        db.close()


@contextmanager
def transaction():
    """
    Run a block of statements atomically on the request connection.

    Commits on success and rolls back on any exception, which is re-raised.
    """
    db = get_db()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def init_db(app) -> None:
    """
    Create tables if they do not exist.

    Uses CREATE TABLE IF NOT EXISTS for idempotency. Safe to call
    on every app startup without data loss.
    """
    conn = connect(database_path(app))
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()

