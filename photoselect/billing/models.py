"""
Subscriptions and plan limits.

A user without a subscription row is treated as STARTER. A limit of -1
means unlimited.
"""

import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Optional

from photoselect.db import get_db, new_id, utc_now

STARTER = 'STARTER'
PROFESSIONAL = 'PROFESSIONAL'
ENTERPRISE = 'ENTERPRISE'
PLAN_TYPES = (STARTER, PROFESSIONAL, ENTERPRISE)

UNLIMITED = -1

PLAN_LIMITS = {
    STARTER: {
        'max_workspaces': 1,
        'max_photos_per_workspace': 50,
        'max_users_per_workspace': 3,
        'max_storage_gb': 1,
    },
    PROFESSIONAL: {
        'max_workspaces': 5,
        'max_photos_per_workspace': 500,
        'max_users_per_workspace': 15,
        'max_storage_gb': 10,
    },
    ENTERPRISE: {
        'max_workspaces': UNLIMITED,
        'max_photos_per_workspace': UNLIMITED,
        'max_users_per_workspace': UNLIMITED,
        'max_storage_gb': 100,
    },
}

# Stripe subscription status -> our status.
STRIPE_STATUS_MAP = {
    'active': 'ACTIVE',
    'canceled': 'CANCELED',
    'past_due': 'PAST_DUE',
    'unpaid': 'UNPAID',
    'trialing': 'TRIALING',
    'incomplete': 'INCOMPLETE',
    'incomplete_expired': 'INCOMPLETE_EXPIRED',
}

# Development subscriptions run for 30 days.
DEVELOPMENT_PERIOD = timedelta(days=30)


def map_stripe_status(status: str) -> str:
    return STRIPE_STATUS_MAP.get(status, 'INCOMPLETE')


def timestamp_to_iso(value) -> Optional[str]:
    """Stripe unix timestamp -> ISO string (None passes through)."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).isoformat()


def get_subscription(user_id: str) -> Optional[sqlite3.Row]:
    return get_db().execute('SELECT * FROM subscriptions WHERE user_id = ?', (user_id,)).fetchone()


def get_subscription_by_customer(stripe_customer_id: str) -> Optional[sqlite3.Row]:
    return get_db().execute(
        'SELECT * FROM subscriptions WHERE stripe_customer_id = ?',
        (stripe_customer_id,),
    ).fetchone()


def get_plan_limits(user_id: str) -> dict:
    subscription = get_subscription(user_id)
    if subscription is None:
        return PLAN_LIMITS[STARTER]
    return PLAN_LIMITS[subscription['plan_type']]


def _limit_result(current: int, limit: int) -> dict:
    return {
        'allowed': limit == UNLIMITED or current < limit,
        'current': current,
        'limit': limit,
    }


def check_workspace_limit(user_id: str) -> dict:
    limits = get_plan_limits(user_id)
    current = get_db().execute(
        'SELECT COUNT(*) FROM workspaces WHERE owner_id = ?',
        (user_id,),
    ).fetchone()[0]
    return _limit_result(current, limits['max_workspaces'])


def check_photo_limit(workspace_id: str, user_id: str) -> dict:
    limits = get_plan_limits(user_id)
    current = get_db().execute(
        'SELECT COUNT(*) FROM photos WHERE workspace_id = ?',
        (workspace_id,),
    ).fetchone()[0]
    return _limit_result(current, limits['max_photos_per_workspace'])


def check_user_limit(workspace_id: str, user_id: str) -> dict:
    limits = get_plan_limits(user_id)
    current = get_db().execute(
        'SELECT COUNT(*) FROM users WHERE workspace_id = ?',
        (workspace_id,),
    ).fetchone()[0]
    return _limit_result(current, limits['max_users_per_workspace'])


def upsert_subscription(user_id: str, **fields) -> dict:
    """
    Create or update the user's single subscription row.

    ``fields`` are column names of the subscriptions table.
    """
    db = get_db()
    now = utc_now()
    existing = get_subscription(user_id)

    if existing is None:
        values = {
            'id': new_id(),
            'user_id': user_id,
            'plan_type': STARTER,
            'status': 'ACTIVE',
            'created_at': now,
            'updated_at': now,
        }
        values.update(fields)
        columns = ', '.join(values)
        placeholders = ', '.join('?' for _ in values)
        db.execute(
            f'INSERT INTO subscriptions ({columns}) VALUES ({placeholders})',
            tuple(values.values()),
        )
    elif fields:
        fields['updated_at'] = now
        assignments = ', '.join(f'{column} = ?' for column in fields)
        db.execute(
            f'UPDATE subscriptions SET {assignments} WHERE user_id = ?',
            (*fields.values(), user_id),
        )

    db.commit()
    return dict(get_subscription(user_id))


def create_development_subscription(user_id: str, plan_type: str, price_id: Optional[str]) -> dict:
    """Activate a plan locally without Stripe (development mode)."""
    start = datetime.now(timezone.utc)
    stamp = int(start.timestamp())
    return upsert_subscription(
        user_id,
        plan_type=plan_type,
        status='ACTIVE',
        current_period_start=start.isoformat(),
        current_period_end=(start + DEVELOPMENT_PERIOD).isoformat(),
        is_development_mode=1,
        stripe_subscription_id=f'sub_dev_{user_id}_{stamp}',
        stripe_customer_id=f'cus_dev_{user_id}',
        stripe_price_id=price_id,
        cancel_at_period_end=0,
    )


def subscription_to_dict(row) -> Optional[dict]:
    if row is None:
        return None
    subscription = dict(row)
    subscription['cancel_at_period_end'] = bool(subscription['cancel_at_period_end'])
    subscription['is_development_mode'] = bool(subscription['is_development_mode'])
    subscription['limits'] = PLAN_LIMITS[subscription['plan_type']]
    return subscription


def update_subscription_by_stripe_id(stripe_subscription_id: str, **fields) -> int:
    """Update every row for a Stripe subscription. Returns the row count."""
    return _update_where('stripe_subscription_id', stripe_subscription_id, fields)


def update_subscriptions_by_customer(stripe_customer_id: str, **fields) -> int:
    return _update_where('stripe_customer_id', stripe_customer_id, fields)


def _update_where(column: str, value: str, fields: dict) -> int:
    db = get_db()
    fields['updated_at'] = utc_now()
    assignments = ', '.join(f'{name} = ?' for name in fields)
    cursor = db.execute(
        f'UPDATE subscriptions SET {assignments} WHERE {column} = ?',
        (*fields.values(), value),
    )
    db.commit()
    return cursor.rowcount
