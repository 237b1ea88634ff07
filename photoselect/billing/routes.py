"""
Billing routes: checkout, Stripe webhooks, subscription and plan limits.
"""

import json
import logging
from datetime import datetime, timedelta, timezone

from flask import current_app, g, jsonify, request

from photoselect.auth.decorators import login_required
from photoselect.auth.models import BUSINESS_OWNER, MANAGER_ROLES, get_user_by_id, update_user_role
from photoselect.billing import billing_bp
from photoselect.billing.forms import CheckoutForm
from photoselect.billing.models import (
    PLAN_LIMITS,
    STARTER,
    check_photo_limit,
    check_user_limit,
    check_workspace_limit,
    create_development_subscription,
    get_subscription,
    get_subscription_by_customer,
    map_stripe_status,
    subscription_to_dict,
    timestamp_to_iso,
    update_subscription_by_stripe_id,
    update_subscriptions_by_customer,
    upsert_subscription,
)
from photoselect.billing.stripe import (
    SignatureVerificationError,
    StripeClient,
    StripeError,
    verify_webhook_signature,
)
from photoselect.errors import authorization_error, form_errors, not_found, server_error, validation_error
from photoselect.security.audit import log_webhook_signature_invalid
from photoselect.security.csrf import csrf_protect
from photoselect.security.rate_limit import rate_limit
from photoselect.security.request_limits import request_limits
from photoselect.workspaces.models import can_access_workspace

logger = logging.getLogger(__name__)

# A free plan runs for a year before it needs renewing.
STARTER_PERIOD = timedelta(days=365)


class WebhookUserNotFound(Exception):
    """The event refers to a user we do not have. Retrying will not help."""


def _development_mode() -> bool:
    return bool(current_app.config['STRIPE_DEVELOPMENT_MODE'] or not current_app.config['STRIPE_SECRET_KEY'])


def _plan_for_price(price_id):
    for plan_type, configured in current_app.config['STRIPE_PRICE_IDS'].items():
        if configured == price_id:
            return plan_type
    return None


def _promote_to_owner(user) -> None:
    """Paid plans make a regular member a business owner. Admins keep their role."""
    if user['role'] not in MANAGER_ROLES:
        update_user_role(user['id'], BUSINESS_OWNER, user['workspace_id'])


@billing_bp.route('/stripe/create-checkout-session', methods=['POST'])
@rate_limit('payment')
@request_limits('payment')
@login_required
@csrf_protect
def create_checkout_session():
    form = CheckoutForm()
    if not form.validate_on_submit():
        raise validation_error('Invalid plan type', details=form_errors(form))

    user = g.user
    plan_type = form.plan_type.data.upper()

    if plan_type == STARTER:
        start = datetime.now(timezone.utc)
        subscription = upsert_subscription(
            user['id'],
            plan_type=STARTER,
            status='ACTIVE',
            current_period_start=start.isoformat(),
            current_period_end=(start + STARTER_PERIOD).isoformat(),
            is_development_mode=int(_development_mode()),
            stripe_subscription_id=None,
            stripe_customer_id=None,
            stripe_price_id=None,
            cancel_at_period_end=0,
        )
        return jsonify({
            'success': True,
            'message': 'Starter plan activated',
            'redirect_url': '/dashboard',
            'subscription': subscription_to_dict(subscription),
        })

    price_id = current_app.config['STRIPE_PRICE_IDS'].get(plan_type)

    if _development_mode():
        subscription = create_development_subscription(user['id'], plan_type, price_id)
        _promote_to_owner(user)
        logger.info('Development subscription %s activated for user %s', plan_type, user['id'])
        return jsonify({
            'success': True,
            'message': f'{plan_type.lower()} plan activated (development mode)',
            'redirect_url': '/dashboard',
            'subscription': subscription_to_dict(subscription),
        })

    base_url = current_app.config['APP_BASE_URL'].rstrip('/')
    try:
        session = StripeClient.from_config(current_app.config).create_checkout_session(
            price_id=price_id,
            customer_email=user['email'],
            success_url=f'{base_url}/dashboard?session_id={{CHECKOUT_SESSION_ID}}',
            cancel_url=f'{base_url}/pricing',
            metadata={'user_id': user['id'], 'plan_type': plan_type},
        )
    except StripeError:
        raise server_error('Failed to create checkout session') from None

    return jsonify({'success': True, 'checkout_url': session.get('url')})


@billing_bp.route('/stripe/create-portal-session', methods=['POST'])
@rate_limit('payment')
@request_limits('payment')
@login_required
@csrf_protect
def create_portal_session():
    """Open Stripe's customer portal for the caller's subscription."""
    row = get_subscription(g.user['id'])
    if row is None:
        raise not_found('Subscription')

    if current_app.config['STRIPE_DEVELOPMENT_MODE'] or row['is_development_mode']:
        return jsonify({
            'success': True,
            'message': 'Development mode - no customer portal available',
            'redirect_url': '/dashboard/billing',
        })

    if not row['stripe_customer_id']:
        raise validation_error('No Stripe customer ID found')

    base_url = current_app.config['APP_BASE_URL'].rstrip('/')
    try:
        portal = StripeClient.from_config(current_app.config).create_portal_session(
            customer=row['stripe_customer_id'],
            return_url=f'{base_url}/dashboard/billing',
        )
    except StripeError:
        raise server_error('Failed to create customer portal session') from None

    return jsonify({'success': True, 'portal_url': portal.get('url')})


# --- Webhooks ---

def _subscription_fields(subscription: dict) -> dict:
    return {
        'status': map_stripe_status(subscription.get('status')),
        'current_period_start': timestamp_to_iso(subscription.get('current_period_start')),
        'current_period_end': timestamp_to_iso(subscription.get('current_period_end')),
        'cancel_at_period_end': int(bool(subscription.get('cancel_at_period_end'))),
    }


def _price_id(subscription: dict):
    items = (subscription.get('items') or {}).get('data') or []
    if not items:
        return None
    return (items[0].get('price') or {}).get('id')


def _sync_subscription(subscription: dict) -> None:
    fields = _subscription_fields(subscription)
    fields['plan_type'] = _plan_for_price(_price_id(subscription)) or STARTER
    update_subscription_by_stripe_id(subscription['id'], **fields)


def _handle_checkout_completed(session: dict) -> None:
    metadata = session.get('metadata') or {}
    user_id = metadata.get('user_id')
    plan_type = (metadata.get('plan_type') or '').upper()
    if not user_id or plan_type not in PLAN_LIMITS:
        logger.error('Checkout session %s is missing metadata', session.get('id'))
        return

    user = get_user_by_id(user_id)
    if user is None:
        raise WebhookUserNotFound(f'User not found: {user_id}')

    subscription_id = session.get('subscription')
    if not isinstance(subscription_id, str):
        return

    subscription = StripeClient.from_config(current_app.config).retrieve_subscription(subscription_id)
    upsert_subscription(
        user_id,
        plan_type=plan_type,
        stripe_subscription_id=subscription['id'],
        stripe_customer_id=subscription.get('customer'),
        stripe_price_id=_price_id(subscription),
        is_development_mode=0,
        **_subscription_fields(subscription),
    )
    if plan_type != STARTER:
        _promote_to_owner(user)
    logger.info('Subscription %s recorded for user %s', plan_type, user_id)


def _handle_subscription_created(subscription: dict) -> None:
    if get_subscription_by_customer(subscription.get('customer')) is not None:
        _sync_subscription(subscription)


def _handle_subscription_updated(subscription: dict) -> None:
    _sync_subscription(subscription)


def _handle_subscription_deleted(subscription: dict) -> None:
    update_subscription_by_stripe_id(subscription['id'], status='CANCELED', cancel_at_period_end=1)


def _handle_payment_succeeded(invoice: dict) -> None:
    subscription_id = invoice.get('subscription')
    if subscription_id:
        client = StripeClient.from_config(current_app.config)
        _sync_subscription(client.retrieve_subscription(subscription_id))


def _handle_payment_failed(invoice: dict) -> None:
    update_subscriptions_by_customer(invoice.get('customer'), status='PAST_DUE')


WEBHOOK_HANDLERS = {
    'checkout.session.completed': _handle_checkout_completed,
    'customer.subscription.created': _handle_subscription_created,
    'customer.subscription.updated': _handle_subscription_updated,
    'customer.subscription.deleted': _handle_subscription_deleted,
    'invoice.payment_succeeded': _handle_payment_succeeded,
    'invoice.payment_failed': _handle_payment_failed,
}


@billing_bp.route('/stripe/webhooks', methods=['POST'])
@request_limits('webhook')
def stripe_webhook():
    """
    Receive a signed Stripe event.

    No session or CSRF token: the signature is the authentication.
    Processing errors return 500 so Stripe retries; an unknown user
    returns 200 since a retry cannot succeed.
    """
    payload = request.get_data()
    signature = request.headers.get('Stripe-Signature')
    if not signature:
        log_webhook_signature_invalid('missing_header')
        raise validation_error('No signature provided')

    secret = current_app.config['STRIPE_WEBHOOK_SECRET']
    if not secret:
        logger.error('STRIPE_WEBHOOK_SECRET is not configured; rejecting webhook')
        raise server_error('Webhook secret not configured')

    try:
        verify_webhook_signature(
            payload,
            signature,
            secret,
            tolerance=current_app.config['STRIPE_WEBHOOK_TOLERANCE'],
        )
    except SignatureVerificationError as e:
        log_webhook_signature_invalid(str(e))
        raise validation_error('Invalid signature') from None

    try:
        event = json.loads(payload)
    except ValueError:
        raise validation_error('Invalid webhook payload') from None

    event_type = event.get('type')
    event_id = event.get('id')
    handler = WEBHOOK_HANDLERS.get(event_type)
    if handler is None:
        logger.info('Ignoring unhandled webhook event %s', event_type)
        return jsonify({'received': True, 'event_id': event_id, 'event_type': event_type})

    obj = (event.get('data') or {}).get('object') or {}
    try:
        handler(obj)
    except WebhookUserNotFound as e:
        logger.warning('Webhook %s (%s) skipped: %s', event_type, event_id, e)
        return jsonify({
            'received': True,
            'event_id': event_id,
            'event_type': event_type,
            'should_retry': False,
        })
    except Exception:
        logger.exception('Error processing webhook %s (%s)', event_type, event_id)
        raise server_error('Webhook processing failed') from None

    logger.info('Processed webhook %s (%s)', event_type, event_id)
    return jsonify({'received': True, 'event_id': event_id, 'event_type': event_type})


# --- Subscription and limits ---

def _required_workspace_id() -> str:
    """The ``workspace_id`` query argument, which the caller must belong to."""
    workspace_id = request.args.get('workspace_id', '').strip()
    if not workspace_id:
        raise validation_error('workspace_id is required')
    if not can_access_workspace(g.user, workspace_id):
        raise authorization_error('Access denied to this workspace')
    return workspace_id


@billing_bp.route('/user/subscription')
@rate_limit('general')
@login_required
def subscription():
    row = get_subscription(g.user['id'])
    plan_type = row['plan_type'] if row is not None else STARTER
    return jsonify({
        'subscription': subscription_to_dict(row),
        'plan_type': plan_type,
        'limits': PLAN_LIMITS[plan_type],
    })


@billing_bp.route('/user/photo-limit')
@rate_limit('general')
@login_required
def photo_limit():
    return jsonify(check_photo_limit(_required_workspace_id(), g.user['id']))


@billing_bp.route('/user/workspace-limit')
@rate_limit('general')
@login_required
def workspace_limit():
    return jsonify(check_workspace_limit(g.user['id']))


@billing_bp.route('/user/user-limit')
@rate_limit('general')
@login_required
def user_limit():
    return jsonify(check_user_limit(_required_workspace_id(), g.user['id']))
