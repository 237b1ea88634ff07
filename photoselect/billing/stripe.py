"""
Stripe REST client and webhook signature verification.

Stripe's API takes form-encoded bodies and HTTP basic auth with the
secret key as the username and an empty password. Nested parameters use
bracket notation: ``line_items[0][price]``.

Webhook signatures follow Stripe's v1 scheme:

    Stripe-Signature: t=<unix ts>,v1=<hex hmac>[,v1=...]

where the HMAC is SHA-256 over ``"{t}.{raw body}"`` keyed with the
endpoint secret.
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class StripeError(Exception):
    """Stripe is unreachable, misconfigured, or rejected the request."""


class SignatureVerificationError(Exception):
    """The Stripe-Signature header does not match the payload."""


def parse_signature_header(header: str) -> tuple:
    """Return (timestamp, [v1 signatures]) from a Stripe-Signature header."""
    timestamp = None
    signatures = []
    for item in header.split(','):
        key, _, value = item.strip().partition('=')
        if key == 't':
            timestamp = value
        elif key == 'v1':
            signatures.append(value)
    return timestamp, signatures


def compute_signature(payload: bytes, timestamp: str, secret: str) -> str:
    signed = timestamp.encode('utf-8') + b'.' + payload
    return hmac.new(secret.encode('utf-8'), signed, hashlib.sha256).hexdigest()


def verify_webhook_signature(
    payload: bytes,
    header: str,
    secret: str,
    tolerance: int = 300,
    now: Optional[float] = None,
) -> None:
    """
    Raise SignatureVerificationError unless ``header`` signs ``payload``.

    Timestamps further than ``tolerance`` seconds from ``now`` are
    rejected as replays. Signatures are compared in constant time.
    """
    timestamp, signatures = parse_signature_header(header)
    if not timestamp or not signatures:
        raise SignatureVerificationError('Malformed signature header')
    try:
        signed_at = int(timestamp)
    except ValueError:
        raise SignatureVerificationError('Malformed signature timestamp') from None

    now = time.time() if now is None else now
    if tolerance and abs(now - signed_at) > tolerance:
        raise SignatureVerificationError('Timestamp outside the tolerance zone')

    expected = compute_signature(payload, timestamp, secret)
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise SignatureVerificationError('No signatures found matching the expected signature')


class StripeClient:
    """Minimal Stripe API client: checkout and portal sessions, subscription lookup."""

    def __init__(self, secret_key: str, base_url: str = 'https://api.stripe.com', timeout: float = 30.0):
        if not secret_key:
            raise StripeError('STRIPE_SECRET_KEY is not configured')
        self.secret_key = secret_key
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    @classmethod
    def from_config(cls, config) -> 'StripeClient':
        return cls(config.get('STRIPE_SECRET_KEY'), config.get('STRIPE_API_BASE', 'https://api.stripe.com'))

    def _request(self, method: str, path: str, data: Optional[dict] = None) -> dict:
        url = f'{self.base_url}{path}'
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.request(method, url, data=data, auth=(self.secret_key, ''))
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error('Stripe %s %s failed with %s', method, path, e.response.status_code)
            raise StripeError(f'Stripe returned {e.response.status_code}') from e
        except httpx.HTTPError as e:
            logger.error('Stripe %s %s failed: %s', method, path, e)
            raise StripeError('Stripe is unreachable') from e

    def create_checkout_session(
        self,
        *,
        price_id: str,
        customer_email: str,
        success_url: str,
        cancel_url: str,
        metadata: dict,
    ) -> dict:
        data = {
            'mode': 'subscription',
            'customer_email': customer_email,
            'line_items[0][price]': price_id,
            'line_items[0][quantity]': '1',
            'success_url': success_url,
            'cancel_url': cancel_url,
        }
        for key, value in metadata.items():
            data[f'metadata[{key}]'] = str(value)

        session = self._request('POST', '/v1/checkout/sessions', data)
        logger.info('Stripe checkout session %s created', session.get('id'))
        return session

    def create_portal_session(self, *, customer: str, return_url: str) -> dict:
        session = self._request('POST', '/v1/billing_portal/sessions', {
            'customer': customer,
            'return_url': return_url,
        })
        logger.info('Stripe portal session %s created', session.get('id'))
        return session

    def retrieve_subscription(self, subscription_id: str) -> dict:
        return self._request('GET', f'/v1/subscriptions/{subscription_id}')
