"""
Billing blueprint. Stripe checkout, Stripe webhooks and plan-limit lookups.
"""

from flask import Blueprint

billing_bp = Blueprint('billing', __name__, url_prefix='/api')

from photoselect.billing import routes  # noqa: E402, F401
