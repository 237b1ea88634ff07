"""
Production entry point for gunicorn.

Usage:
    gunicorn -c gunicorn.conf.py wsgi:app

Settings are checked before the app is built: missing required ones
stop the process, missing optional integrations are reported and the
matching feature runs in its fallback mode.
"""

import sys

from photoselect.config import ProductionConfig

# (setting, consequence when unset)
OPTIONAL_SETTINGS = (
    ('STRIPE_SECRET_KEY', 'paid plans activate in development mode'),
    ('STRIPE_WEBHOOK_SECRET', 'Stripe webhooks will be rejected'),
    ('MAIL_SERVER', 'invitation emails are logged, not sent'),
)


def check_settings(config) -> list:
    """Return fatal problems; print warnings for optional settings."""
    fatal = []
    if not config.SECRET_KEY:
        fatal.append(
            'SECRET_KEY is required. Generate one with: '
            'python -c "import secrets; print(secrets.token_hex(32))"'
        )
    if config.STORAGE_BACKEND == 's3' and not config.S3_BUCKET:
        fatal.append('STORAGE_BACKEND=s3 needs S3_BUCKET')

    for name, consequence in OPTIONAL_SETTINGS:
        if not getattr(config, name, None):
            print(f'WARNING: {name} is not set; {consequence}.', file=sys.stderr)
    return fatal


problems = check_settings(ProductionConfig)
if problems:
    for problem in problems:
        print(f'FATAL: {problem}', file=sys.stderr)
    sys.exit(1)

from photoselect import create_app  # noqa: E402

app = create_app(config_class=ProductionConfig)
