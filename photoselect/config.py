"""
Application configuration. All thresholds live here.

Every threshold carries a comment with the reason for its value.
Environment variables override the deployment-specific settings
(storage backend, SMTP, Stripe, secrets).
"""

import os
import secrets


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class BaseConfig:
    """Shared configuration for all environments."""

    # --- Flask Core ---
    # 256-bit random secret for session signing.
    # In production, load from environment variable.
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_hex(32)

    # Global ceiling on request bodies. Photo uploads are the largest
    # legitimate payload; per-endpoint limits in REQUEST_LIMITS are tighter.
    MAX_CONTENT_LENGTH = 50 * 1024 * 1024  # 50MB

    # --- Session Configuration (flask-session) ---
    # Server-side filesystem sessions. The cookie holds only an opaque ID.
    SESSION_TYPE = 'filesystem'
    SESSION_PERMANENT = True
    # Hard cap on session lifetime; idle expiry is enforced separately
    # by the session security tracker (SESSION_IDLE_TIMEOUT).
    PERMANENT_SESSION_LIFETIME = 24 * 60 * 60  # seconds
    SESSION_USE_SIGNER = True
    SESSION_KEY_PREFIX = 'session:'

    # --- Session Cookie Flags ---
    SESSION_COOKIE_HTTPONLY = True    # No JavaScript access
    SESSION_COOKIE_SAMESITE = 'Lax'  # Not sent on cross-site subrequests
    SESSION_COOKIE_NAME = 'photoselect_session'

    # --- bcrypt ---
    # 12 rounds is about 250ms per hash. OWASP minimum is 10.
    BCRYPT_LOG_ROUNDS = 12

    # --- CSRF Token Service ---
    # Our own session-keyed token store replaces flask-wtf's CSRFProtect,
    # so the WTForms layer only validates input.
    CSRF_ENABLED = True
    WTF_CSRF_ENABLED = False
    # One hour: long enough for a gallery session, short enough that
    # a leaked token is soon useless.
    CSRF_TOKEN_TTL = 3600  # seconds
    CSRF_HEADER_NAME = 'X-CSRF-Token'
    CSRF_FIELD_NAME = 'csrf_token'

    # --- Rate Limiting (limits) ---
    RATELIMIT_ENABLED = True
    # Named fixed-window configurations, parsed by limits.parse().
    RATE_LIMITS = {
        # Normal browsing and API reads.
        'general': '100 per 15 minutes',
        # Login/register: 5 tries per 15 minutes stops password spraying
        # without locking out a user who mistypes twice.
        'auth': '5 per 15 minutes',
        # A photographer uploading a full shoot in one sitting.
        'upload': '50 per hour',
        # Checkout creation is never legitimately repeated often.
        'payment': '10 per hour',
        'invitation': '20 per hour',
        # Destructive operations (deletes, invitation acceptance).
        'sensitive': '3 per hour',
        # Token fetches happen once per page load.
        'csrf': '50 per 15 minutes',
    }

    # --- Session Security Tracker ---
    # 30-minute idle timeout per OWASP ASVS V3.3.2.
    SESSION_IDLE_TIMEOUT = 30 * 60  # seconds
    # Absolute limit for activity records kept in memory.
    SESSION_MAX_AGE = 24 * 60 * 60  # seconds
    # Sensitive endpoints need a password entry within the last 10 minutes.
    REAUTH_WINDOW = 10 * 60  # seconds
    # Opportunistic cleanup of the tracker maps runs at most this often.
    SESSION_CLEANUP_INTERVAL = 5 * 60  # seconds
    # Path prefixes that require recent re-authentication.
    SENSITIVE_ENDPOINTS = (
        '/api/user/delete',
        '/api/admin/',
        '/api/stripe/create-checkout-session',
        '/api/invitations/create',
    )

    # --- Account Lockout ---
    # 5 consecutive failures stops brute force but tolerates a few typos.
    LOCKOUT_THRESHOLD = 5
    # 15 minutes of lockout makes online guessing impractical.
    LOCKOUT_DURATION = 15 * 60  # seconds
    # Show a remaining-attempts warning after this many failures.
    # Shown for every email, registered or not.
    LOCKOUT_WARNING_AFTER = 3

    # --- Request Limits ---
    # Per-endpoint body size and content-type rules.
    MAX_URL_LENGTH = 2048
    REQUEST_LIMITS = {
        'general': {
            'max_body_size': 1024 * 1024,  # 1MB
            'content_types': None,
        },
        'upload': {
            'max_body_size': 50 * 1024 * 1024,  # 50MB
            'content_types': ('multipart/form-data',),
        },
        'auth': {
            # Credentials are a few hundred bytes.
            'max_body_size': 4 * 1024,  # 4KB
            'content_types': ('application/json', 'application/x-www-form-urlencoded'),
        },
        'payment': {
            'max_body_size': 8 * 1024,  # 8KB
            'content_types': ('application/json',),
        },
        'webhook': {
            'max_body_size': 1024 * 1024,  # 1MB
            'content_types': ('application/json',),
        },
    }

    # --- Photos ---
    # 10MB per image covers full-resolution JPEG exports.
    MAX_PHOTO_SIZE = 10 * 1024 * 1024
    ALLOWED_IMAGE_TYPES = (
        'image/jpeg',
        'image/png',
        'image/gif',
        'image/webp',
    )
    ALLOWED_IMAGE_EXTENSIONS = ('jpg', 'jpeg', 'png', 'gif', 'webp')
    PHOTOS_PER_PAGE = 20
    MAX_PHOTOS_PER_PAGE = 100
    # Upper bound on a single bulk delete request.
    MAX_BULK_DELETE = 50

    # --- Invitations ---
    INVITATION_EXPIRY_HOURS = 72

    # --- Storage ---
    # 'local' or 's3'. A failed S3 upload falls back to local storage.
    STORAGE_BACKEND = os.environ.get('STORAGE_BACKEND', 'local')
    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER')  # Defaults to <instance>/uploads
    S3_BUCKET = os.environ.get('S3_BUCKET')
    S3_REGION = os.environ.get('S3_REGION', 'us-east-1')
    S3_ENDPOINT_URL = os.environ.get('S3_ENDPOINT_URL')
    S3_ACCESS_KEY_ID = os.environ.get('S3_ACCESS_KEY_ID')
    S3_SECRET_ACCESS_KEY = os.environ.get('S3_SECRET_ACCESS_KEY')
    S3_PRESIGNED_URL_EXPIRY = 3600  # seconds

    # --- Email (SMTP) ---
    # No MAIL_SERVER means development mode: emails are logged, not sent.
    MAIL_SERVER = os.environ.get('MAIL_SERVER')
    MAIL_PORT = int(os.environ.get('MAIL_PORT', '587'))
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_USE_TLS = _env_bool('MAIL_USE_TLS', True)
    MAIL_FROM_ADDRESS = os.environ.get('MAIL_FROM_ADDRESS', 'noreply@photoselect.app')
    MAIL_FROM_NAME = os.environ.get('MAIL_FROM_NAME', 'PhotoSelect')
    APP_BASE_URL = os.environ.get('APP_BASE_URL', 'http://localhost:5000')

    # --- Stripe ---
    # No secret key means development mode: subscriptions are activated
    # locally without contacting Stripe.
    STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY')
    STRIPE_WEBHOOK_SECRET = os.environ.get('STRIPE_WEBHOOK_SECRET')
    STRIPE_DEVELOPMENT_MODE = _env_bool('STRIPE_DEVELOPMENT_MODE', False)
    STRIPE_API_BASE = 'https://api.stripe.com'
    # Signed webhook timestamps older than 5 minutes are replays.
    STRIPE_WEBHOOK_TOLERANCE = 300  # seconds
    STRIPE_PRICE_IDS = {
        'STARTER': os.environ.get('STRIPE_STARTER_PRICE_ID', 'price_starter_dev'),
        'PROFESSIONAL': os.environ.get('STRIPE_PROFESSIONAL_PRICE_ID', 'price_professional_dev'),
        'ENTERPRISE': os.environ.get('STRIPE_ENTERPRISE_PRICE_ID', 'price_enterprise_dev'),
    }

    # --- Realtime (Flask-SocketIO) ---
    SOCKETIO_CORS_ORIGINS = os.environ.get('SOCKETIO_CORS_ORIGINS', APP_BASE_URL)

    # --- Reverse proxies ---
    # Trusted proxy hops in front of the app. When set, ProxyFix resolves
    # the client address and forwarded headers are not read directly.
    PROXY_COUNT = int(os.environ.get('PROXY_COUNT', '0'))

    # --- Logging ---
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # --- Database ---
    # SQLite database in Flask's instance folder.
    DATABASE_NAME = os.environ.get('DATABASE_NAME', 'photoselect.db')


class ProductionConfig(BaseConfig):
    """Production environment. All security controls enforced."""

    DEBUG = False
    TESTING = False

    # SECRET_KEY MUST come from the environment in production.
    # A random fallback would invalidate every session on restart.
    SECRET_KEY = os.environ.get('SECRET_KEY')

    # --- Cookie Security (requires HTTPS) ---
    SESSION_COOKIE_SECURE = True

    # Number of reverse proxies whose X-Forwarded-For hop is trusted.
    PROXY_COUNT = int(os.environ.get('PROXY_COUNT', '1'))

    @classmethod
    def init_app(cls, app):
        """Validate required configuration at startup."""
        if not cls.SECRET_KEY:
            raise RuntimeError(
                'SECRET_KEY environment variable is required in production. '
                'Generate one with: python -c "import secrets; print(secrets.token_hex(32))"'
            )


class DevelopmentConfig(BaseConfig):
    """Development environment. Relaxed cookie settings for HTTP."""

    DEBUG = True
    SESSION_COOKIE_SECURE = False
    LOG_LEVEL = 'DEBUG'


class TestConfig(BaseConfig):
    """Test environment. Fast bcrypt, CSRF and rate limiting off by default."""

    TESTING = True
    SESSION_COOKIE_SECURE = False
    # 4 rounds for fast test execution.
    BCRYPT_LOG_ROUNDS = 4
    # Specific test modules enable these via dedicated config classes.
    RATELIMIT_ENABLED = False
    CSRF_ENABLED = False
    DATABASE_NAME = 'test.db'
    STORAGE_BACKEND = 'local'
    UPLOAD_FOLDER = None  # <instance>/uploads
    MAIL_SERVER = None
    STRIPE_SECRET_KEY = None
    STRIPE_DEVELOPMENT_MODE = False
    STRIPE_WEBHOOK_SECRET = 'whsec_test_secret'
    SOCKETIO_CORS_ORIGINS = '*'
    PROXY_COUNT = 0


class RateLimitTestConfig(TestConfig):
    """Test config with rate limiting enabled."""

    RATELIMIT_ENABLED = True


class CSRFTestConfig(TestConfig):
    """Test config with CSRF protection enabled."""

    CSRF_ENABLED = True
