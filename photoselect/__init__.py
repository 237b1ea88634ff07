"""
Flask application factory.

Creates and configures the Flask app with its security stores,
extensions, blueprints and Socket.IO handlers. Uses the factory
pattern for testability: each test builds an app from its own config
class and gets fresh in-memory stores.

Initialization order:
1. bcrypt, needed by init_dummy_hash and user creation
2. server-side sessions
3. Socket.IO, before its handlers are registered
4. per-app stores (CSRF, rate limits, session tracker, storage, email)
"""

import os

from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

from photoselect.config import DevelopmentConfig


def create_app(config_class=None, instance_path=None):
    """
    Create and configure the Flask application.

    Args:
        config_class: Configuration class to use. Defaults to DevelopmentConfig.
                      Tests pass TestConfig, RateLimitTestConfig, etc.
        instance_path: Directory for the database, sessions and local uploads.
                       Defaults to Flask's instance folder.

    Returns:
        Configured Flask application instance.
    """
    if config_class is None:
        config_class = DevelopmentConfig

    app = Flask(__name__, instance_path=instance_path)
    app.config.from_object(config_class)
    if hasattr(config_class, 'init_app'):
        config_class.init_app(app)

    # Instance folder holds the SQLite database, sessions and local uploads.
    os.makedirs(app.instance_path, exist_ok=True)
    session_dir = os.path.join(app.instance_path, 'flask_sessions')
    os.makedirs(session_dir, exist_ok=True)
    app.config['SESSION_FILE_DIR'] = session_dir

    proxy_count = app.config.get('PROXY_COUNT', 0)
    if proxy_count:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=proxy_count, x_proto=proxy_count)

    # --- Extensions ---
    from photoselect.extensions import bcrypt, sess, socketio

    bcrypt.init_app(app)
    sess.init_app(app)
    socketio.init_app(app, cors_allowed_origins=app.config['SOCKETIO_CORS_ORIGINS'])

    # --- Per-app security and service stores ---
    from photoselect.mailer import EmailConfig, EmailService
    from photoselect.security.csrf import CSRFTokenStore
    from photoselect.security.rate_limit import RateLimiter
    from photoselect.security.session_security import SessionSecurityTracker
    from photoselect.storage import StorageManager

    app.extensions['photoselect.csrf'] = CSRFTokenStore(ttl=app.config['CSRF_TOKEN_TTL'])
    app.extensions['photoselect.rate_limiter'] = RateLimiter(app.config['RATE_LIMITS'])
    app.extensions['photoselect.session_tracker'] = SessionSecurityTracker.from_config(app.config)
    app.extensions['photoselect.storage'] = StorageManager.from_app(app)
    app.extensions['photoselect.email'] = EmailService(
        EmailConfig.from_config(app.config),
        app.config['APP_BASE_URL'],
    )

    # --- Security Headers ---
    from photoselect.headers import init_security_headers
    init_security_headers(app)

    # --- Logging ---
    from photoselect.logging_config import setup_app_logging, setup_security_logging
    setup_security_logging(app)
    setup_app_logging(app)

    # --- Dummy Hash for Timing-Safe Verification ---
    from photoselect.auth.security import init_dummy_hash
    with app.app_context():
        init_dummy_hash(app)

    # --- Blueprints ---
    from photoselect.admin import admin_bp
    from photoselect.auth import auth_bp
    from photoselect.billing import billing_bp
    from photoselect.invitations import invitations_bp
    from photoselect.photos import photos_bp
    from photoselect.workspaces import workspaces_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(photos_bp)
    app.register_blueprint(workspaces_bp)
    app.register_blueprint(invitations_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(admin_bp)

    # --- Error Handlers ---
    from photoselect.errors import register_error_handlers
    register_error_handlers(app)

    # --- Realtime ---
    from photoselect.realtime import register_socketio_handlers
    register_socketio_handlers(socketio)

    # --- Database ---
    from photoselect.db import close_db, init_db

    app.teardown_appcontext(close_db)
    with app.app_context():
        init_db(app)

    # --- CLI ---
    from photoselect.invitations.commands import register_commands
    register_commands(app)

    return app
