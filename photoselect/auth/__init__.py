"""
Authentication blueprint. Handles login, logout, registration and CSRF tokens.
"""

from flask import Blueprint

auth_bp = Blueprint('auth', __name__, url_prefix='/api')

# Import routes to register them with the blueprint.
# This import must be at the bottom to avoid circular imports.
from photoselect.auth import routes  # noqa: E402, F401
