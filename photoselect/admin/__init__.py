"""
Admin blueprint. User management and operational status endpoints.
"""

from flask import Blueprint

admin_bp = Blueprint('admin', __name__, url_prefix='/api')

from photoselect.admin import routes  # noqa: E402, F401
