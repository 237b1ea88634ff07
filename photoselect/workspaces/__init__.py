"""
Workspaces blueprint. The tenant boundary for users and photos.
"""

from flask import Blueprint

workspaces_bp = Blueprint('workspaces', __name__, url_prefix='/api')

from photoselect.workspaces import routes  # noqa: E402, F401
