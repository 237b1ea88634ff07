"""
Invitations blueprint. Time-limited tokens that bind a new user to a role and workspace.
"""

from flask import Blueprint

invitations_bp = Blueprint('invitations', __name__, url_prefix='/api/invitations')

from photoselect.invitations import routes  # noqa: E402, F401
