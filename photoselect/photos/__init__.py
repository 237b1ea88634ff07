"""
Photos blueprint. Upload, selection and delivery of workspace photos.
"""

from flask import Blueprint

photos_bp = Blueprint('photos', __name__, url_prefix='/api/photos')

from photoselect.photos import routes  # noqa: E402, F401
