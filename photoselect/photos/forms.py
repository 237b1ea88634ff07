"""
Photo input validation.

Uploads come in as multipart forms; the id lists for bulk delete and
download are JSON arrays and are checked by ``parse_photo_ids``.
"""

from flask_wtf.file import FileField, FileRequired
from wtforms import StringField
from wtforms.validators import DataRequired, Length

from photoselect.auth.forms import APIForm
from photoselect.errors import validation_error


class UploadPhotoForm(APIForm):
    file = FileField('Photo', validators=[FileRequired(message='No file provided.')])
    workspace_id = StringField(
        'Workspace',
        validators=[
            DataRequired(message='Workspace ID is required.'),
            Length(max=64),
        ],
    )


def _is_positive_int(value) -> bool:
    # bool is an int subclass; true/false are not photo ids.
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def parse_photo_ids(body, max_items: int, required: bool = True) -> list:
    """
    Validate ``body['photo_ids']``: a list of 1..max_items positive integers.

    Duplicates are dropped, order is kept. Returns [] when the field is
    absent and not required.
    """
    if not isinstance(body, dict):
        raise validation_error('Request body must be a JSON object')

    photo_ids = body.get('photo_ids')
    if photo_ids is None and not required:
        return []
    if not isinstance(photo_ids, list) or not photo_ids:
        raise validation_error('photo_ids must be a non-empty array')
    if len(photo_ids) > max_items:
        raise validation_error(f'Cannot process more than {max_items} photos at once')
    if not all(_is_positive_int(value) for value in photo_ids):
        raise validation_error('photo_ids must contain positive integers')

    return list(dict.fromkeys(photo_ids))
