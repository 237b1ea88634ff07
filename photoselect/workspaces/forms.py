"""
Workspace input validation.
"""

from wtforms import SelectField, StringField
from wtforms.validators import DataRequired, Length, Optional, Regexp

from photoselect.auth.forms import APIForm
from photoselect.workspaces.models import ACTIVE, INACTIVE, MAX_SLUG_LENGTH, SLUG_PATTERN


class CreateWorkspaceForm(APIForm):
    name = StringField(
        'Name',
        validators=[
            DataRequired(message='Name is required.'),
            Length(max=100, message='Name too long.'),
        ],
    )
    # Derived from the name when omitted.
    slug = StringField(
        'Slug',
        validators=[
            Optional(),
            Length(max=MAX_SLUG_LENGTH, message='Slug too long.'),
            Regexp(SLUG_PATTERN, message='Invalid slug format.'),
        ],
    )
    description = StringField(
        'Description',
        validators=[Optional(), Length(max=500, message='Description too long.')],
    )


class UpdateWorkspaceForm(APIForm):
    name = StringField(
        'Name',
        validators=[
            DataRequired(message='Name is required.'),
            Length(max=100, message='Name too long.'),
        ],
    )
    description = StringField(
        'Description',
        validators=[Optional(), Length(max=500, message='Description too long.')],
    )


class WorkspaceStatusForm(APIForm):
    # SUSPENDED is set by billing, not through this endpoint.
    status = SelectField(
        'Status',
        choices=[(ACTIVE, ACTIVE), (INACTIVE, INACTIVE)],
        validators=[DataRequired(message='Status is required.')],
    )
