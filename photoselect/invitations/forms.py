"""
Invitation input validation.
"""

import re

from wtforms import EmailField, SelectField, StringField
from wtforms.validators import DataRequired, Email, Length, Optional, Regexp

from photoselect.auth.forms import APIForm
from photoselect.auth.models import ROLES

# Tokens are hex, but any alphanumeric string of plausible length is
# looked up so malformed links get a 404 rather than a validation error.
TOKEN_PATTERN = re.compile(r'^[a-zA-Z0-9]{32,128}$')


class CreateInvitationForm(APIForm):
    email = EmailField(
        'Email address',
        validators=[
            DataRequired(message='Email address is required.'),
            Email(message='Please enter a valid email address.'),
            Length(max=254, message='Email address is too long.'),
        ],
    )
    role = SelectField(
        'Role',
        choices=[(role, role) for role in ROLES],
        validators=[DataRequired(message='Role is required.')],
    )
    workspace_id = StringField('Workspace', validators=[Optional(), Length(max=64)])


class AcceptInvitationForm(APIForm):
    token = StringField(
        'Token',
        validators=[
            DataRequired(message='Invitation token is required.'),
            Regexp(TOKEN_PATTERN, message='Invalid invitation token format.'),
        ],
    )
