from wtforms import EmailField, SelectField, StringField
from wtforms.validators import DataRequired, Email, Length, Optional

from photoselect.auth.forms import APIForm, RegisterForm
from photoselect.auth.models import ROLES

_ROLE_CHOICES = [(role, role) for role in ROLES]


class AdminCreateUserForm(RegisterForm):
    role = SelectField('Role', choices=_ROLE_CHOICES, validators=[DataRequired(message='Role is required.')])
    workspace_id = StringField('Workspace', validators=[Optional(), Length(max=64)])


class ChangeRoleForm(APIForm):
    role = SelectField('Role', choices=_ROLE_CHOICES, validators=[DataRequired(message='Role is required.')])
    workspace_id = StringField('Workspace', validators=[Optional(), Length(max=64)])


class TestEmailForm(APIForm):
    email = EmailField(
        'Email address',
        validators=[
            DataRequired(message='Email address is required.'),
            Email(message='Please enter a valid email address.'),
            Length(max=254, message='Email address is too long.'),
        ],
    )
