"""
WTForms input validation for the auth endpoints.

Forms bind to JSON bodies automatically (FlaskForm reads
``request.get_json()`` on submit methods). CSRF is handled by our own
token service, so ``meta.csrf`` is off.

Input constraints:
- Email: required, valid format, max 254 chars (RFC 5321)
- Password: max 128 chars (bounds bcrypt work on huge inputs)
"""

from flask_wtf import FlaskForm
from wtforms import EmailField, PasswordField, StringField
from wtforms.validators import DataRequired, Email, Length


class APIForm(FlaskForm):
    """Base form for JSON APIs."""

    class Meta:
        csrf = False


class LoginForm(APIForm):
    email = EmailField(
        'Email address',
        validators=[
            DataRequired(message='Email address is required.'),
            Email(message='Please enter a valid email address.'),
            Length(max=254, message='Email address is too long.'),
        ],
    )

    password = PasswordField(
        'Password',
        validators=[
            DataRequired(message='Password is required.'),
            Length(max=128, message='Password is too long.'),
        ],
    )


class RegisterForm(APIForm):
    name = StringField(
        'Name',
        validators=[
            DataRequired(message='Name is required.'),
            Length(max=100, message='Name is too long.'),
        ],
    )

    email = EmailField(
        'Email address',
        validators=[
            DataRequired(message='Email address is required.'),
            Email(message='Please enter a valid email address.'),
            Length(max=254, message='Email address is too long.'),
        ],
    )

    password = PasswordField(
        'Password',
        validators=[
            DataRequired(message='Password is required.'),
            # NIST SP 800-63B minimum for user-chosen secrets.
            Length(min=8, max=128, message='Password must be 8 to 128 characters.'),
        ],
    )


class ReauthenticateForm(APIForm):
    password = PasswordField(
        'Password',
        validators=[
            DataRequired(message='Password is required.'),
            Length(max=128, message='Password is too long.'),
        ],
    )
