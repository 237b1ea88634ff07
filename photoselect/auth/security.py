"""
Timing-safe credential verification.

bcrypt always runs, even when the email is unknown, so response time
does not reveal which accounts exist. Unknown emails are checked
against a dummy hash generated with the configured cost factor.
"""

from typing import Optional, Tuple

from photoselect.extensions import bcrypt

DUMMY_HASH: Optional[str] = None


def init_dummy_hash(app) -> None:
    """
    Initialize the dummy hash within an app context.

    Called during app factory initialization so bcrypt uses the
    configured cost factor.
    """
    global DUMMY_HASH
    DUMMY_HASH = bcrypt.generate_password_hash('dummy_password_for_timing').decode('utf-8')


def verify_credentials(email: str, password: str) -> Tuple[bool, Optional[dict]]:
    """
    Verify credentials in constant time regardless of whether the user exists.

    Args:
        email: Normalized email address.
        password: Plaintext password from the request.

    Returns:
        (valid, user_row). The caller MUST NOT reveal why verification failed.
    """
    from photoselect.auth.models import get_user_by_email

    user = get_user_by_email(email)

    if user is not None:
        return bcrypt.check_password_hash(user['password_hash'], password), user

    bcrypt.check_password_hash(DUMMY_HASH, password)
    return False, None


def check_password(user, password: str) -> bool:
    return bcrypt.check_password_hash(user['password_hash'], password)
