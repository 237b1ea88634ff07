from wtforms import StringField
from wtforms.validators import AnyOf, DataRequired

from photoselect.auth.forms import APIForm

CHECKOUT_PLANS = ('starter', 'professional', 'enterprise')


class CheckoutForm(APIForm):
    plan_type = StringField(
        'Plan',
        filters=[lambda value: value.strip().lower() if isinstance(value, str) else value],
        validators=[
            DataRequired(message='Plan type is required.'),
            AnyOf(CHECKOUT_PLANS, message='Invalid plan type.'),
        ],
    )
