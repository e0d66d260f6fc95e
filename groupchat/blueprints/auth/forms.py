from wtforms import StringField, PasswordField
from wtforms.validators import DataRequired, Email, Length, Optional, Regexp, ValidationError

from groupchat.utils.api_forms import ApiForm
from groupchat.utils.input_validators import validate_password_strength


class LoginForm(ApiForm):
    """Login form"""
    email = StringField('email', validators=[DataRequired(), Email()])
    password = PasswordField('password', validators=[DataRequired()])


class RegistrationForm(ApiForm):
    """User registration form"""
    username = StringField('username', validators=[
        DataRequired(),
        Length(min=3, max=50),
        Regexp(r'^[A-Za-z0-9_.-]+$', message='Only letters, numbers, dots, dashes and underscores')
    ])
    email = StringField('email', validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField('password', validators=[DataRequired()])
    display_name = StringField('display_name', validators=[Optional(), Length(max=100)])

    def validate_password(self, password):
        """Check password meets security requirements"""
        is_valid, error = validate_password_strength(password.data)
        if not is_valid:
            raise ValidationError(error)
