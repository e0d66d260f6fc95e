"""
Base form for the JSON API
"""
from flask_wtf import FlaskForm

from groupchat.errors import ValidationError


class ApiForm(FlaskForm):
    """
    FlaskForm fed from the JSON request body.

    The API authenticates with bearer tokens rather than cookies, so CSRF
    tokens are not used.
    """

    class Meta:
        csrf = False

    def validate_or_raise(self):
        """Validate the submitted data, raising ValidationError with the first problem"""
        if self.validate_on_submit():
            return self

        for field_name, errors in self.errors.items():
            if errors:
                label = getattr(self, field_name).label.text if hasattr(self, field_name) else field_name
                raise ValidationError(f"{label}: {errors[0]}")
        raise ValidationError("Invalid request")
