from wtforms import StringField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional

from groupchat.utils.api_forms import ApiForm
from groupchat.utils.input_validators import MAX_DESCRIPTION_LENGTH, MAX_GROUP_NAME_LENGTH


class CreateGroupForm(ApiForm):
    """New group"""
    name = StringField('name', validators=[DataRequired(), Length(max=MAX_GROUP_NAME_LENGTH)])
    description = TextAreaField('description', validators=[Optional(), Length(max=MAX_DESCRIPTION_LENGTH)])
