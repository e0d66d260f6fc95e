from wtforms import StringField, TextAreaField
from wtforms.validators import Length, Optional, URL

from groupchat.utils.api_forms import ApiForm


class ProfileForm(ApiForm):
    """Profile update; fields left out are not changed"""
    display_name = StringField('display_name', validators=[Optional(), Length(max=100)])
    avatar_url = StringField('avatar_url', validators=[Optional(), URL(require_tld=False), Length(max=500)])
    bio = TextAreaField('bio', validators=[Optional(), Length(max=500)])
