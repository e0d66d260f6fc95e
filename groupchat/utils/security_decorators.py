"""
Security decorators for access control
"""
from functools import wraps
from flask import g
from flask_login import current_user

from groupchat.errors import AuthError, ForbiddenError
from groupchat.services import persistence


def require_group_member(f):
    """
    Decorator to ensure the current user is a member of the group in the URL.
    Loads the group into g.current_group.
    Must be used after @login_required and on routes with a group_id argument
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            raise AuthError("Authentication required")

        group = persistence.get_group(kwargs['group_id'])
        if not persistence.is_member(group.id, current_user.id):
            raise ForbiddenError("You are not a member of this group")

        g.current_group = group
        return f(*args, **kwargs)

    return decorated_function
