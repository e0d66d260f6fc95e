"""
Users Blueprint
Profile, presence and push token routes
"""
from flask import Blueprint

users_bp = Blueprint('users', __name__)

from groupchat.blueprints.users import routes  # noqa: E402,F401
