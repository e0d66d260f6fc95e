"""
Auth Blueprint
Registration, login and bearer token management
"""
from flask import Blueprint

auth_bp = Blueprint('auth', __name__)

from groupchat.blueprints.auth import routes  # noqa: E402,F401
