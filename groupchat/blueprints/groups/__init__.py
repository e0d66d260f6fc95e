"""
Groups Blueprint
Group creation, discovery and membership
"""
from flask import Blueprint

groups_bp = Blueprint('groups', __name__)

from groupchat.blueprints.groups import routes  # noqa: E402,F401
