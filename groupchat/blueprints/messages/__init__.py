"""
Messages Blueprint
Sending, history, search, reactions, read receipts
"""
from flask import Blueprint

messages_bp = Blueprint('messages', __name__)

from groupchat.blueprints.messages import routes  # noqa: E402,F401
