from flask import request, jsonify, current_app
from flask_login import login_required, current_user

from groupchat.blueprints.users import users_bp
from groupchat.blueprints.users.forms import ProfileForm
from groupchat.errors import ValidationError
from groupchat.services import get_services, persistence
from groupchat.utils.security_decorators import require_group_member


@users_bp.route('/profile', methods=['GET'])
@login_required
def get_profile():
    return jsonify(current_user.to_dict(include_private=True))


@users_bp.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    """Update display name, avatar URL or bio"""
    form = ProfileForm().validate_or_raise()
    data = request.get_json(silent=True) or {}

    fields = {name: getattr(form, name).data for name in ('display_name', 'avatar_url', 'bio') if name in data}
    user = persistence.update_profile(current_user.id, **fields)
    return jsonify(user.to_dict(include_private=True))


@users_bp.route('/profile', methods=['DELETE'])
@login_required
def deactivate_account():
    """Soft-disable the account; all of its tokens and live sockets stop working"""
    user_id = current_user.id
    persistence.deactivate_user(user_id)
    get_services().realtime.drop_user(user_id)
    current_app.logger.info(f"User {user_id} deactivated their account")
    return jsonify({'success': True})


@users_bp.route('/presence')
@login_required
def contacts_presence():
    """Presence of everyone who shares a group with the current user"""
    return jsonify(get_services().groups.get_contacts_presence(current_user.id))


@users_bp.route('/groups/<int:group_id>/presence')
@login_required
@require_group_member
def group_presence(group_id):
    return jsonify(get_services().groups.get_members_with_presence(group_id))


@users_bp.route('/push-token', methods=['POST'])
@login_required
def save_push_token():
    """Register the device push token used for offline notifications"""
    data = request.get_json(silent=True) or {}
    push_token = data.get('pushToken', data.get('push_token'))

    if not isinstance(push_token, str) or not push_token.strip():
        raise ValidationError("pushToken is required")
    if len(push_token) > 255:
        raise ValidationError("pushToken too long")

    persistence.set_push_token(current_user.id, push_token.strip())
    return jsonify({'success': True})


@users_bp.route('/test-notification', methods=['POST'])
@login_required
def send_test_notification():
    get_services().notifications.send_test_notification(current_user)
    return jsonify({'success': True})
