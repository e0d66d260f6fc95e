from flask import jsonify, g
from flask_login import login_required, current_user

from groupchat.blueprints.groups import groups_bp
from groupchat.blueprints.groups.forms import CreateGroupForm
from groupchat.services import get_services
from groupchat.utils.security_decorators import require_group_member


@groups_bp.route('', methods=['POST'])
@login_required
def create_group():
    """Create a group; the creator becomes its owner"""
    form = CreateGroupForm().validate_or_raise()

    group = get_services().groups.create_group(current_user.id, form.name.data, form.description.data)
    return jsonify(group.to_dict(member_count=1, is_member=True)), 201


@groups_bp.route('', methods=['GET'])
@login_required
def list_joined_groups():
    """Groups the current user belongs to"""
    return jsonify(get_services().groups.list_joined_groups(current_user.id))


@groups_bp.route('/all')
@login_required
def list_all_groups():
    """Every group, flagged with whether the current user is a member"""
    return jsonify(get_services().groups.list_all_groups(current_user.id))


@groups_bp.route('/<int:group_id>')
@login_required
def get_group(group_id):
    return jsonify(get_services().groups.get_group(group_id, viewer_id=current_user.id))


@groups_bp.route('/<int:group_id>/join', methods=['POST'])
@login_required
def join_group(group_id):
    """Join a group. Joining twice is harmless."""
    groups = get_services().groups
    group, joined = groups.join_group(current_user.id, group_id)

    return jsonify({
        'success': True,
        'joined': joined,
        'group': groups.get_group(group.id, viewer_id=current_user.id)
    })


@groups_bp.route('/<int:group_id>/leave', methods=['POST'])
@login_required
def leave_group(group_id):
    left = get_services().groups.leave_group(current_user.id, group_id)
    return jsonify({'success': True, 'left': left})


@groups_bp.route('/<int:group_id>/members')
@login_required
@require_group_member
def list_members(group_id):
    """Members of the group with their presence status"""
    return jsonify(get_services().groups.get_members_with_presence(g.current_group.id))
