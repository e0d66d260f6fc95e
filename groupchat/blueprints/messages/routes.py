from flask import request, jsonify, g, current_app
from flask_login import login_required, current_user

from groupchat.blueprints.messages import messages_bp
from groupchat.errors import ValidationError
from groupchat.services import get_services
from groupchat.utils.input_validators import parse_int
from groupchat.utils.security_decorators import require_group_member


def _int_arg(name, default=None, minimum=None, maximum=None):
    is_valid, value = parse_int(request.args.get(name), name, default=default, minimum=minimum, maximum=maximum)
    if not is_valid:
        raise ValidationError(value)
    return value


def _reaction_type():
    data = request.get_json(silent=True) or {}
    return data.get('reactionType', data.get('reaction_type'))


# ========== SENDING ==========

@messages_bp.route('/<int:group_id>/send', methods=['POST'])
@login_required
def send_message(group_id):
    """Send a text message to a group and broadcast it to the group's room"""
    services = get_services()
    data = request.get_json(silent=True) or {}

    message = services.messages.send_message(
        group_id,
        current_user.id,
        data.get('content'),
        announce=services.realtime.announce_new_message
    )
    return jsonify({'success': True, 'data': message.to_dict(reactions=[])}), 201


@messages_bp.route('/<int:group_id>/send-image', methods=['POST'])
@login_required
def send_image(group_id):
    """Upload an image and send it as a message"""
    # Accept both 'image' and 'file' form fields
    file = request.files.get('image') or request.files.get('file')
    if not file or file.filename == '':
        raise ValidationError("No image provided")

    services = get_services()
    message = services.messages.send_image(
        group_id,
        current_user.id,
        file.stream,
        file.filename,
        announce=services.realtime.announce_new_message
    )

    current_app.logger.info(f"User {current_user.id} sent image {message.file_url} to group {group_id}")
    return jsonify({'success': True, 'data': message.to_dict(reactions=[])}), 201


# ========== HISTORY ==========

@messages_bp.route('/<int:group_id>', methods=['GET'])
@login_required
@require_group_member
def list_messages(group_id):
    """
    Message history in sequence order.

    Query params:
        limit: Page size (default MESSAGES_PER_PAGE)
        offset: Number of newest messages to skip
        after_sequence: Only messages after this sequence number (gap fill)
    """
    limit = _int_arg('limit', default=current_app.config['MESSAGES_PER_PAGE'], minimum=1,
                     maximum=current_app.config['MAX_MESSAGES_PER_PAGE'])
    offset = _int_arg('offset', default=0, minimum=0)
    after_sequence = _int_arg('after_sequence', minimum=0)

    messages = get_services().messages.list_messages(
        g.current_group.id, current_user.id, limit=limit, offset=offset, after_sequence=after_sequence
    )
    return jsonify(messages)


@messages_bp.route('/<int:group_id>/search')
@login_required
@require_group_member
def search_messages(group_id):
    limit = _int_arg('limit', default=current_app.config['SEARCH_RESULTS_LIMIT'], minimum=1,
                     maximum=current_app.config['SEARCH_RESULTS_LIMIT'])
    results = get_services().messages.search_messages(
        g.current_group.id, current_user.id, request.args.get('q'), limit=limit
    )
    return jsonify(results)


@messages_bp.route('/<int:message_id>', methods=['DELETE'])
@login_required
def delete_message(message_id):
    """Soft delete a message (sender or group owner)"""
    services = get_services()
    message = services.messages.delete_message(
        message_id, current_user.id, announce=services.realtime.announce_message_deleted
    )
    return jsonify({'success': True, 'data': message.to_dict()})


# ========== READ RECEIPTS ==========

@messages_bp.route('/<int:message_id>/read', methods=['POST'])
@login_required
def mark_message_read(message_id):
    """
    Mark a message as read by the current user.

    Args:
        message_id: ID of the message to mark as read
    """
    services = get_services()
    receipt, created = services.messages.mark_read(
        message_id, current_user.id, announce=services.realtime.announce_read
    )
    return jsonify({'success': True, 'created': created, 'data': receipt.to_dict()})


@messages_bp.route('/<int:message_id>/readers')
@login_required
def list_readers(message_id):
    return jsonify(get_services().messages.get_readers(message_id, current_user.id))


# ========== REACTIONS ==========

@messages_bp.route('/<int:message_id>/react', methods=['POST'])
@login_required
def add_reaction(message_id):
    services = get_services()
    summary, changed = services.messages.add_reaction(
        message_id, current_user.id, _reaction_type(), announce=services.realtime.announce_reaction
    )
    return jsonify({'success': True, 'changed': changed, 'reactions': summary})


@messages_bp.route('/<int:message_id>/react', methods=['DELETE'])
@login_required
def remove_reaction(message_id):
    services = get_services()
    summary, changed = services.messages.remove_reaction(
        message_id, current_user.id, _reaction_type(), announce=services.realtime.announce_reaction
    )
    return jsonify({'success': True, 'changed': changed, 'reactions': summary})


@messages_bp.route('/<int:message_id>/reactions')
@login_required
def list_reactions(message_id):
    return jsonify(get_services().messages.get_reaction_summary(message_id, current_user.id))
