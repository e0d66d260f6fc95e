"""
Flask-SocketIO event handlers for real-time group chat.

Every client event is acknowledged with {'ok': True, ...} or
{'ok': False, 'error': <code>, 'message': ...}; errors only ever go back to
the connection that caused them.
"""
from flask import current_app, request
from flask_socketio import ConnectionRefusedError, SocketIO
import sentry_sdk

from groupchat import db
from groupchat.errors import AuthError, ChatError, ConflictError, TransientError, ValidationError
from groupchat.services import get_services, persistence


def _parse_group_id(data):
    """Accept a bare group id or a dict with groupId"""
    group_id = data.get('groupId', data.get('group_id')) if isinstance(data, dict) else data

    if isinstance(group_id, bool):
        raise ValidationError("groupId must be an integer")
    try:
        return int(group_id)
    except (TypeError, ValueError):
        raise ValidationError("groupId must be an integer")


def init_socketio_events(socketio: SocketIO):
    """
    Initialize Socket.IO event handlers.

    Args:
        socketio: Flask-SocketIO instance
    """

    @socketio.on_error_default
    def handle_error(e):
        """Turn a failed handler into a negative acknowledgment"""
        db.session.rollback()

        if isinstance(e, ChatError):
            current_app.logger.info(f"Socket event {request.event['message']} from {request.sid} failed: {e.code}: {e.message}")
            return {'ok': False, 'error': e.code, 'message': e.message}

        current_app.logger.exception(f"Unexpected error in socket event {request.event['message']}")
        sentry_sdk.capture_exception(e)
        return {'ok': False, 'error': 'internal_error', 'message': 'Internal server error'}

    @socketio.on('connect')
    def handle_connect(auth=None):
        """Register the connection; authenticate right away if the handshake carries a token"""
        realtime = get_services().realtime

        try:
            realtime.connect(request.sid)
        except TransientError as e:
            raise ConnectionRefusedError(e.message)

        token = auth.get('token') if isinstance(auth, dict) else None
        if token:
            try:
                realtime.authenticate(request.sid, token)
            except (AuthError, ConflictError) as e:
                # The connection stays open but unauthenticated
                db.session.rollback()
                current_app.logger.info(f"Handshake authentication failed for {request.sid}: {e.message}")

    @socketio.on('disconnect')
    def handle_disconnect(reason=None):
        """Handle client disconnection, graceful or not"""
        get_services().realtime.disconnect(request.sid)

    @socketio.on('authenticate')
    def handle_authenticate(data):
        """
        Authenticate the connection.

        Args:
            data: The bearer token, or a dict with a 'token' key
        """
        token = data.get('token') if isinstance(data, dict) else data
        user = get_services().realtime.authenticate(request.sid, token)
        return {'ok': True, 'user': user.to_dict()}

    @socketio.on('join_group')
    def handle_join_group(data):
        """
        Join a group's room. The user must be a member of the group.

        Args:
            data: Group id, or a dict with 'groupId'
        """
        group_id = _parse_group_id(data)
        group = get_services().realtime.join_group(request.sid, group_id)
        return {'ok': True, 'groupId': group.id}

    @socketio.on('leave_group')
    def handle_leave_group(data):
        """
        Leave a group's room. Membership is not changed.

        Args:
            data: Group id, or a dict with 'groupId'
        """
        realtime = get_services().realtime
        realtime.require_authenticated(request.sid)

        group_id = _parse_group_id(data)
        left = realtime.leave_group(request.sid, group_id)
        return {'ok': True, 'groupId': group_id, 'left': left}

    @socketio.on('send_message')
    def handle_send_message(data):
        """
        Send a message to a group.

        Args:
            data: Dict with 'groupId' and 'message'; message is either the
                text or a dict with 'content' and optionally the 'id' of a
                message already stored through the HTTP API
        """
        services = get_services()
        connection = services.realtime.require_authenticated(request.sid)

        if not isinstance(data, dict):
            raise ValidationError("Expected {groupId, message}")
        group_id = _parse_group_id(data)

        payload = data.get('message')
        if isinstance(payload, dict):
            message_id, content = payload.get('id'), payload.get('content')
        else:
            message_id, content = None, payload

        message = None
        if message_id is not None:
            message = services.messages.rebroadcast_message(
                group_id,
                connection.user_id,
                message_id,
                lambda m: services.realtime.announce_new_message(m, persistence.get_reaction_summary(m.id))
            )

        if message is None:
            message = services.messages.send_message(
                group_id, connection.user_id, content,
                announce=services.realtime.announce_new_message
            )

        return {'ok': True, 'message': message.to_dict()}

    @socketio.on('message_reaction')
    def handle_message_reaction(data):
        """
        Add or remove a reaction.

        Args:
            data: Dict with 'groupId', 'messageId', 'reactionType' and 'action' ('add' or 'remove')
        """
        services = get_services()
        connection = services.realtime.require_authenticated(request.sid)

        if not isinstance(data, dict):
            raise ValidationError("Expected {groupId, messageId, reactionType, action}")

        action = data.get('action', 'add')
        if action not in ('add', 'remove'):
            raise ValidationError("action must be 'add' or 'remove'")

        message_id = data.get('messageId')
        if not isinstance(message_id, int) or isinstance(message_id, bool):
            raise ValidationError("messageId must be an integer")

        if data.get('groupId') is not None:
            group_id = _parse_group_id(data)
            if persistence.get_message(message_id).group_id != group_id:
                raise ValidationError("Message does not belong to this group")

        change = services.messages.add_reaction if action == 'add' else services.messages.remove_reaction
        summary, changed = change(
            message_id, connection.user_id, data.get('reactionType'),
            announce=services.realtime.announce_reaction
        )
        return {'ok': True, 'messageId': message_id, 'changed': changed, 'reactions': summary}
