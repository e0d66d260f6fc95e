"""
Notification Service
Hands push notifications for offline members to a notification sink
"""
import logging
from collections import deque

from groupchat.errors import ValidationError
from groupchat.services import persistence

logger = logging.getLogger(__name__)

MAX_BODY_LENGTH = 120


class RQPushSink:
    """Enqueues a delivery job per notification"""

    def push(self, user_id, payload):
        from groupchat.tasks import deliver_push_notification

        job = deliver_push_notification.delay(user_id, payload)
        logger.info(f"Queued push notification for user {user_id} as job {job.id}")


class LogPushSink:
    """Only logs notifications; keeps the most recent ones for inspection"""

    def __init__(self, maxlen=100):
        self.sent = deque(maxlen=maxlen)

    def push(self, user_id, payload):
        self.sent.append((user_id, payload))
        logger.info(f"Push notification for user {user_id}: {payload.get('title')} - {payload.get('body')}")


def make_push_sink(config):
    backend = config.get('PUSH_BACKEND', 'rq')
    if backend == 'log':
        return LogPushSink()
    if backend == 'rq':
        return RQPushSink()
    raise ValueError(f"Unknown PUSH_BACKEND: {backend}")


class NotificationService:
    """Decides who gets a push notification for a message"""

    def __init__(self, sink, presence):
        self.sink = sink
        self.presence = presence

    def notify_offline_members(self, message):
        """
        Push a new message to every member of its group who has no live
        connection. Best effort: failures are logged, never raised.
        """
        try:
            group = persistence.get_group(message.group_id)
            sender_name = message.sender.full_name if message.sender else 'Someone'
            body = message.content if not message.is_image() else 'sent an image'
            if body and len(body) > MAX_BODY_LENGTH:
                body = body[:MAX_BODY_LENGTH - 3] + '...'

            payload = {
                'title': group.name,
                'body': f"{sender_name}: {body}",
                'data': {'groupId': group.id, 'messageId': message.id}
            }

            notified = 0
            for membership, user in persistence.list_members_of(group.id):
                if user.id == message.sender_id or not user.push_token or not user.is_active:
                    continue
                if self.presence.is_online(user.id):
                    continue
                self.sink.push(user.id, payload)
                notified += 1
            return notified

        except Exception as e:
            logger.error(f"Failed to queue push notifications for message {message.id}: {e}")
            return 0

    def send_test_notification(self, user):
        """
        Raises:
            ValidationError: If the user has not registered a push token
        """
        if not user.push_token:
            raise ValidationError("No push token registered")

        self.sink.push(user.id, {
            'title': 'Test notification',
            'body': 'Push notifications are working',
            'data': {'test': True}
        })
