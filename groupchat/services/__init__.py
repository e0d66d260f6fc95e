"""
Chat services, built once per app and stored in app.extensions
"""
from flask import current_app


class ChatServices:
    """The services shared by HTTP routes and Socket.IO handlers"""

    def __init__(self, presence, realtime, groups, messages, notifications):
        self.presence = presence
        self.realtime = realtime
        self.groups = groups
        self.messages = messages
        self.notifications = notifications


def init_services(app):
    """Wire the presence tracker, realtime engine and chat services for an app"""
    from groupchat import socketio
    from groupchat.utils.locks import KeyedLocks
    from groupchat.services.presence import PresenceTracker
    from groupchat.services.realtime import RealtimeEngine
    from groupchat.services.group_service import GroupManager
    from groupchat.services.message_service import MessageService
    from groupchat.services.blob_storage import make_blob_store
    from groupchat.services.notification_service import NotificationService, make_push_sink

    # One lock per group serializes sequence assignment and broadcast
    group_locks = KeyedLocks()
    user_locks = KeyedLocks()

    presence = PresenceTracker()
    realtime = RealtimeEngine(socketio, group_locks, user_locks, presence)
    notifications = NotificationService(make_push_sink(app.config), presence)

    messages = MessageService(
        group_locks,
        make_blob_store(app.config),
        notifier=notifications,
        max_file_size=app.config['MAX_FILE_SIZE'],
        allowed_extensions=app.config['ALLOWED_IMAGE_EXTENSIONS'],
        blob_retry_attempts=app.config['DB_RETRY_ATTEMPTS'],
        blob_retry_base_delay=app.config['DB_RETRY_BASE_DELAY']
    )

    services = ChatServices(
        presence=presence,
        realtime=realtime,
        groups=GroupManager(realtime, shared_presence=bool(app.config.get('SOCKETIO_MESSAGE_QUEUE'))),
        messages=messages,
        notifications=notifications
    )
    app.extensions['groupchat'] = services
    return services


def get_services() -> ChatServices:
    return current_app.extensions['groupchat']
