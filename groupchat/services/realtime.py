"""
Realtime fan-out engine.

Owns the registry of live Socket.IO connections and the per-group rooms.
Every broadcast to a group is emitted while holding that group's lock, so
events for one group leave this process in the order they were produced.
Rooms are Socket.IO rooms; with a message queue configured the same emit
reaches connections held by peer instances.
"""
import logging
from datetime import datetime
from threading import Lock
from typing import Dict, List, Optional, Set

from flask_socketio import SocketIO

from groupchat.errors import AuthError, ConflictError, ForbiddenError, TransientError
from groupchat.services import persistence
from groupchat.services.presence import PresenceTracker
from groupchat.utils.locks import KeyedLocks

logger = logging.getLogger(__name__)


class Connection:
    """Server-side state of one Socket.IO connection"""

    UNAUTHENTICATED = 'unauthenticated'
    AUTHENTICATED = 'authenticated'
    CLOSED = 'closed'

    def __init__(self, sid: str):
        self.sid = sid
        self.user_id: Optional[int] = None
        self.username: Optional[str] = None
        self.token: Optional[str] = None
        self.groups: Set[int] = set()
        self.state = self.UNAUTHENTICATED
        self.counted = False  # holds one of the user's presence counts, guarded by the user lock
        self.connected_at = datetime.utcnow()

    @property
    def is_authenticated(self):
        return self.state == self.AUTHENTICATED

    def __repr__(self):
        return f'<Connection {self.sid} user={self.user_id} state={self.state}>'


class RealtimeEngine:
    """
    Connection state machine and ordered per-group broadcast.

    unauthenticated -> authenticated -> (joined groups)* -> closed
    """

    def __init__(self, socketio: SocketIO, group_locks: KeyedLocks, user_locks: KeyedLocks,
                 presence: PresenceTracker, namespace: str = '/'):
        self.socketio = socketio
        self.group_locks = group_locks
        self.user_locks = user_locks
        self.presence = presence
        self.namespace = namespace

        self.connections: Dict[str, Connection] = {}
        self.rooms: Dict[int, Set[str]] = {}  # group_id -> sids, guarded by the group lock
        self.lock = Lock()  # guards self.connections only

        self.halted_reason: Optional[str] = None

    @staticmethod
    def room_name(group_id: int) -> str:
        return f"group_{group_id}"

    # ========== LIFECYCLE ==========

    def halt(self, reason: str):
        """Stop accepting new connections (e.g. the backplane is gone)"""
        if self.halted_reason is None:
            logger.error(f"Realtime engine halted: {reason}")
        self.halted_reason = reason

    def resume(self):
        if self.halted_reason is not None:
            logger.info("Realtime engine resumed")
        self.halted_reason = None

    def connection_count(self) -> int:
        with self.lock:
            return len(self.connections)

    def get_connection(self, sid: str) -> Optional[Connection]:
        with self.lock:
            return self.connections.get(sid)

    def connections_for_user(self, user_id: int) -> List[Connection]:
        with self.lock:
            return [c for c in self.connections.values() if c.user_id == user_id]

    def members_of_room(self, group_id: int) -> Set[str]:
        with self.group_locks.hold(group_id):
            return set(self.rooms.get(group_id, ()))

    # ========== CONNECTION STATE MACHINE ==========

    def connect(self, sid: str) -> Connection:
        """
        Register a new, unauthenticated connection.

        Raises:
            TransientError: While the engine is halted
        """
        if self.halted_reason is not None:
            raise TransientError(f"Not accepting connections: {self.halted_reason}")

        connection = Connection(sid)
        with self.lock:
            self.connections[sid] = connection
        return connection

    def authenticate(self, sid: str, token):
        """
        Bind a connection to the user owning `token`.

        On success the user's presence count goes up and `authenticated` is
        emitted to the connection. On failure the connection stays
        unauthenticated and gets a `connect_error`.

        Raises:
            AuthError: If the connection is unknown or the token does not resolve
            ConflictError: If the connection is already bound to another user
        """
        connection = self.get_connection(sid)
        if connection is None or connection.state == Connection.CLOSED:
            raise AuthError("Connection is closed")

        try:
            if not isinstance(token, str) or not token.strip():
                raise AuthError("Authentication token is required")
            user = persistence.resolve_token(token.strip())
        except AuthError as e:
            self.socketio.emit('connect_error', {'message': e.message}, to=sid, namespace=self.namespace)
            raise

        with self.user_locks.hold(user.id):
            if connection.is_authenticated:
                if connection.user_id != user.id:
                    raise ConflictError("Connection is already authenticated as another user")
                connection.token = token.strip()
            elif connection.state == Connection.CLOSED:
                raise AuthError("Connection is closed")
            else:
                connection.user_id = user.id
                connection.username = user.username
                connection.token = token.strip()
                connection.state = Connection.AUTHENTICATED
                connection.counted = True
                if self.presence.connect(user.id):
                    self._announce_presence(user.id, user.username, 'online')

        self.socketio.emit('authenticated', {
            'userId': user.id,
            'username': user.username
        }, to=sid, namespace=self.namespace)
        return user

    def join_group(self, sid: str, group_id: int):
        """
        Put an authenticated connection in a group's room. Idempotent.

        Raises:
            AuthError: If the connection is not authenticated
            NotFoundError: If the group does not exist
            ForbiddenError: If the user is not a member of the group
        """
        connection = self.require_authenticated(sid)
        group = persistence.get_group(group_id)
        if not persistence.is_member(group.id, connection.user_id):
            raise ForbiddenError("You are not a member of this group")

        with self.group_locks.hold(group.id):
            if connection.state == Connection.CLOSED:
                return group
            # A leave or logout may have landed since the first check
            if not connection.is_authenticated:
                raise AuthError("Not authenticated")
            if not persistence.is_member(group.id, connection.user_id):
                raise ForbiddenError("You are not a member of this group")
            self.socketio.server.enter_room(sid, self.room_name(group.id), namespace=self.namespace)
            self.rooms.setdefault(group.id, set()).add(sid)
            connection.groups.add(group.id)
        return group

    def leave_group(self, sid: str, group_id: int) -> bool:
        """Take a connection out of a group's room. Returns False if it was not in it."""
        connection = self.get_connection(sid)
        if connection is None:
            return False

        with self.group_locks.hold(group_id):
            if group_id not in connection.groups:
                return False
            connection.groups.discard(group_id)
            self._drop_from_room(group_id, sid)
            if connection.state != Connection.CLOSED:
                self.socketio.server.leave_room(sid, self.room_name(group_id), namespace=self.namespace)
        return True

    def revoke_membership(self, user_id: int, group_id: int) -> int:
        """Remove every live connection of a user from a group's room"""
        removed = 0
        for connection in self.connections_for_user(user_id):
            if self.leave_group(connection.sid, group_id):
                removed += 1
        return removed

    def drop_user(self, user_id: int, token: Optional[str] = None) -> int:
        """
        Return a user's live connections to the unauthenticated state, e.g.
        after logout or account deactivation. With `token`, only connections
        authenticated with that token are dropped.

        Dropped connections leave every room, release their presence count
        and get a `connect_error`; they may authenticate again.

        Returns:
            Number of connections dropped
        """
        dropped = 0
        for connection in self.connections_for_user(user_id):
            if token is not None and connection.token != token:
                continue

            with self.user_locks.hold(user_id):
                if not connection.is_authenticated or connection.user_id != user_id:
                    continue
                connection.state = Connection.UNAUTHENTICATED
                self._release_presence(connection, user_id, connection.username)
                connection.user_id = connection.username = connection.token = None

            for group_id in list(connection.groups):
                self.leave_group(connection.sid, group_id)

            self.socketio.emit('connect_error', {'message': 'Session ended'},
                               to=connection.sid, namespace=self.namespace)
            dropped += 1

        if dropped:
            logger.info(f"Dropped {dropped} live connection(s) of user {user_id}")
        return dropped

    def disconnect(self, sid: str):
        """
        Close a connection: leave every room and drop its presence count.
        Runs the same way for graceful and abrupt disconnects.
        """
        with self.lock:
            connection = self.connections.pop(sid, None)
        if connection is None:
            return

        user_id, username = connection.user_id, connection.username
        connection.state = Connection.CLOSED

        # Socket.IO clears its own rooms for the sid after the disconnect handler
        for group_id in list(connection.groups):
            with self.group_locks.hold(group_id):
                connection.groups.discard(group_id)
                self._drop_from_room(group_id, sid)

        if user_id is not None:
            with self.user_locks.hold(user_id):
                self._release_presence(connection, user_id, username)

    def _release_presence(self, connection: Connection, user_id: int, username: Optional[str]):
        """Give back the connection's presence count once. Caller holds the user lock."""
        if not connection.counted:
            return
        connection.counted = False
        if self.presence.disconnect(user_id):
            self._announce_presence(user_id, username, 'offline')

    def _drop_from_room(self, group_id: int, sid: str):
        members = self.rooms.get(group_id)
        if members is not None:
            members.discard(sid)
            if not members:
                del self.rooms[group_id]

    def require_authenticated(self, sid: str) -> Connection:
        """
        Raises:
            AuthError: If the connection has not authenticated; it also gets a connect_error
        """
        connection = self.get_connection(sid)
        if connection is None or not connection.is_authenticated:
            self.socketio.emit('connect_error', {'message': 'Not authenticated'}, to=sid, namespace=self.namespace)
            raise AuthError("Not authenticated")
        return connection

    # ========== BROADCAST ==========

    def serialized(self, group_id: int):
        """Context manager holding the group's broadcast lock"""
        return self.group_locks.hold(group_id)

    def broadcast(self, group_id: int, event: str, payload: dict):
        """Emit an event to every connection in the group's room"""
        with self.group_locks.hold(group_id):
            self.socketio.emit(event, payload, to=self.room_name(group_id), namespace=self.namespace)

    def announce_new_message(self, message, reactions=None):
        payload = message.to_dict(reactions=reactions if reactions is not None else [])
        payload['groupId'] = message.group_id
        self.broadcast(message.group_id, 'new_message', payload)

    def announce_reaction(self, message, user_id, reaction_type, action, summary):
        self.broadcast(message.group_id, 'reaction_update', {
            'groupId': message.group_id,
            'messageId': message.id,
            'userId': user_id,
            'reactionType': reaction_type,
            'action': action,
            'reactions': summary
        })

    def announce_message_deleted(self, message):
        self.broadcast(message.group_id, 'message_deleted', {
            'groupId': message.group_id,
            'messageId': message.id,
            'sequence': message.sequence
        })

    def announce_read(self, message, receipt):
        self.broadcast(message.group_id, 'read_receipt', {
            'groupId': message.group_id,
            'messageId': message.id,
            'userId': receipt.user_id,
            'username': receipt.user.username if receipt.user else None,
            'readAt': receipt.read_at.isoformat()
        })

    def announce_membership(self, event, group_id, user):
        """Broadcast user_joined / user_left"""
        self.broadcast(group_id, event, {
            'groupId': group_id,
            'userId': user.id,
            'username': user.username
        })

    def _announce_presence(self, user_id, username, status):
        persistence.set_presence_status(user_id, status)

        for group_id in persistence.list_group_ids_of(user_id):
            self.broadcast(group_id, 'presence_update', {
                'groupId': group_id,
                'userId': user_id,
                'username': username,
                'status': status
            })
