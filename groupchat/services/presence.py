"""
Presence tracking: live connection counts per user
"""
from threading import Lock
from typing import Dict, List


class PresenceTracker:
    """
    Counts live authenticated connections per user.

    connect/disconnect report whether the user crossed the offline/online
    boundary so the caller can announce exactly one presence change.
    """

    def __init__(self):
        self.connection_counts: Dict[int, int] = {}
        self.lock = Lock()

    def connect(self, user_id: int) -> bool:
        """
        Count a new connection for a user.

        Returns:
            True if the user was offline before this connection
        """
        with self.lock:
            count = self.connection_counts.get(user_id, 0)
            self.connection_counts[user_id] = count + 1
            return count == 0

    def disconnect(self, user_id: int) -> bool:
        """
        Drop one connection of a user.

        Returns:
            True if this was the user's last connection
        """
        with self.lock:
            count = self.connection_counts.get(user_id, 0)
            if count <= 0:
                return False

            if count == 1:
                del self.connection_counts[user_id]
                return True

            self.connection_counts[user_id] = count - 1
            return False

    def is_online(self, user_id: int) -> bool:
        with self.lock:
            return self.connection_counts.get(user_id, 0) > 0

    def count(self, user_id: int) -> int:
        with self.lock:
            return self.connection_counts.get(user_id, 0)

    def online_user_ids(self) -> List[int]:
        with self.lock:
            return list(self.connection_counts)
