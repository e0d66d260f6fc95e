"""
Group Service
Group creation, membership changes and the membership read paths
"""
import logging

from groupchat.errors import ConflictError, ValidationError
from groupchat.services import persistence
from groupchat.utils.input_validators import MAX_DESCRIPTION_LENGTH, validate_group_name

logger = logging.getLogger(__name__)


class GroupManager:
    """Membership invariants on top of the persistence layer"""

    def __init__(self, realtime, shared_presence=False):
        self.realtime = realtime
        # Peer instances hold connections this one cannot count
        self.shared_presence = shared_presence

    def create_group(self, creator_id, name, description=None):
        """
        Create a group owned by its creator.

        Raises:
            ValidationError: If the name is empty or too long
        """
        is_valid, error = validate_group_name(name)
        if not is_valid:
            raise ValidationError(error)

        description = (description or '').strip() or None
        if description and len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(f"Description too long (max {MAX_DESCRIPTION_LENGTH} characters)")

        group = persistence.create_group(creator_id, name.strip(), description)
        logger.info(f"User {creator_id} created group {group.id} ({group.name})")
        return group

    def join_group(self, user_id, group_id):
        """
        Add a user to a group.

        Joining a group twice is a no-op: only the first join inserts the
        membership and broadcasts user_joined.

        Returns:
            (group, joined) where joined is False if the user was already a member
        """
        group = persistence.get_group(group_id)

        with self.realtime.serialized(group.id):
            try:
                persistence.add_member(group.id, user_id)
            except ConflictError:
                return group, False

            user = persistence.get_user(user_id)
            self.realtime.announce_membership('user_joined', group.id, user)

        logger.info(f"User {user_id} joined group {group.id}")
        return group, True

    def leave_group(self, user_id, group_id):
        """
        Remove a user from a group and from the group's live room.

        Returns:
            False if the user was not a member

        Raises:
            ValidationError: If the user owns the group
        """
        group = persistence.get_group(group_id)
        membership = persistence.get_membership(group.id, user_id)
        if membership is None:
            return False
        if membership.is_owner():
            raise ValidationError("The group owner cannot leave the group")

        with self.realtime.serialized(group.id):
            if not persistence.remove_member(group.id, user_id):
                return False

            user = persistence.get_user(user_id)
            self.realtime.announce_membership('user_left', group.id, user)
            self.realtime.revoke_membership(user_id, group.id)

        logger.info(f"User {user_id} left group {group.id}")
        return True

    def list_all_groups(self, viewer_id):
        joined = set(persistence.list_group_ids_of(viewer_id))
        return [
            group.to_dict(member_count=count, is_member=group.id in joined)
            for group, count in persistence.list_all_groups()
        ]

    def list_joined_groups(self, user_id):
        return [
            group.to_dict(member_count=count, is_member=True)
            for group, count in persistence.list_groups_of(user_id)
        ]

    def get_group(self, group_id, viewer_id=None):
        group = persistence.get_group(group_id)
        is_member = persistence.is_member(group.id, viewer_id) if viewer_id is not None else None
        return group.to_dict(is_member=is_member)

    def _presence_status(self, user):
        online = self.realtime.presence.is_online(user.id)
        if not online and self.shared_presence:
            # Connections held by other instances only show up in the stored status
            online = user.status == 'online'
        return 'online' if online else 'offline'

    def get_members_with_presence(self, group_id):
        """Members of a group in join order, with their live presence status"""
        group = persistence.get_group(group_id)

        members = []
        for membership, user in persistence.list_members_of(group.id):
            members.append({
                'id': user.id,
                'username': user.username,
                'display_name': user.full_name,
                'avatar_url': user.avatar_url,
                'role': membership.role,
                'status': self._presence_status(user),
                'last_seen': user.last_seen.isoformat() if user.last_seen else None,
                'joined_at': membership.joined_at.isoformat(),
            })
        return members

    def get_contacts_presence(self, user_id):
        """Presence of everyone who shares at least one group with the user"""
        contacts = {}
        for group_id in persistence.list_group_ids_of(user_id):
            for _, user in persistence.list_members_of(group_id):
                if user.id != user_id and user.id not in contacts:
                    contacts[user.id] = {
                        'id': user.id,
                        'username': user.username,
                        'status': self._presence_status(user),
                        'last_seen': user.last_seen.isoformat() if user.last_seen else None,
                    }
        return list(contacts.values())
