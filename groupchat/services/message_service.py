"""
Message Service
Validates, sequences and persists messages, reactions and read state.

Writes that are fanned out take the group's lock before touching the
database and hand the result to the caller's `announce` callback while the
lock is still held. A reaction_update therefore never overtakes the
new_message it refers to.
"""
import logging
import os
import time

from groupchat.errors import ForbiddenError, NotFoundError, TransientError, ValidationError
from groupchat.models.message import IMAGE_PLACEHOLDER
from groupchat.services import persistence
from groupchat.utils.input_validators import (
    MAX_SEARCH_LENGTH,
    validate_message_content,
    validate_reaction_type,
)

logger = logging.getLogger(__name__)


class MessageService:

    def __init__(self, group_locks, blob_store, notifier=None, max_file_size=10 * 1024 * 1024,
                 allowed_extensions=('png', 'jpg', 'jpeg', 'gif'), blob_retry_attempts=3,
                 blob_retry_base_delay=0.2):
        self.group_locks = group_locks
        self.blob_store = blob_store
        self.notifier = notifier
        self.max_file_size = max_file_size
        self.allowed_extensions = set(allowed_extensions)
        self.blob_retry_attempts = blob_retry_attempts
        self.blob_retry_base_delay = blob_retry_base_delay

    def _require_member(self, group_id, user_id):
        group = persistence.get_group(group_id)
        if not persistence.is_member(group.id, user_id):
            raise ForbiddenError("You are not a member of this group")
        return group

    def _notify(self, message):
        if self.notifier is not None:
            self.notifier.notify_offline_members(message)

    # ========== SENDING ==========

    def send_message(self, group_id, sender_id, content, announce=None):
        """
        Persist a text message with the next sequence number of its group.

        Args:
            announce: Optional callable(message) run before the group lock is released

        Raises:
            ValidationError: Empty, oversized or non-text content
            NotFoundError: Unknown group
            ForbiddenError: Sender is not a member
        """
        if content is not None and not isinstance(content, str):
            raise ValidationError("Message content must be text")
        is_valid, error = validate_message_content(content)
        if not is_valid:
            raise ValidationError(error)

        group = persistence.get_group(group_id)
        with self.group_locks.hold(group.id):
            self._require_member(group.id, sender_id)
            message = persistence.insert_message(group.id, sender_id, content)
            if announce is not None:
                announce(message)

        logger.info(f"Message {message.id} (seq {message.sequence}) sent to group {group.id} by user {sender_id}")
        self._notify(message)
        return message

    def send_image(self, group_id, sender_id, stream, filename, announce=None):
        """
        Store an uploaded image and persist an image message pointing at it.

        The upload happens outside the group lock; only the insert and the
        announce are serialized.
        """
        if not filename or '.' not in filename:
            raise ValidationError("Image filename is required")

        extension = os.path.splitext(filename)[1].lstrip('.').lower()
        if extension not in self.allowed_extensions:
            raise ValidationError(f"Unsupported image type. Allowed: {', '.join(sorted(self.allowed_extensions))}")

        data = stream.read(self.max_file_size + 1)
        if not data:
            raise ValidationError("Image file is empty")
        if len(data) > self.max_file_size:
            raise ValidationError(f"Image too large (max {self.max_file_size // (1024 * 1024)}MB)")

        group = self._require_member(group_id, sender_id)
        file_url = self._store_blob(data, filename)

        with self.group_locks.hold(group.id):
            self._require_member(group.id, sender_id)
            message = persistence.insert_message(
                group.id, sender_id, IMAGE_PLACEHOLDER, message_type='image', file_url=file_url
            )
            if announce is not None:
                announce(message)

        logger.info(f"Image message {message.id} (seq {message.sequence}) sent to group {group.id}")
        self._notify(message)
        return message

    def _store_blob(self, data, filename):
        for attempt in range(1, self.blob_retry_attempts + 1):
            try:
                return self.blob_store.store(data, filename)
            except Exception as e:
                if attempt >= self.blob_retry_attempts:
                    logger.error(f"Image upload failed after {attempt} attempts: {e}")
                    raise TransientError("Image upload failed, please retry") from e
                delay = self.blob_retry_base_delay * (2 ** (attempt - 1))
                logger.warning(f"Image upload failed (attempt {attempt}), retrying in {delay:.2f}s: {e}")
                time.sleep(delay)

    def rebroadcast_message(self, group_id, sender_id, message_id, announce):
        """
        Announce a message the sender already stored in the group again.

        Returns:
            The message, or None if it is not the sender's message in this group
        """
        self._require_member(group_id, sender_id)
        if not isinstance(message_id, int) or isinstance(message_id, bool):
            return None
        try:
            message = persistence.get_message(message_id)
        except NotFoundError:
            return None

        if message.group_id != group_id or message.sender_id != sender_id or message.is_deleted:
            return None

        with self.group_locks.hold(group_id):
            announce(message)
        return message

    # ========== REACTIONS ==========

    def add_reaction(self, message_id, user_id, reaction_type, announce=None):
        """
        Add a reaction; adding one the user already holds changes nothing.

        Args:
            announce: Optional callable(message, user_id, reaction_type, action, summary),
                called only when the reaction set changed

        Returns:
            (summary, changed)
        """
        return self._change_reaction(message_id, user_id, reaction_type, 'add', announce)

    def remove_reaction(self, message_id, user_id, reaction_type, announce=None):
        """Remove a reaction; removing one the user does not hold changes nothing."""
        return self._change_reaction(message_id, user_id, reaction_type, 'remove', announce)

    def _change_reaction(self, message_id, user_id, reaction_type, action, announce):
        is_valid, error = validate_reaction_type(reaction_type)
        if not is_valid:
            raise ValidationError(error)
        reaction_type = str(reaction_type).strip()

        message = persistence.get_message(message_id)
        if message.is_deleted and action == 'add':
            raise ValidationError("Cannot react to a deleted message")

        with self.group_locks.hold(message.group_id):
            self._require_member(message.group_id, user_id)

            if action == 'add':
                changed = persistence.upsert_reaction(message.id, user_id, reaction_type)
            else:
                changed = persistence.remove_reaction(message.id, user_id, reaction_type)

            summary = persistence.get_reaction_summary(message.id)
            if changed and announce is not None:
                announce(message, user_id, reaction_type, action, summary)

        return summary, changed

    def get_reaction_summary(self, message_id, user_id):
        message = persistence.get_message(message_id)
        self._require_member(message.group_id, user_id)
        return persistence.get_reaction_summary(message.id)

    # ========== READ STATE ==========

    def mark_read(self, message_id, user_id, announce=None):
        """
        Record a read receipt. Idempotent; announce(message, receipt) runs
        only for the first read.
        """
        message = persistence.get_message(message_id)
        self._require_member(message.group_id, user_id)

        with self.group_locks.hold(message.group_id):
            receipt, created = persistence.upsert_read_receipt(message.id, user_id)
            if created and announce is not None:
                announce(message, receipt)

        return receipt, created

    def get_readers(self, message_id, user_id):
        message = persistence.get_message(message_id)
        self._require_member(message.group_id, user_id)
        return [receipt.to_dict() for receipt in persistence.list_readers(message.id)]

    # ========== DELETE ==========

    def delete_message(self, message_id, user_id, announce=None):
        """
        Soft delete a message. Allowed for its sender and for the group owner.

        Raises:
            ForbiddenError: Anyone else
        """
        message = persistence.get_message(message_id)
        membership = persistence.get_membership(message.group_id, user_id)

        is_sender = message.sender_id == user_id and membership is not None
        is_owner = membership is not None and membership.is_owner()
        if not (is_sender or is_owner):
            raise ForbiddenError("You can only delete your own messages")

        if message.is_deleted:
            return message

        with self.group_locks.hold(message.group_id):
            persistence.soft_delete_message(message)
            if announce is not None:
                announce(message)

        logger.info(f"Message {message.id} deleted by user {user_id}")
        return message

    # ========== READ PATHS ==========

    def list_messages(self, group_id, user_id, limit=50, offset=0, after_sequence=None):
        """Serialized messages ordered by sequence, each with its reaction summary"""
        group = self._require_member(group_id, user_id)
        messages = persistence.list_messages(group.id, limit=limit, offset=offset, after_sequence=after_sequence)
        summaries = persistence.get_reaction_summaries([m.id for m in messages])
        return [message.to_dict(reactions=summaries[message.id]) for message in messages]

    def search_messages(self, group_id, user_id, text, limit=50):
        text = (text or '').strip()
        if not text:
            raise ValidationError("Search query is required")
        if len(text) > MAX_SEARCH_LENGTH:
            raise ValidationError(f"Search query too long (max {MAX_SEARCH_LENGTH} characters)")

        group = self._require_member(group_id, user_id)
        messages = persistence.search_messages(group.id, text, limit=limit)
        return [message.to_dict() for message in messages]
