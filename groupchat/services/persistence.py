"""
Persistence layer for users, tokens, groups, memberships, messages,
reactions and read receipts.

Every write either commits fully or rolls back; constraint violations are
reported as ConflictError / NotFoundError and lost connections or lock
timeouts are retried with exponential backoff before surfacing as
TransientError.
"""
import logging
import time
from datetime import datetime

from flask import current_app
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError

from groupchat import db
from groupchat.errors import AuthError, ConflictError, NotFoundError, TransientError
from groupchat.models.api_token import ApiToken
from groupchat.models.group import Group, GroupMembership
from groupchat.models.message import Message
from groupchat.models.reaction import Reaction
from groupchat.models.read_receipt import ReadReceipt
from groupchat.models.user import User
from groupchat.utils.input_validators import sanitize_sql_like_pattern

logger = logging.getLogger(__name__)


def with_retries(operation, description='database operation'):
    """
    Run a unit of work, retrying transient database failures.

    Args:
        operation: Callable performing the whole unit of work including commit
        description: Used in log lines and in the final error

    Raises:
        TransientError: If every attempt failed with an OperationalError
    """
    attempts = current_app.config.get('DB_RETRY_ATTEMPTS', 3)
    base_delay = current_app.config.get('DB_RETRY_BASE_DELAY', 0.1)

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except OperationalError as e:
            db.session.rollback()
            if attempt >= attempts:
                logger.error(f"{description} failed after {attempts} attempts: {e}")
                raise TransientError(f"Could not complete {description}, please retry") from e
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(f"{description} failed (attempt {attempt}/{attempts}), retrying in {delay:.2f}s: {e}")
            time.sleep(delay)


# ========== USERS & TOKENS ==========

def get_user(user_id):
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def create_user(username, email, password, display_name=None):
    """
    Create a user with a hashed password.

    Raises:
        ConflictError: If the email or username is already registered
    """
    username = username.strip()
    email = email.strip().lower()

    if User.query.filter_by(email=email).first():
        raise ConflictError("Email already registered")
    if User.query.filter(func.lower(User.username) == username.lower()).first():
        raise ConflictError("Username already taken")

    def _create():
        user = User(username=username, email=email, display_name=display_name)
        user.set_password(password)
        db.session.add(user)
        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            raise ConflictError("Email or username already registered") from e
        return user

    return with_retries(_create, 'user registration')


def verify_credentials(email, password):
    """
    Check an email/password pair.

    Returns:
        The matching active User

    Raises:
        AuthError: On unknown email, wrong password or deactivated account
    """
    user = User.query.filter_by(email=(email or '').strip().lower()).first()
    if not user or not user.check_password(password or ''):
        raise AuthError("Invalid email or password")
    if not user.is_active:
        raise AuthError("Account has been deactivated")
    return user


def issue_token(user):
    """Issue a new bearer token for a user"""
    def _issue():
        api_token = ApiToken.create_for(user, expires_in_days=current_app.config.get('TOKEN_TTL_DAYS', 30))
        db.session.add(api_token)
        db.session.commit()
        return api_token

    return with_retries(_issue, 'token issue')


def resolve_token(token):
    """
    Resolve a bearer token to its user.

    Raises:
        AuthError: If the token is unknown, expired, revoked or its user is disabled
    """
    api_token = ApiToken.resolve(token)
    if not api_token:
        raise AuthError("Invalid or expired token")

    api_token.last_used_at = datetime.utcnow()
    db.session.commit()
    return api_token.user


def revoke_token(token):
    api_token = ApiToken.query.filter_by(token=token).first()
    if api_token and api_token.revoked_at is None:
        api_token.revoke()
        db.session.commit()


def deactivate_user(user_id):
    """Soft-disable a user and revoke all of their tokens"""
    user = get_user(user_id)

    def _deactivate():
        user.is_active = False
        user.status = 'offline'
        ApiToken.query.filter_by(user_id=user.id, revoked_at=None).update(
            {'revoked_at': datetime.utcnow()}, synchronize_session=False
        )
        db.session.commit()
        return user

    return with_retries(_deactivate, 'account deactivation')


def update_profile(user_id, **fields):
    user = get_user(user_id)
    for key in ('display_name', 'avatar_url', 'bio'):
        if key in fields:
            setattr(user, key, fields[key] or None)
    db.session.commit()
    return user


def set_push_token(user_id, push_token):
    user = get_user(user_id)
    user.push_token = push_token or None
    db.session.commit()
    return user


def set_presence_status(user_id, status):
    """Persist the user's presence status and last-seen time"""
    def _set():
        db.session.execute(
            update(User).where(User.id == user_id).values(status=status, last_seen=datetime.utcnow())
        )
        db.session.commit()

    with_retries(_set, 'presence update')


# ========== GROUPS & MEMBERSHIP ==========

def get_group(group_id):
    group = db.session.get(Group, group_id)
    if not group:
        raise NotFoundError("Group not found")
    return group


def create_group(creator_id, name, description=None):
    """
    Create a group and its owner membership in one transaction.

    Raises:
        NotFoundError: If the creator does not exist
    """
    get_user(creator_id)

    def _create():
        group = Group(name=name, description=description, creator_id=creator_id)
        db.session.add(group)
        db.session.flush()

        db.session.add(GroupMembership(
            group_id=group.id,
            user_id=creator_id,
            role=GroupMembership.ROLE_OWNER
        ))
        db.session.commit()
        return group

    return with_retries(_create, 'group creation')


def get_membership(group_id, user_id):
    return GroupMembership.query.filter_by(group_id=group_id, user_id=user_id).first()


def is_member(group_id, user_id):
    return get_membership(group_id, user_id) is not None


def add_member(group_id, user_id, role=GroupMembership.ROLE_MEMBER):
    """
    Insert a membership row.

    Raises:
        NotFoundError: If the group or user does not exist
        ConflictError: If the user is already a member
    """
    get_group(group_id)
    get_user(user_id)

    if is_member(group_id, user_id):
        raise ConflictError("User is already a member")

    def _add():
        membership = GroupMembership(group_id=group_id, user_id=user_id, role=role)
        db.session.add(membership)
        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            raise ConflictError("User is already a member") from e
        return membership

    return with_retries(_add, 'group join')


def remove_member(group_id, user_id):
    """Delete a membership row. Returns True if one was removed."""
    def _remove():
        removed = GroupMembership.query.filter_by(group_id=group_id, user_id=user_id).delete()
        db.session.commit()
        return removed > 0

    return with_retries(_remove, 'group leave')


def _member_counts():
    return db.session.query(
        GroupMembership.group_id,
        func.count(GroupMembership.id).label('member_count')
    ).group_by(GroupMembership.group_id).subquery()


def list_all_groups():
    """All groups with their member counts, newest first"""
    counts = _member_counts()
    return db.session.query(Group, func.coalesce(counts.c.member_count, 0)).outerjoin(
        counts, counts.c.group_id == Group.id
    ).order_by(Group.created_at.desc(), Group.id.desc()).all()


def list_groups_of(user_id):
    """Groups the user belongs to with their member counts, most recently joined first"""
    counts = _member_counts()
    return db.session.query(Group, func.coalesce(counts.c.member_count, 0)).join(
        GroupMembership, GroupMembership.group_id == Group.id
    ).outerjoin(
        counts, counts.c.group_id == Group.id
    ).filter(
        GroupMembership.user_id == user_id
    ).order_by(GroupMembership.joined_at.desc(), Group.id.desc()).all()


def list_group_ids_of(user_id):
    rows = db.session.query(GroupMembership.group_id).filter_by(user_id=user_id).all()
    return [row.group_id for row in rows]


def list_members_of(group_id):
    """(membership, user) pairs ordered by join time"""
    return db.session.query(GroupMembership, User).join(
        User, User.id == GroupMembership.user_id
    ).filter(
        GroupMembership.group_id == group_id
    ).order_by(GroupMembership.joined_at.asc(), GroupMembership.id.asc()).all()


# ========== MESSAGES ==========

def get_message(message_id):
    message = db.session.get(Message, message_id)
    if not message:
        raise NotFoundError("Message not found")
    return message


def insert_message(group_id, sender_id, content, message_type='text', file_url=None):
    """
    Persist a message with the next sequence number of its group.

    The counter is bumped with a single UPDATE inside the same transaction
    as the insert, so a message row never exists without its sequence and a
    rolled-back insert gives the number back.

    Raises:
        NotFoundError: If the group does not exist
    """
    def _insert():
        result = db.session.execute(
            update(Group).where(Group.id == group_id).values(last_sequence=Group.last_sequence + 1)
        )
        if result.rowcount == 0:
            db.session.rollback()
            raise NotFoundError("Group not found")

        sequence = db.session.execute(
            select(Group.last_sequence).where(Group.id == group_id)
        ).scalar_one()

        message = Message(
            group_id=group_id,
            sender_id=sender_id,
            content=content,
            message_type=message_type,
            file_url=file_url,
            sequence=sequence
        )
        db.session.add(message)
        try:
            db.session.commit()
        except IntegrityError as e:
            db.session.rollback()
            raise ConflictError("Message sequence collision") from e
        return message

    return with_retries(_insert, 'message send')


def list_messages(group_id, limit=50, offset=0, after_sequence=None):
    """
    Messages of a group ordered by sequence ascending.

    Without after_sequence this is the page of the `limit` most recent
    messages, skipping the `offset` newest. With after_sequence it returns
    the messages that follow that sequence number (gap fill).
    """
    query = Message.query.filter(Message.group_id == group_id)

    if after_sequence is not None:
        return query.filter(Message.sequence > after_sequence).order_by(
            Message.sequence.asc()
        ).limit(limit).all()

    page = query.order_by(Message.sequence.desc()).offset(offset).limit(limit).all()
    return list(reversed(page))


def search_messages(group_id, text, limit=50):
    pattern = f"%{sanitize_sql_like_pattern(text)}%"
    return Message.query.filter(
        Message.group_id == group_id,
        Message.is_deleted.is_(False),
        Message.message_type == 'text',
        Message.content.ilike(pattern, escape='\\')
    ).order_by(Message.sequence.desc()).limit(limit).all()


def soft_delete_message(message):
    def _delete():
        if not message.is_deleted:
            message.is_deleted = True
            message.deleted_at = datetime.utcnow()
            db.session.commit()
        return message

    return with_retries(_delete, 'message delete')


# ========== REACTIONS ==========

def upsert_reaction(message_id, user_id, reaction_type):
    """Add a reaction. Returns False if the user already held it."""
    if Reaction.query.filter_by(message_id=message_id, user_id=user_id, reaction_type=reaction_type).first():
        return False

    def _add():
        db.session.add(Reaction(message_id=message_id, user_id=user_id, reaction_type=reaction_type))
        try:
            db.session.commit()
        except IntegrityError:
            # Concurrent add of the same reaction, the row exists either way
            db.session.rollback()
            return False
        return True

    return with_retries(_add, 'reaction add')


def remove_reaction(message_id, user_id, reaction_type):
    """Remove a reaction. Returns False if the user did not hold it."""
    def _remove():
        removed = Reaction.query.filter_by(
            message_id=message_id, user_id=user_id, reaction_type=reaction_type
        ).delete()
        db.session.commit()
        return removed > 0

    return with_retries(_remove, 'reaction remove')


def get_reaction_summaries(message_ids):
    """
    Reaction summaries for several messages.

    Returns:
        Dict of message id -> list of {reaction_type, count, user_ids, users}
        ordered by the time each reaction type was first used, with users in
        the order they reacted
    """
    summaries = {message_id: [] for message_id in message_ids}
    if not message_ids:
        return summaries

    rows = db.session.query(Reaction, User.username).join(
        User, User.id == Reaction.user_id
    ).filter(
        Reaction.message_id.in_(message_ids)
    ).order_by(Reaction.created_at.asc(), Reaction.id.asc()).all()

    by_type = {}
    for reaction, username in rows:
        key = (reaction.message_id, reaction.reaction_type)
        entry = by_type.get(key)
        if entry is None:
            entry = {'reaction_type': reaction.reaction_type, 'count': 0, 'user_ids': [], 'users': []}
            by_type[key] = entry
            summaries[reaction.message_id].append(entry)
        entry['count'] += 1
        entry['user_ids'].append(reaction.user_id)
        entry['users'].append({'user_id': reaction.user_id, 'username': username})

    return summaries


def get_reaction_summary(message_id):
    return get_reaction_summaries([message_id])[message_id]


# ========== READ RECEIPTS ==========

def upsert_read_receipt(message_id, user_id):
    """Record that a user read a message. Returns (receipt, created)."""
    existing = ReadReceipt.query.filter_by(message_id=message_id, user_id=user_id).first()
    if existing:
        return existing, False

    def _add():
        receipt = ReadReceipt(message_id=message_id, user_id=user_id)
        db.session.add(receipt)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return ReadReceipt.query.filter_by(message_id=message_id, user_id=user_id).first(), False
        return receipt, True

    return with_retries(_add, 'read receipt')


def list_readers(message_id):
    return ReadReceipt.query.filter_by(message_id=message_id).order_by(
        ReadReceipt.read_at.asc(), ReadReceipt.id.asc()
    ).all()
