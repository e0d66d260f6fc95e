"""
Tests for per-group sequence numbers under concurrent senders
"""
import threading

import pytest
from sqlalchemy.exc import OperationalError

from groupchat.errors import NotFoundError, TransientError
from groupchat.models.group import Group
from groupchat.models.message import Message
from groupchat.services import get_services, persistence


SENDERS = 4
MESSAGES_PER_SENDER = 5


class TestConcurrentSequencing:
    """Test suite for gap-free sequencing"""

    def test_concurrent_senders_get_gap_free_sequences(self, app, client, make_user, make_group, db_session):
        """Test N threads sending at once produce 1..N with no gaps or repeats"""
        users = [make_user(f'user{i}') for i in range(SENDERS)]
        group = make_group(users[0])
        for user in users[1:]:
            client.post(f"/api/groups/{group['id']}/join", headers=user.headers)

        errors = []
        start = threading.Barrier(SENDERS)

        def sender(user):
            with app.app_context():
                messages = get_services().messages
                start.wait()
                try:
                    for i in range(MESSAGES_PER_SENDER):
                        messages.send_message(group['id'], user.id, f'{user.username} #{i}')
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=sender, args=(user,)) for user in users]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert errors == []

        total = SENDERS * MESSAGES_PER_SENDER
        sequences = [m.sequence for m in Message.query.filter_by(group_id=group['id']).order_by(Message.sequence)]
        assert sequences == list(range(1, total + 1))

        db_session.expire_all()
        assert db_session.get(Group, group['id']).last_sequence == total

    def test_each_sender_sees_increasing_sequences(self, client, alice, make_group):
        group = make_group(alice)

        sequences = []
        for i in range(3):
            response = client.post(f"/api/messages/{group['id']}/send", json={'content': str(i)}, headers=alice.headers)
            sequences.append(response.get_json()['data']['sequence'])

        assert sequences == sorted(sequences)
        assert len(set(sequences)) == 3


class TestRetries:
    """Test suite for retrying transient database errors"""

    def test_transient_error_is_retried(self, app):
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise OperationalError('INSERT', {}, Exception('database is locked'))
            return 'done'

        assert persistence.with_retries(flaky, 'flaky write') == 'done'
        assert len(attempts) == 3

    def test_exhausted_retries_raise_transient_error(self, app):
        attempts = []

        def always_locked():
            attempts.append(1)
            raise OperationalError('INSERT', {}, Exception('database is locked'))

        with pytest.raises(TransientError):
            persistence.with_retries(always_locked, 'locked write')

        assert len(attempts) == app.config['DB_RETRY_ATTEMPTS']

    def test_unknown_group_is_not_retried(self, app, alice):
        with pytest.raises(NotFoundError):
            persistence.insert_message(424242, alice.id, 'nowhere')
