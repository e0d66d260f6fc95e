"""
Tests for presence tracking
"""
import pytest

from groupchat.models.user import User
from groupchat.services import persistence
from groupchat.services.group_service import GroupManager
from groupchat.services.presence import PresenceTracker


class TestPresenceTracker:
    """Test suite for connection counting"""

    def test_crossings_reported_once(self):
        tracker = PresenceTracker()

        assert tracker.connect(1) is True
        assert tracker.connect(1) is False
        assert tracker.count(1) == 2

        assert tracker.disconnect(1) is False
        assert tracker.is_online(1) is True
        assert tracker.disconnect(1) is True
        assert tracker.is_online(1) is False

    def test_extra_disconnect_is_ignored(self):
        tracker = PresenceTracker()

        assert tracker.disconnect(7) is False
        assert tracker.count(7) == 0
        assert tracker.online_user_ids() == []


class TestPresenceBroadcast:
    """Test suite for presence_update fan-out"""

    @pytest.fixture
    def watched_group(self, client, alice, bob, make_group, socket_client):
        """A group alice watches over a socket, with bob as a member"""
        group = make_group(alice)
        client.post(f"/api/groups/{group['id']}/join", headers=bob.headers)

        watcher = socket_client(alice.token)
        watcher.emit('join_group', group['id'], callback=True)
        watcher.get_received()
        return group, watcher

    def test_one_update_per_crossing(self, bob, watched_group, socket_client, events_named, db_session):
        """Test two connections of one user produce exactly one online and one offline update"""
        group, watcher = watched_group

        def bob_updates():
            return [e for e in events_named(watcher.get_received(), 'presence_update') if e['userId'] == bob.id]

        first = socket_client(bob.token)
        assert [e['status'] for e in bob_updates()] == ['online']

        second = socket_client(bob.token)
        assert bob_updates() == []

        first.disconnect()
        assert bob_updates() == []
        db_session.expire_all()
        assert db_session.get(User, bob.id).status == 'online'

        second.disconnect()
        updates = bob_updates()
        assert [e['status'] for e in updates] == ['offline']
        assert updates[0]['groupId'] == group['id']

        db_session.expire_all()
        assert db_session.get(User, bob.id).status == 'offline'

    def test_reauthenticating_same_connection_keeps_count(self, bob, watched_group, socket_client, events_named, services):
        """Test an explicit authenticate after the handshake token does not count twice"""
        group, watcher = watched_group

        ws = socket_client(bob.token)
        ack = ws.emit('authenticate', bob.token, callback=True)

        assert ack['ok'] is True
        assert services.presence.count(bob.id) == 1

        ws.disconnect()
        assert services.presence.is_online(bob.id) is False
        statuses = [e['status'] for e in events_named(watcher.get_received(), 'presence_update') if e['userId'] == bob.id]
        assert statuses == ['online', 'offline']

    def test_presence_endpoints(self, client, alice, bob, watched_group, socket_client):
        group, watcher = watched_group
        socket_client(bob.token)

        contacts = client.get('/api/users/presence', headers=alice.headers).get_json()
        assert {c['username']: c['status'] for c in contacts} == {'bob': 'online'}

        members = client.get(f"/api/users/groups/{group['id']}/presence", headers=alice.headers).get_json()
        assert {m['username']: m['status'] for m in members} == {'alice': 'online', 'bob': 'online'}


class TestStoredPresence:
    """Test suite for the persisted status versus live connections"""

    @pytest.fixture
    def ops(self, client, alice, bob, make_group):
        group = make_group(alice)
        client.post(f"/api/groups/{group['id']}/join", headers=bob.headers)
        return group

    def test_stale_stored_status_ignored_on_single_instance(self, client, alice, bob, ops, services):
        """Test a status left online by a crashed process does not count without live connections"""
        persistence.set_presence_status(bob.id, 'online')
        assert services.presence.count(bob.id) == 0

        members = client.get(f"/api/groups/{ops['id']}/members", headers=alice.headers).get_json()
        assert {m['username']: m['status'] for m in members} == {'alice': 'offline', 'bob': 'offline'}

        contacts = client.get('/api/users/presence', headers=alice.headers).get_json()
        assert [c['status'] for c in contacts] == ['offline']

    def test_stored_status_counts_with_shared_backplane(self, bob, ops, services):
        """Test peer instances' connections show up through the stored status"""
        persistence.set_presence_status(bob.id, 'online')
        manager = GroupManager(services.realtime, shared_presence=True)

        members = {m['username']: m['status'] for m in manager.get_members_with_presence(ops['id'])}
        assert members['bob'] == 'online'
