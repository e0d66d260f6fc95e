"""
Tests for message reactions
"""
import pytest


THUMBS_UP = '\U0001F44D'
HEART = '❤️'


@pytest.fixture
def message(client, alice, bob, make_group):
    """A message from alice in a group bob belongs to"""
    group = make_group(alice)
    client.post(f"/api/groups/{group['id']}/join", headers=bob.headers)
    response = client.post(f"/api/messages/{group['id']}/send", json={'content': 'hello'}, headers=alice.headers)
    return response.get_json()['data']


def react(client, user, message_id, reaction_type, method='post'):
    return getattr(client, method)(f'/api/messages/{message_id}/react',
                                   json={'reactionType': reaction_type}, headers=user.headers)


class TestReactions:
    """Test suite for adding, removing and summarizing reactions"""

    def test_add_reaction(self, client, bob, message):
        response = react(client, bob, message['id'], THUMBS_UP)

        assert response.status_code == 200
        data = response.get_json()
        assert data['changed'] is True
        assert data['reactions'] == [{
            'reaction_type': THUMBS_UP,
            'count': 1,
            'user_ids': [bob.id],
            'users': [{'user_id': bob.id, 'username': 'bob'}]
        }]

    def test_adding_twice_does_not_double_count(self, client, bob, message):
        react(client, bob, message['id'], THUMBS_UP)
        response = react(client, bob, message['id'], THUMBS_UP)

        data = response.get_json()
        assert data['changed'] is False
        assert data['reactions'][0]['count'] == 1

    def test_add_then_remove_restores_prior_set(self, client, alice, bob, message):
        react(client, alice, message['id'], HEART)
        before = client.get(f"/api/messages/{message['id']}/reactions", headers=alice.headers).get_json()

        react(client, bob, message['id'], THUMBS_UP)
        response = react(client, bob, message['id'], THUMBS_UP, method='delete')

        assert response.get_json()['changed'] is True
        after = client.get(f"/api/messages/{message['id']}/reactions", headers=alice.headers).get_json()
        assert after == before

    def test_removing_absent_reaction_is_noop(self, client, bob, message):
        response = react(client, bob, message['id'], THUMBS_UP, method='delete')

        assert response.status_code == 200
        assert response.get_json()['changed'] is False
        assert response.get_json()['reactions'] == []

    def test_distinct_reaction_types_per_user(self, client, bob, message):
        """Test one user may hold several different reactions on a message"""
        react(client, bob, message['id'], THUMBS_UP)
        response = react(client, bob, message['id'], HEART)

        reactions = response.get_json()['reactions']
        assert [r['reaction_type'] for r in reactions] == [THUMBS_UP, HEART]
        assert all(r['user_ids'] == [bob.id] for r in reactions)

    def test_summary_ordered_by_first_reaction(self, client, alice, bob, message):
        react(client, bob, message['id'], HEART)
        react(client, alice, message['id'], THUMBS_UP)
        react(client, alice, message['id'], HEART)

        reactions = client.get(f"/api/messages/{message['id']}/reactions", headers=bob.headers).get_json()

        assert [r['reaction_type'] for r in reactions] == [HEART, THUMBS_UP]
        assert reactions[0]['user_ids'] == [bob.id, alice.id]
        assert reactions[0]['count'] == 2

    def test_history_includes_reactions(self, client, alice, bob, message):
        react(client, bob, message['id'], THUMBS_UP)

        history = client.get(f"/api/messages/{message['group_id']}", headers=alice.headers).get_json()

        assert history[0]['reactions'][0]['user_ids'] == [bob.id]

    def test_reaction_required(self, client, bob, message):
        response = react(client, bob, message['id'], '')
        assert response.status_code == 400

    def test_non_member_cannot_react(self, client, make_user, message):
        carol = make_user('carol')

        response = react(client, carol, message['id'], THUMBS_UP)
        assert response.status_code == 403

    def test_unknown_message(self, client, bob, message):
        response = react(client, bob, 99999, THUMBS_UP)
        assert response.status_code == 404

    def test_reaction_update_broadcast(self, client, alice, bob, message, socket_client, events_named):
        """Test the broadcast carries the full summary snapshot"""
        ws = socket_client(alice.token)
        ws.emit('join_group', message['group_id'], callback=True)
        ws.get_received()

        react(client, bob, message['id'], THUMBS_UP)
        react(client, bob, message['id'], THUMBS_UP)

        updates = events_named(ws.get_received(), 'reaction_update')
        assert len(updates) == 1
        assert updates[0]['messageId'] == message['id']
        assert updates[0]['reactionType'] == THUMBS_UP
        assert updates[0]['action'] == 'add'
        assert updates[0]['reactions'][0]['count'] == 1
