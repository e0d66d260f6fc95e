"""
Tests for sending, listing, searching and deleting messages
"""
import io

import pytest


@pytest.fixture
def ops(client, alice, bob, make_group):
    """Group owned by alice with bob as a member"""
    group = make_group(alice)
    client.post(f"/api/groups/{group['id']}/join", headers=bob.headers)
    return group


def send(client, user, group_id, content):
    return client.post(f'/api/messages/{group_id}/send', json={'content': content}, headers=user.headers)


class TestSendMessage:
    """Test suite for text messages"""

    def test_send_message(self, client, alice, ops):
        response = send(client, alice, ops['id'], 'hello')

        assert response.status_code == 201
        data = response.get_json()
        assert data['success'] is True
        message = data['data']
        assert message['content'] == 'hello'
        assert message['user_id'] == alice.id
        assert message['username'] == 'alice'
        assert message['sequence'] == 1
        assert message['reactions'] == []

    def test_sequence_increases_per_group(self, client, alice, bob, ops, make_group):
        """Test each group counts its own sequence from 1"""
        other = make_group(alice, 'Other')

        sequences = [send(client, alice, ops['id'], f'm{i}').get_json()['data']['sequence'] for i in range(3)]
        assert sequences == [1, 2, 3]

        assert send(client, alice, other['id'], 'first').get_json()['data']['sequence'] == 1
        assert send(client, bob, ops['id'], 'm3').get_json()['data']['sequence'] == 4

    @pytest.mark.parametrize('content', ['', '   ', None, 'x' * 10001])
    def test_invalid_content_rejected(self, client, alice, ops, content):
        response = send(client, alice, ops['id'], content)

        assert response.status_code == 400
        assert response.get_json()['code'] == 'validation_error'

    def test_non_member_forbidden(self, client, alice, make_user, ops):
        carol = make_user('carol')

        response = send(client, carol, ops['id'], 'hi')

        assert response.status_code == 403
        assert response.get_json()['code'] == 'forbidden'

    def test_unknown_group(self, client, alice):
        response = send(client, alice, 9999, 'hi')
        assert response.status_code == 404

    def test_send_broadcasts_to_room(self, client, alice, bob, ops, socket_client, events_named):
        """Test an HTTP send reaches every connection in the room, sender included"""
        bob_ws = socket_client(bob.token)
        alice_ws = socket_client(alice.token)
        bob_ws.emit('join_group', ops['id'], callback=True)
        alice_ws.emit('join_group', ops['id'], callback=True)
        bob_ws.get_received()
        alice_ws.get_received()

        send(client, alice, ops['id'], 'hello')

        for ws in (alice_ws, bob_ws):
            messages = events_named(ws.get_received(), 'new_message')
            assert len(messages) == 1
            assert messages[0]['content'] == 'hello'
            assert messages[0]['groupId'] == ops['id']


class TestImageMessages:
    """Test suite for image uploads"""

    def test_send_image(self, client, alice, ops):
        data = {'file': (io.BytesIO(b'\x89PNG\r\n\x1a\n' + b'0' * 64), 'photo.png')}

        response = client.post(f"/api/messages/{ops['id']}/send-image", data=data,
                               headers=alice.headers, content_type='multipart/form-data')

        assert response.status_code == 201
        message = response.get_json()['data']
        assert message['message_type'] == 'image'
        assert message['content'] == '[Image]'
        assert message['file_url'].startswith('/uploads/')

        # The local blob store serves what it stored
        stored = client.get(message['file_url'])
        assert stored.status_code == 200
        assert stored.data.startswith(b'\x89PNG')

    def test_image_field_name_accepted(self, client, alice, ops):
        data = {'image': (io.BytesIO(b'GIF89a' + b'0' * 16), 'anim.gif')}

        response = client.post(f"/api/messages/{ops['id']}/send-image", data=data,
                               headers=alice.headers, content_type='multipart/form-data')

        assert response.status_code == 201

    def test_bad_extension_rejected(self, client, alice, ops):
        data = {'file': (io.BytesIO(b'#!/bin/sh'), 'script.sh')}

        response = client.post(f"/api/messages/{ops['id']}/send-image", data=data,
                               headers=alice.headers, content_type='multipart/form-data')

        assert response.status_code == 400

    def test_missing_file_rejected(self, client, alice, ops):
        response = client.post(f"/api/messages/{ops['id']}/send-image", data={},
                               headers=alice.headers, content_type='multipart/form-data')
        assert response.status_code == 400

    def test_failed_upload_is_transient(self, client, alice, ops, services, monkeypatch):
        """Test blob store outages surface as 503 after retries and persist nothing"""
        calls = []

        def broken_store(data, filename):
            calls.append(filename)
            raise OSError('disk unavailable')

        monkeypatch.setattr(services.messages.blob_store, 'store', broken_store)
        monkeypatch.setattr(services.messages, 'blob_retry_base_delay', 0)

        data = {'file': (io.BytesIO(b'\x89PNG' + b'0' * 8), 'photo.png')}
        response = client.post(f"/api/messages/{ops['id']}/send-image", data=data,
                               headers=alice.headers, content_type='multipart/form-data')

        assert response.status_code == 503
        assert response.get_json()['code'] == 'transient_error'
        assert len(calls) == services.messages.blob_retry_attempts

        history = client.get(f"/api/messages/{ops['id']}", headers=alice.headers).get_json()
        assert history == []


class TestHistory:
    """Test suite for message history"""

    def test_history_in_sequence_order(self, client, alice, ops):
        for i in range(5):
            send(client, alice, ops['id'], f'm{i}')

        response = client.get(f"/api/messages/{ops['id']}", headers=alice.headers)

        assert response.status_code == 200
        messages = response.get_json()
        assert [m['content'] for m in messages] == ['m0', 'm1', 'm2', 'm3', 'm4']
        assert [m['sequence'] for m in messages] == [1, 2, 3, 4, 5]

    def test_limit_and_offset_page_from_newest(self, client, alice, ops):
        """Test limit returns the newest messages, offset skips the newest ones"""
        for i in range(5):
            send(client, alice, ops['id'], f'm{i}')

        latest = client.get(f"/api/messages/{ops['id']}?limit=2", headers=alice.headers).get_json()
        assert [m['content'] for m in latest] == ['m3', 'm4']

        older = client.get(f"/api/messages/{ops['id']}?limit=2&offset=2", headers=alice.headers).get_json()
        assert [m['content'] for m in older] == ['m1', 'm2']

    def test_after_sequence_fills_gaps(self, client, alice, ops):
        for i in range(4):
            send(client, alice, ops['id'], f'm{i}')

        response = client.get(f"/api/messages/{ops['id']}?after_sequence=2", headers=alice.headers)

        assert [m['sequence'] for m in response.get_json()] == [3, 4]

    def test_invalid_paging_params(self, client, alice, ops):
        response = client.get(f"/api/messages/{ops['id']}?limit=abc", headers=alice.headers)
        assert response.status_code == 400

    def test_history_requires_membership(self, client, make_user, ops):
        carol = make_user('carol')

        response = client.get(f"/api/messages/{ops['id']}", headers=carol.headers)
        assert response.status_code == 403

    def test_search(self, client, alice, bob, ops):
        send(client, alice, ops['id'], 'deploy at noon')
        send(client, bob, ops['id'], 'lunch?')
        send(client, bob, ops['id'], 'Deploy done')

        response = client.get(f"/api/messages/{ops['id']}/search?q=deploy", headers=alice.headers)

        assert response.status_code == 200
        assert [m['content'] for m in response.get_json()] == ['Deploy done', 'deploy at noon']

    def test_search_escapes_wildcards(self, client, alice, ops):
        send(client, alice, ops['id'], 'hello')

        response = client.get(f"/api/messages/{ops['id']}/search?q=%25", headers=alice.headers)
        assert response.get_json() == []

    def test_search_requires_query(self, client, alice, ops):
        response = client.get(f"/api/messages/{ops['id']}/search", headers=alice.headers)
        assert response.status_code == 400


class TestDeleteMessage:
    """Test suite for soft delete"""

    def test_sender_can_delete(self, client, bob, ops):
        message = send(client, bob, ops['id'], 'oops').get_json()['data']

        response = client.delete(f"/api/messages/{message['id']}", headers=bob.headers)

        assert response.status_code == 200
        assert response.get_json()['data']['is_deleted'] is True

    def test_owner_can_delete_others_messages(self, client, alice, bob, ops):
        message = send(client, bob, ops['id'], 'spam').get_json()['data']

        response = client.delete(f"/api/messages/{message['id']}", headers=alice.headers)
        assert response.status_code == 200

    def test_member_cannot_delete_others_messages(self, client, alice, bob, ops):
        message = send(client, alice, ops['id'], 'keep me').get_json()['data']

        response = client.delete(f"/api/messages/{message['id']}", headers=bob.headers)

        assert response.status_code == 403

    def test_deleted_message_is_tombstone_in_history(self, client, alice, ops, socket_client, events_named):
        """Test deleted messages keep their sequence but lose their content"""
        ws = socket_client(alice.token)
        ws.emit('join_group', ops['id'], callback=True)

        send(client, alice, ops['id'], 'first')
        second = send(client, alice, ops['id'], 'second').get_json()['data']
        send(client, alice, ops['id'], 'third')
        ws.get_received()

        client.delete(f"/api/messages/{second['id']}", headers=alice.headers)

        history = client.get(f"/api/messages/{ops['id']}", headers=alice.headers).get_json()
        assert [m['sequence'] for m in history] == [1, 2, 3]
        assert history[1]['is_deleted'] is True
        assert history[1]['content'] is None

        deleted = events_named(ws.get_received(), 'message_deleted')
        assert deleted == [{'groupId': ops['id'], 'messageId': second['id'], 'sequence': 2}]

        # Deleted messages never show up in search
        results = client.get(f"/api/messages/{ops['id']}/search?q=second", headers=alice.headers).get_json()
        assert results == []


class TestReadReceipts:
    """Test suite for read state"""

    def test_mark_read_is_idempotent(self, client, alice, bob, ops, socket_client, events_named):
        message = send(client, alice, ops['id'], 'read me').get_json()['data']

        ws = socket_client(alice.token)
        ws.emit('join_group', ops['id'], callback=True)
        ws.get_received()

        first = client.post(f"/api/messages/{message['id']}/read", headers=bob.headers)
        second = client.post(f"/api/messages/{message['id']}/read", headers=bob.headers)

        assert first.get_json()['created'] is True
        assert second.get_json()['created'] is False

        readers = client.get(f"/api/messages/{message['id']}/readers", headers=alice.headers).get_json()
        assert [r['user_id'] for r in readers] == [bob.id]

        receipts = events_named(ws.get_received(), 'read_receipt')
        assert len(receipts) == 1
        assert receipts[0]['userId'] == bob.id

    def test_readers_require_membership(self, client, alice, make_user, ops):
        message = send(client, alice, ops['id'], 'secret').get_json()['data']
        carol = make_user('carol')

        response = client.get(f"/api/messages/{message['id']}/readers", headers=carol.headers)
        assert response.status_code == 403
