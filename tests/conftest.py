"""
Pytest configuration and fixtures for the group chat server tests
"""
from types import SimpleNamespace

import pytest
from flask import g
from flask.testing import FlaskClient
from groupchat import create_app, db, socketio
from groupchat.services import init_services, get_services


TEST_PASSWORD = 'Test123!@#'


class ApiTestClient(FlaskClient):
    """
    Requests reuse the session-wide app context, so Flask-Login's cached
    user on `g` has to be dropped before each request.
    """

    def open(self, *args, **kwargs):
        g.pop('_login_user', None)
        return super().open(*args, **kwargs)


@pytest.fixture(scope='session')
def app():
    """Create and configure a test application instance"""
    app = create_app('testing')
    app.test_client_class = ApiTestClient

    # Establish an application context
    ctx = app.app_context()
    ctx.push()

    yield app

    ctx.pop()


@pytest.fixture(scope='session')
def _db(app):
    """Create test database"""
    db.drop_all()
    db.create_all()
    yield db
    db.session.remove()


@pytest.fixture(scope='function', autouse=True)
def cleanup_db(app, _db):
    """Fresh services before each test, empty tables after it"""
    init_services(app)

    yield

    # Rollback any open transactions
    _db.session.remove()

    # SQLite has no TRUNCATE; delete children before parents
    for table in reversed(_db.metadata.sorted_tables):
        _db.session.execute(table.delete())
    _db.session.commit()


@pytest.fixture(scope='function')
def db_session(_db):
    """Provide the database session for tests"""
    return _db.session


@pytest.fixture
def services(app):
    return get_services()


@pytest.fixture
def client(app):
    """Create a test client"""
    return app.test_client()


@pytest.fixture
def make_user(client):
    """Register users through the API; returns their id, token and auth headers"""
    def _make(username, password=TEST_PASSWORD):
        response = client.post('/api/auth/register', json={
            'username': username,
            'email': f'{username}@example.com',
            'password': password
        })
        assert response.status_code == 201, response.get_json()
        data = response.get_json()
        return SimpleNamespace(
            id=data['user']['id'],
            username=username,
            token=data['token'],
            headers={'Authorization': f"Bearer {data['token']}"}
        )

    return _make


@pytest.fixture
def alice(make_user):
    return make_user('alice')


@pytest.fixture
def bob(make_user):
    return make_user('bob')


@pytest.fixture
def make_group(client):
    """Create a group through the API"""
    def _make(owner, name='Ops', description='ops channel'):
        response = client.post('/api/groups', json={'name': name, 'description': description},
                               headers=owner.headers)
        assert response.status_code == 201, response.get_json()
        return response.get_json()

    return _make


@pytest.fixture
def socket_client(app):
    """Open Socket.IO test connections; all of them are closed after the test"""
    clients = []

    def _connect(token=None):
        auth = {'token': token} if token else None
        ws = socketio.test_client(app, auth=auth)
        clients.append(ws)
        return ws

    yield _connect

    for ws in clients:
        if ws.is_connected():
            ws.disconnect()


@pytest.fixture
def events_named():
    """Helper returning the payloads of received Socket.IO events with a given name"""
    def _events_named(received, name):
        return [event['args'][0] for event in received if event['name'] == name]

    return _events_named
