"""
Tests for registration, login and bearer token authentication
"""
from groupchat.models.api_token import ApiToken
from groupchat.models.user import User


class TestRegistration:
    """Test suite for account creation"""

    def test_user_registration(self, client, db_session):
        """Test user can register and gets a working token"""
        response = client.post('/api/auth/register', json={
            'username': 'newuser',
            'email': 'NewUser@Example.com',
            'password': 'SecurePass123!@#'
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['token']
        assert data['user']['username'] == 'newuser'
        assert data['user']['email'] == 'newuser@example.com'

        user = User.query.filter_by(email='newuser@example.com').first()
        assert user is not None
        assert user.check_password('SecurePass123!@#')
        assert user.password_hash != 'SecurePass123!@#'

    def test_weak_password_rejected(self, client, db_session):
        """Test that weak passwords are rejected"""
        response = client.post('/api/auth/register', json={
            'username': 'weak',
            'email': 'weak@example.com',
            'password': 'password'
        })

        assert response.status_code == 400
        assert response.get_json()['code'] == 'validation_error'
        assert User.query.filter_by(email='weak@example.com').first() is None

    def test_duplicate_email_conflicts(self, client, alice):
        """Test registering an existing email answers 409"""
        response = client.post('/api/auth/register', json={
            'username': 'alice2',
            'email': 'alice@example.com',
            'password': 'Test123!@#'
        })

        assert response.status_code == 409
        assert response.get_json()['code'] == 'conflict'

    def test_duplicate_username_conflicts(self, client, alice):
        response = client.post('/api/auth/register', json={
            'username': 'Alice',
            'email': 'other@example.com',
            'password': 'Test123!@#'
        })

        assert response.status_code == 409

    def test_invalid_email_rejected(self, client, db_session):
        response = client.post('/api/auth/register', json={
            'username': 'someone',
            'email': 'not-an-email',
            'password': 'Test123!@#'
        })

        assert response.status_code == 400


class TestLogin:
    """Test suite for login and token handling"""

    def test_user_login(self, client, alice):
        """Test user can login with correct credentials"""
        response = client.post('/api/auth/login', json={
            'email': 'alice@example.com',
            'password': 'Test123!@#'
        })

        assert response.status_code == 200
        data = response.get_json()
        assert data['token'] != alice.token
        assert data['user']['id'] == alice.id

    def test_user_login_wrong_password(self, client, alice):
        """Test login fails with wrong password"""
        response = client.post('/api/auth/login', json={
            'email': 'alice@example.com',
            'password': 'WrongPassword123!@#'
        })

        assert response.status_code == 401
        assert response.get_json()['code'] == 'auth_error'

    def test_me_requires_token(self, client, db_session):
        """Test protected routes answer 401 JSON without a token"""
        response = client.get('/api/auth/me')

        assert response.status_code == 401
        assert response.get_json()['code'] == 'auth_error'

    def test_me_with_token(self, client, alice):
        response = client.get('/api/auth/me', headers=alice.headers)

        assert response.status_code == 200
        assert response.get_json()['username'] == 'alice'

    def test_garbage_token_rejected(self, client, alice):
        response = client.get('/api/auth/me', headers={'Authorization': 'Bearer not-a-real-token'})
        assert response.status_code == 401

    def test_logout_revokes_token(self, client, alice):
        """Test the token used to log out stops working"""
        response = client.post('/api/auth/logout', headers=alice.headers)
        assert response.status_code == 200

        response = client.get('/api/auth/me', headers=alice.headers)
        assert response.status_code == 401

        api_token = ApiToken.query.filter_by(token=alice.token).first()
        assert api_token.revoked_at is not None

    def test_deactivated_account_cannot_login(self, client, alice, db_session):
        """Test soft-disabled accounts lose their tokens and cannot log in"""
        response = client.delete('/api/users/profile', headers=alice.headers)
        assert response.status_code == 200

        assert client.get('/api/auth/me', headers=alice.headers).status_code == 401

        response = client.post('/api/auth/login', json={
            'email': 'alice@example.com',
            'password': 'Test123!@#'
        })
        assert response.status_code == 401

        # The row is kept, only disabled
        assert db_session.get(User, alice.id).is_active is False
