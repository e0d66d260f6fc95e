from datetime import datetime
from flask_login import UserMixin
from groupchat import db, bcrypt, login_manager


@login_manager.request_loader
def load_user_from_request(request):
    """Load user from the `Authorization: Bearer <token>` header"""
    from groupchat.models.api_token import ApiToken

    token = ApiToken.from_authorization_header(request.headers.get('Authorization'))
    api_token = ApiToken.resolve(token)
    return api_token.user if api_token else None


class User(UserMixin, db.Model):
    """User model for authentication and profile"""
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    # Profile information
    display_name = db.Column(db.String(100))
    avatar_url = db.Column(db.String(500))
    bio = db.Column(db.String(500))

    # Device push token (Expo / FCM), delivery happens outside this service
    push_token = db.Column(db.String(255))

    # Status
    is_active = db.Column(db.Boolean, default=True, nullable=False)  # Soft-disable, users are never deleted
    status = db.Column(db.String(20), default='offline', nullable=False)  # online, offline
    last_seen = db.Column(db.DateTime, default=datetime.utcnow)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    memberships = db.relationship('GroupMembership', back_populates='user', lazy='dynamic')
    messages_sent = db.relationship('Message', back_populates='sender', lazy='dynamic')

    def __repr__(self):
        return f'<User {self.username}>'

    def set_password(self, password):
        """Hash and set the user's password"""
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        """Check if provided password matches the hash"""
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def full_name(self):
        """Get user's display name"""
        return self.display_name or self.username

    def to_dict(self, include_private=False):
        data = {
            'id': self.id,
            'username': self.username,
            'display_name': self.full_name,
            'avatar_url': self.avatar_url,
            'bio': self.bio,
            'status': self.status,
            'last_seen': self.last_seen.isoformat() if self.last_seen else None,
        }
        if include_private:
            data.update({
                'email': self.email,
                'push_token': self.push_token,
                'created_at': self.created_at.isoformat(),
            })
        return data
