"""
API Token Model
Opaque bearer tokens issued at login and registration
"""
from datetime import datetime, timedelta
import secrets
from groupchat import db


class ApiToken(db.Model):
    """Bearer token presented by HTTP and Socket.IO clients"""

    __tablename__ = 'api_tokens'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    token = db.Column(db.String(255), unique=True, nullable=False, index=True)

    # Expiry and revocation
    expires_at = db.Column(db.DateTime, nullable=False)
    revoked_at = db.Column(db.DateTime)
    last_used_at = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    user = db.relationship('User', backref=db.backref('api_tokens', lazy='dynamic'))

    def __repr__(self):
        return f'<ApiToken user_id={self.user_id}>'

    @staticmethod
    def from_authorization_header(header):
        """Extract the token from an `Authorization: Bearer <token>` header value"""
        scheme, _, token = (header or '').partition(' ')
        if scheme.lower() != 'bearer' or not token.strip():
            return None
        return token.strip()

    @staticmethod
    def generate_token():
        """Generate a secure random token"""
        return secrets.token_urlsafe(32)

    @classmethod
    def create_for(cls, user, expires_in_days=30):
        """Create a new token for a user with automatic expiry"""
        return cls(
            user_id=user.id,
            token=cls.generate_token(),
            expires_at=datetime.utcnow() + timedelta(days=expires_in_days)
        )

    @classmethod
    def resolve(cls, token):
        """
        Look up a usable token.

        Returns:
            ApiToken if the token exists, is not expired or revoked and its
            user is active, otherwise None
        """
        if not token:
            return None
        api_token = cls.query.filter_by(token=token).first()
        if not api_token or not api_token.is_valid():
            return None
        if not api_token.user or not api_token.user.is_active:
            return None
        return api_token

    def is_expired(self):
        return datetime.utcnow() > self.expires_at

    def is_valid(self):
        return self.revoked_at is None and not self.is_expired()

    def revoke(self):
        self.revoked_at = datetime.utcnow()
