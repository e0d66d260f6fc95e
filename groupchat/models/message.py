from datetime import datetime
from groupchat import db


IMAGE_PLACEHOLDER = '[Image]'


class Message(db.Model):
    """Message posted to a group"""
    __tablename__ = 'messages'

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey('groups.id'), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    # Position in the group's history, gap-free and never reused
    sequence = db.Column(db.Integer, nullable=False)

    # Message content
    content = db.Column(db.Text, nullable=True)  # Placeholder text for images
    message_type = db.Column(db.String(20), default='text', nullable=False)  # text, image
    file_url = db.Column(db.String(500), nullable=True)

    # Soft delete
    is_deleted = db.Column(db.Boolean, default=False, nullable=False)
    deleted_at = db.Column(db.DateTime)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    # Relationships
    sender = db.relationship('User', back_populates='messages_sent')
    group = db.relationship('Group', backref=db.backref('messages', lazy='dynamic'))

    __table_args__ = (
        db.UniqueConstraint('group_id', 'sequence', name='unique_group_sequence'),
    )

    def __repr__(self):
        return f'<Message id={self.id} group={self.group_id} seq={self.sequence}>'

    def is_image(self):
        return self.message_type == 'image'

    def to_dict(self, reactions=None):
        """
        Serialize for the API and for realtime events.

        Deleted messages keep their id and sequence but lose their content,
        so clients can still detect gaps in the history.
        """
        data = {
            'id': self.id,
            'group_id': self.group_id,
            'user_id': self.sender_id,
            'username': self.sender.username if self.sender else None,
            'content': None if self.is_deleted else self.content,
            'file_url': None if self.is_deleted else self.file_url,
            'message_type': self.message_type,
            'sequence': self.sequence,
            'is_deleted': self.is_deleted,
            'created_at': self.created_at.isoformat(),
        }
        if reactions is not None:
            data['reactions'] = reactions
        return data
