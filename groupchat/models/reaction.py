from datetime import datetime
from groupchat import db


class Reaction(db.Model):
    """Emoji reaction of a user on a message"""
    __tablename__ = 'reactions'

    id = db.Column(db.Integer, primary_key=True)
    message_id = db.Column(db.Integer, db.ForeignKey('messages.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    reaction_type = db.Column(db.String(32), nullable=False)  # Unicode emoji
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    message = db.relationship('Message', backref=db.backref('reactions', lazy='dynamic'))
    user = db.relationship('User')

    # A user can hold several different reactions on a message, each only once
    __table_args__ = (
        db.UniqueConstraint('message_id', 'user_id', 'reaction_type', name='unique_message_user_reaction'),
    )

    def __repr__(self):
        return f'<Reaction {self.reaction_type} message_id={self.message_id} user_id={self.user_id}>'
