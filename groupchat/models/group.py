from datetime import datetime
from groupchat import db


class Group(db.Model):
    """Chat group"""
    __tablename__ = 'groups'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    creator_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    # Highest sequence number handed out to a message in this group
    last_sequence = db.Column(db.Integer, default=0, nullable=False)

    # Timestamps
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    creator = db.relationship('User', foreign_keys=[creator_id])
    memberships = db.relationship('GroupMembership', back_populates='group', lazy='dynamic', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Group {self.name}>'

    @property
    def member_count(self):
        """Get number of members"""
        return self.memberships.count()

    def to_dict(self, member_count=None, is_member=None):
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'creator_id': self.creator_id,
            'creator_name': self.creator.full_name if self.creator else None,
            'member_count': self.member_count if member_count is None else member_count,
            'last_sequence': self.last_sequence,
            'created_at': self.created_at.isoformat(),
        }
        if is_member is not None:
            data['is_member'] = is_member
        return data


class GroupMembership(db.Model):
    """Association table for User-Group relationship with roles"""
    __tablename__ = 'group_memberships'

    id = db.Column(db.Integer, primary_key=True)
    group_id = db.Column(db.Integer, db.ForeignKey('groups.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    # Role within the group
    role = db.Column(db.String(20), nullable=False, default='member')  # owner, member

    joined_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    group = db.relationship('Group', back_populates='memberships')
    user = db.relationship('User', back_populates='memberships')

    # Unique constraint: one membership per user per group
    __table_args__ = (
        db.UniqueConstraint('group_id', 'user_id', name='unique_group_user'),
    )

    ROLE_OWNER = 'owner'
    ROLE_MEMBER = 'member'

    def __repr__(self):
        return f'<GroupMembership group_id={self.group_id} user_id={self.user_id} role={self.role}>'

    def is_owner(self):
        """Check if membership has owner role"""
        return self.role == self.ROLE_OWNER
