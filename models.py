from flask_sqlalchemy import SQLAlchemy
from datetime import datetime, timezone
import uuid

db = SQLAlchemy()


def utcnow():
    # naive UTC, matching what SQLite hands back for DateTime columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    return value.isoformat() + 'Z' if value else None


class Room(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))  # UUID
    name = db.Column(db.String(30))
    creator_identity = db.Column(db.String(64), nullable=False)
    creator_color = db.Column(db.String(7), nullable=False)
    guest_identity = db.Column(db.String(64))
    guest_color = db.Column(db.String(7))
    status = db.Column(db.String(10), nullable=False, default='active')
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    last_activity_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @property
    def is_full(self):
        return self.guest_identity is not None

    def role_of(self, identity):
        if identity == self.creator_identity:
            return 'creator'
        if identity is not None and identity == self.guest_identity:
            return 'guest'
        return None

    def to_dict(self):
        return {
            'id': self.room_id,
            'name': self.name,
            'creator_uuid': self.creator_identity,
            'creator_color': self.creator_color,
            'guest_uuid': self.guest_identity,
            'guest_color': self.guest_color,
            'status': self.status,
            'created_at': isoformat(self.created_at),
            'last_activity_at': isoformat(self.last_activity_at),
        }


class Message(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.String(36), db.ForeignKey('room.room_id'), nullable=False, index=True)
    kind = db.Column(db.String(10), nullable=False)
    sender = db.Column(db.String(64), nullable=False)
    content = db.Column(db.Text)
    media_url = db.Column(db.String(500))
    media_type = db.Column(db.String(10))
    is_media_revealed = db.Column(db.Boolean, nullable=False, default=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime)
    expires_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __mapper_args__ = {'polymorphic_on': kind}

    is_media = False

    def is_expired(self, now=None):
        return self.expires_at is not None and (now or utcnow()) > self.expires_at

    def accepts_read(self, viewer):
        return viewer != self.sender and not self.is_read

    def to_dict(self):
        return {
            'id': self.id,
            'room_id': self.room_id,
            'kind': self.kind,
            'sender_uuid': self.sender,
            'content': self.content,
            'is_read': self.is_read,
            'read_at': isoformat(self.read_at),
            'expires_at': isoformat(self.expires_at),
            'created_at': isoformat(self.created_at),
        }


class TextMessage(Message):
    __mapper_args__ = {'polymorphic_identity': 'text'}


class MediaMessage(Message):
    """Image or video behind a tap-to-reveal gate.

    Hidden media is never auto-read; revealing it is what starts the read
    countdown.
    """
    __mapper_args__ = {'polymorphic_identity': 'media'}

    is_media = True

    def accepts_read(self, viewer):
        return self.is_media_revealed and super().accepts_read(viewer)

    def accepts_reveal(self, viewer):
        return viewer != self.sender and not self.is_media_revealed

    def to_dict(self):
        data = super().to_dict()
        data.update({
            'media_url': self.media_url,
            'media_type': self.media_type,
            'is_media_revealed': self.is_media_revealed,
        })
        return data
