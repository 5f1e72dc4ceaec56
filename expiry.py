"""Read-triggered message expiry.

A message is born unread (text) or hidden (media) with no deadline. The first
read by the other party, or the reveal tap for media, stamps read_at and
expires_at = read_at + ttl exactly once. After that deadline the message is
treated as gone everywhere, whether or not its row still exists.
"""
import logging
from datetime import timedelta

from config import ALLOWED_MEDIA_TYPES
from errors import ConditionFailedError, InvalidRequestError
from models import utcnow

logger = logging.getLogger(__name__)

MEDIA_KINDS = set(ALLOWED_MEDIA_TYPES.values())


class MessageExpiryEngine:

    def __init__(self, messages, rooms, lifecycle, occupancy, ttl=timedelta(minutes=6)):
        self.messages = messages
        self.rooms = rooms
        self.lifecycle = lifecycle
        self.occupancy = occupancy
        self.ttl = ttl

    def _open_room(self, room_id, identity, now):
        room = self.rooms.get_by_id(room_id)
        self.lifecycle.ensure_active(room, now)
        self.occupancy.require_participant(room, identity)
        return room

    def send(self, room_id, sender, content=None, media_url=None, media_type=None, now=None):
        now = now or utcnow()
        self._open_room(room_id, sender, now)

        if media_url:
            if media_type not in MEDIA_KINDS:
                raise InvalidRequestError('media_type must be image or video')
        else:
            content = (content or '').strip()
            if not content:
                raise InvalidRequestError('Message cannot be empty')
            media_type = None

        message = self.messages.insert(
            room_id=room_id,
            sender=sender,
            content=content or None,
            media_url=media_url,
            media_type=media_type,
            created_at=now,
        )
        self.rooms.update(room_id, {'last_activity_at': now})
        logger.info(f"Message sent: room={room_id}, message={message.id}, kind={message.kind}")
        return message

    def _stamp(self, message_id, fields, precondition):
        try:
            return self.messages.update(message_id, fields, precondition=precondition)
        except ConditionFailedError:
            # someone else stamped it first; theirs is the only clock
            return self.messages.get(message_id)

    def mark_read(self, message_id, viewer, now=None):
        now = now or utcnow()
        message = self.messages.get(message_id)
        if message.is_expired(now) or not message.accepts_read(viewer):
            return message
        self._open_room(message.room_id, viewer, now)
        return self._stamp(
            message_id,
            {'is_read': True, 'read_at': now, 'expires_at': now + self.ttl},
            {'is_read': False},
        )

    def reveal(self, message_id, viewer, now=None):
        """Tap-to-reveal: opening hidden media is also the read."""
        now = now or utcnow()
        message = self.messages.get(message_id)
        if not message.is_media:
            raise InvalidRequestError('Only media messages can be revealed')
        if not message.accepts_reveal(viewer):
            return message
        self._open_room(message.room_id, viewer, now)
        return self._stamp(
            message_id,
            {'is_media_revealed': True, 'is_read': True, 'read_at': now, 'expires_at': now + self.ttl},
            {'is_media_revealed': False},
        )

    def is_expired(self, message, now=None):
        return message.is_expired(now)

    def visible(self, room_id, now=None):
        now = now or utcnow()
        return [m for m in self.messages.list_by_room(room_id) if not m.is_expired(now)]

    def acknowledge(self, room_id, viewer, now=None):
        """Everything the viewer has on screen counts as read, except their own
        messages and media still behind the reveal gate."""
        now = now or utcnow()
        self._open_room(room_id, viewer, now)
        read = []
        for message in self.visible(room_id, now):
            if message.accepts_read(viewer):
                read.append(self.mark_read(message.id, viewer, now))
        return read


def seconds_left(message, now=None):
    if message.expires_at is None:
        return None
    return max(0, int((message.expires_at - (now or utcnow())).total_seconds()))


def format_countdown(seconds):
    minutes, secs = divmod(seconds, 60)
    return f'{minutes}:{secs:02d}'
