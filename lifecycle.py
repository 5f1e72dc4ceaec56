"""Room lifetime under the rolling-activity policy.

A room closes once ROOM_TTL has passed since its last activity (creation,
guest join or any message send), or as soon as it is explicitly marked
closed. Closure is one-way and derived on every read; nothing here writes.
"""
from datetime import timedelta

from errors import ExpiredError
from models import utcnow

ACTIVE = 'active'
CLOSED = 'closed'


class RoomLifecycle:

    def __init__(self, ttl=timedelta(hours=6)):
        self.ttl = ttl

    def closes_at(self, room):
        return room.last_activity_at + self.ttl

    def is_closed(self, room, now=None):
        if room.status == CLOSED:
            return True
        return (now or utcnow()) > self.closes_at(room)

    def status(self, room, now=None):
        return CLOSED if self.is_closed(room, now) else ACTIVE

    def remaining_time(self, room, now=None):
        if room.status == CLOSED:
            return timedelta(0)
        return max(timedelta(0), self.closes_at(room) - (now or utcnow()))

    def ensure_active(self, room, now=None):
        if self.is_closed(room, now):
            raise ExpiredError()
        return room

    def describe(self, room, now=None):
        """Room payload with its derived lifecycle fields."""
        now = now or utcnow()
        data = room.to_dict()
        remaining = self.remaining_time(room, now)
        data.update({
            'status': self.status(room, now),
            'closes_at': self.closes_at(room).isoformat() + 'Z',
            'remaining_seconds': int(remaining.total_seconds()),
        })
        return data


def format_remaining(delta):
    seconds = int(delta.total_seconds())
    if seconds <= 0:
        return 'closed'
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes = seconds // 60
    if days > 0:
        return f'{days}d {hours}h'
    if hours > 0:
        return f'{hours}h {minutes}m'
    return f'{minutes}m'
