"""Client-side ledger of rooms this identity has visited.

The ledger runs on its own clock: an entry is dropped 6 hours after its last
message (or last visit when no message was seen), independent of what the
server thinks of the room. Storage trouble never surfaces to the caller.
"""
import logging
from dataclasses import dataclass, asdict, replace
from datetime import datetime, timedelta
from typing import Optional

from errors import StorageUnavailable
from models import utcnow
from storage import LocalStorage

logger = logging.getLogger(__name__)

STORAGE_KEY = 'six_room_history'

# missing storage or a malformed stored list
UNREADABLE = (StorageUnavailable, KeyError, ValueError, TypeError, AttributeError)


def _parse(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value.rstrip('Z'))


@dataclass
class HistoryEntry:
    room_id: str
    created_at: datetime
    last_visited_at: datetime
    is_creator: bool
    color: str
    last_message_at: Optional[datetime] = None
    room_name: Optional[str] = None

    @property
    def last_activity_at(self):
        return self.last_message_at or self.last_visited_at

    def to_dict(self):
        data = asdict(self)
        for key in ('created_at', 'last_visited_at', 'last_message_at'):
            data[key] = data[key].isoformat() if data[key] else None
        return data

    @classmethod
    def from_dict(cls, data):
        return cls(
            room_id=data['room_id'],
            created_at=_parse(data['created_at']),
            last_visited_at=_parse(data['last_visited_at']),
            is_creator=bool(data.get('is_creator')),
            color=data.get('color'),
            last_message_at=_parse(data.get('last_message_at')),
            room_name=data.get('room_name'),
        )


class RoomHistory:

    def __init__(self, storage, limit=10, ttl=timedelta(hours=6)):
        self.storage = storage
        self.limit = limit
        self.ttl = ttl

    @classmethod
    def from_config(cls, config, storage=None):
        storage = storage or LocalStorage.from_config(config)
        return cls(storage, config['HISTORY_LIMIT'], config['HISTORY_TTL'])

    def _read(self):
        raw = self.storage.get_item(STORAGE_KEY) or []
        return [HistoryEntry.from_dict(item) for item in raw]

    def _write(self, entries):
        self.storage.set_item(STORAGE_KEY, [entry.to_dict() for entry in entries])

    def _sweep(self, now):
        entries = self._read()
        alive = [e for e in entries if now - e.last_activity_at < self.ttl]
        if len(alive) != len(entries):
            self._write(alive)
        return sorted(alive, key=lambda e: e.last_visited_at, reverse=True)

    def list(self, now=None):
        try:
            return self._sweep(now or utcnow())
        except UNREADABLE as e:
            logger.warning(f"Room history unreadable: {e}")
            return []

    def record_visit(self, room_id, created_at, is_creator, color, room_name=None, now=None):
        now = now or utcnow()
        try:
            entries = self._sweep(now)
            existing = next((e for e in entries if e.room_id == room_id), None)
            if existing:
                updated = replace(
                    existing,
                    created_at=created_at,
                    last_visited_at=now,
                    is_creator=is_creator,
                    color=color,
                    room_name=room_name or existing.room_name,
                )
                entries = [updated if e is existing else e for e in entries]
            else:
                entries.append(HistoryEntry(room_id, created_at, now, is_creator, color, room_name=room_name))
            entries.sort(key=lambda e: e.last_visited_at, reverse=True)
            self._write(entries[:self.limit])
        except UNREADABLE as e:
            logger.warning(f"Could not record visit to {room_id}: {e}")

    def _patch(self, room_id, now=None, **fields):
        try:
            entries = self._sweep(now or utcnow())
            if not any(e.room_id == room_id for e in entries):
                return
            self._write([replace(e, **fields) if e.room_id == room_id else e for e in entries])
        except UNREADABLE as e:
            logger.warning(f"Could not update history for {room_id}: {e}")

    def record_message_activity(self, room_id, timestamp=None, now=None):
        self._patch(room_id, now=now, last_message_at=timestamp or utcnow())

    def update_color(self, room_id, color):
        self._patch(room_id, color=color)

    def update_name(self, room_id, name):
        self._patch(room_id, room_name=name)

    def remove(self, room_id, now=None):
        try:
            entries = self._sweep(now or utcnow())
            self._write([e for e in entries if e.room_id != room_id])
        except UNREADABLE as e:
            logger.warning(f"Could not remove {room_id} from history: {e}")

    def clear(self):
        try:
            self.storage.remove_item(STORAGE_KEY)
        except StorageUnavailable as e:
            logger.warning(f"Could not clear room history: {e}")
