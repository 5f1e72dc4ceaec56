"""Best-effort realtime signals: typing notices and per-view room countdowns.

Nothing here is persisted or acknowledged. A partner who is not connected
simply misses the signal.
"""
import logging
import time

from lifecycle import format_remaining
from models import utcnow
from sweeper import app_context

logger = logging.getLogger(__name__)


class TypingSignal:

    def __init__(self, socketio, interval=0.5, clock=time.monotonic):
        self.socketio = socketio
        self.interval = interval
        self.clock = clock
        self._last_sent = {}
        self._sessions = {}

    def allow(self, room_id, identity, now=None):
        now = self.clock() if now is None else now
        key = (room_id, identity)
        last = self._last_sent.get(key)
        if last is not None and now - last < self.interval:
            return False
        self._last_sent[key] = now
        return True

    def broadcast(self, room_id, identity, color, skip_sid=None, now=None):
        if not self.allow(room_id, identity, now):
            return False
        self.socketio.emit('typing', {'room': room_id, 'identity': identity, 'color': color},
                           to=room_id, skip_sid=skip_sid)
        return True

    def forget(self, room_id, identity):
        self._last_sent.pop((room_id, identity), None)

    def bind(self, sid, room_id, identity):
        self._sessions.setdefault(sid, set()).add((room_id, identity))

    def release(self, sid):
        """Drop throttle state for everything a disconnected socket joined as."""
        for room_id, identity in self._sessions.pop(sid, ()):
            self.forget(room_id, identity)


class RoomWatcher:
    """Periodic re-evaluation of one room for one connected view.

    Emits room_status to the owning socket every tick until stopped or until
    the room closes.
    """

    def __init__(self, app, socketio, rooms, lifecycle, room_id, sid, interval=60):
        self.app = app
        self.socketio = socketio
        self.rooms = rooms
        self.lifecycle = lifecycle
        self.room_id = room_id
        self.sid = sid
        self.interval = interval
        self.stopped = False

    def tick(self, now=None):
        """Emit one status update; returns False once the room is closed."""
        with app_context(self.app):
            room = self.rooms.get_by_id(self.room_id)
            remaining = self.lifecycle.remaining_time(room, now or utcnow())
            closed = self.lifecycle.is_closed(room, now)
        self.socketio.emit('room_status', {
            'room': self.room_id,
            'remaining_seconds': int(remaining.total_seconds()),
            'closed': closed,
            'label': format_remaining(remaining),
        }, to=self.sid)
        return not closed

    def run(self):
        while not self.stopped:
            try:
                if not self.tick():
                    break
            except Exception:
                logger.exception(f"Room watcher failed for room {self.room_id}")
                break
            self.socketio.sleep(self.interval)

    def start(self):
        self.socketio.start_background_task(self.run)
        return self

    def stop(self):
        self.stopped = True


class WatcherRegistry:
    """Watchers keyed by socket id so a view's tasks die with the view."""

    def __init__(self):
        self._watchers = {}

    def add(self, watcher):
        self.remove(watcher.sid, watcher.room_id)
        self._watchers[(watcher.sid, watcher.room_id)] = watcher
        return watcher

    def remove(self, sid, room_id):
        watcher = self._watchers.pop((sid, room_id), None)
        if watcher:
            watcher.stop()

    def remove_sid(self, sid):
        for key in [k for k in self._watchers if k[0] == sid]:
            self._watchers.pop(key).stop()

    def __len__(self):
        return len(self._watchers)
