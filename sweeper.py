"""Server-side expiry enforcement.

Clients hide expired content on their own clock; this sweep is the
authority that actually removes it, so a skewed client clock cannot keep
stale messages or rooms alive.
"""
import logging
from contextlib import nullcontext

from flask import has_app_context

from errors import ConditionFailedError, SixError
from lifecycle import CLOSED
from models import utcnow

logger = logging.getLogger(__name__)


class Sweeper:

    def __init__(self, app, socketio, interval=60):
        self.app = app
        self.socketio = socketio
        self.interval = interval
        self.stopped = False

    @property
    def services(self):
        return self.app.extensions['six']

    def sweep(self, now=None):
        now = now or utcnow()
        svc = self.services
        with app_context(self.app):
            expired = svc.messages.delete_expired(now)

            closed = []
            for room in svc.rooms.idle_before(now - svc.lifecycle.ttl):
                try:
                    svc.rooms.update(room.room_id, {'status': CLOSED}, precondition={'status': 'active'})
                except ConditionFailedError:
                    continue
                closed.append(room.room_id)

            # creator-closed rooms were already purged by the close itself
            purged = sum(purge_room(svc, room_id) for room_id in closed)

        if expired or closed or purged:
            logger.info(f"Sweep: {len(expired)} messages expired, {len(closed)} rooms closed, {purged} messages purged")
        return {'messages_expired': len(expired), 'rooms_closed': len(closed), 'messages_purged': purged}

    def run(self):
        while not self.stopped:
            try:
                self.sweep()
            except Exception:
                logger.exception('Sweep failed')
            self.socketio.sleep(self.interval)

    def start(self):
        logger.info(f"Starting sweeper every {self.interval}s")
        self.socketio.start_background_task(self.run)
        return self

    def stop(self):
        self.stopped = True


def app_context(app):
    """Reuse the caller's app context when there is one."""
    return nullcontext() if has_app_context() else app.app_context()


def purge_room(svc, room_id):
    """Drop a closed room's messages and their uploaded media. Returns how many
    messages went."""
    message_ids, urls = svc.messages.delete_by_room(room_id)
    for url in urls:
        try:
            svc.media.delete(url)
        except (OSError, SixError) as e:
            logger.warning(f"Could not delete media {url}: {e}")
    return len(message_ids)
