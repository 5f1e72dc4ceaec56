"""Room and message stores over Flask-SQLAlchemy.

The stores are the only code that touches the session. Driver errors are
rolled back and surfaced as StoreUnavailableError; conditional writes that
match no row surface as ConditionFailedError. Every successful write is
published on the ChangeFeed so realtime listeners see it.
"""
import logging
from collections import defaultdict

from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError

from errors import ConditionFailedError, NotFoundError, StoreUnavailableError
from models import db, Room, Message, TextMessage, MediaMessage

logger = logging.getLogger(__name__)


class ChangeFeed:
    """In-process push notification of row changes, keyed by room id."""

    def __init__(self):
        self._listeners = defaultdict(list)
        self._global = []

    def subscribe(self, room_id, callback):
        self._listeners[room_id].append(callback)

        def unsubscribe():
            if callback in self._listeners.get(room_id, []):
                self._listeners[room_id].remove(callback)
                if not self._listeners[room_id]:
                    del self._listeners[room_id]
        return unsubscribe

    def subscribe_all(self, callback):
        self._global.append(callback)
        return lambda: self._global.remove(callback) if callback in self._global else None

    def publish(self, room_id, event, payload):
        for callback in list(self._global) + list(self._listeners.get(room_id, [])):
            try:
                callback(room_id, event, payload)
            except Exception:
                # delivery is best-effort; one bad listener must not fail the write
                logger.exception(f"Change listener failed for {event} in room {room_id}")


def _conditions(model, precondition):
    clauses = []
    for column, expected in (precondition or {}).items():
        attr = getattr(model, column)
        clauses.append(attr.is_(None) if expected is None else attr == expected)
    return clauses


class _Store:
    def __init__(self, feed=None):
        self.feed = feed or ChangeFeed()

    def _commit(self, action):
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Store failure during {action}: {e}")
            raise StoreUnavailableError(f"Could not {action}") from e


class RoomStore(_Store):

    def create(self, **fields):
        room = Room(**fields)
        db.session.add(room)
        self._commit('create room')
        self.feed.publish(room.room_id, 'room_inserted', room.to_dict())
        return room

    def get_by_id(self, room_id):
        try:
            stmt = select(Room).filter_by(room_id=room_id).execution_options(populate_existing=True)
            room = db.session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreUnavailableError('Could not load room') from e
        if room is None:
            raise NotFoundError()
        return room

    def get_many(self, room_ids):
        if not room_ids:
            return []
        try:
            stmt = select(Room).where(Room.room_id.in_(room_ids)).execution_options(populate_existing=True)
            return list(db.session.execute(stmt).scalars())
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreUnavailableError('Could not load rooms') from e

    def update(self, room_id, fields, precondition=None):
        """Patch a room; with a precondition the write only lands if every
        named column still holds its expected value."""
        stmt = (
            update(Room)
            .where(Room.room_id == room_id, *_conditions(Room, precondition))
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        try:
            result = db.session.execute(stmt)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreUnavailableError('Could not update room') from e
        if result.rowcount == 0:
            db.session.rollback()
            # distinguish a missing row from a lost race
            self.get_by_id(room_id)
            raise ConditionFailedError()
        self._commit('update room')
        db.session.expire_all()
        room = self.get_by_id(room_id)
        self.feed.publish(room_id, 'room_updated', room.to_dict())
        return room

    def idle_before(self, cutoff):
        """Rooms still marked active whose last activity is older than cutoff."""
        stmt = select(Room).where(Room.status == 'active', Room.last_activity_at < cutoff)
        return list(db.session.execute(stmt).scalars())


class MessageStore(_Store):

    def insert(self, **fields):
        model = MediaMessage if fields.get('media_url') else TextMessage
        message = model(**fields)
        db.session.add(message)
        self._commit('send message')
        self.feed.publish(message.room_id, 'message_inserted', message.to_dict())
        return message

    def get(self, message_id):
        message = db.session.get(Message, message_id, populate_existing=True)
        if message is None:
            raise NotFoundError('Message not found', code='MESSAGE_NOT_FOUND')
        return message

    def list_by_room(self, room_id):
        stmt = (
            select(Message)
            .filter_by(room_id=room_id)
            .order_by(Message.created_at, Message.id)
            .execution_options(populate_existing=True)
        )
        try:
            return list(db.session.execute(stmt).scalars())
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreUnavailableError('Could not load messages') from e

    def update(self, message_id, fields, precondition=None):
        stmt = (
            update(Message)
            .where(Message.id == message_id, *_conditions(Message, precondition))
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        try:
            result = db.session.execute(stmt)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise StoreUnavailableError('Could not update message') from e
        if result.rowcount == 0:
            db.session.rollback()
            self.get(message_id)
            raise ConditionFailedError()
        self._commit('update message')
        db.session.expire_all()
        message = self.get(message_id)
        self.feed.publish(message.room_id, 'message_updated', message.to_dict())
        return message

    def delete_expired(self, now):
        """Physically remove messages whose countdown ran out. Returns the
        removed rows as (room_id, id) pairs."""
        stmt = select(Message.room_id, Message.id).where(Message.expires_at.is_not(None), Message.expires_at < now)
        expired = [tuple(row) for row in db.session.execute(stmt)]
        if expired:
            db.session.execute(delete(Message).where(Message.id.in_([mid for _, mid in expired])))
            self._commit('delete expired messages')
            for room_id, message_id in expired:
                self.feed.publish(room_id, 'message_deleted', {'id': message_id})
        return expired

    def delete_by_room(self, room_id):
        """Remove every message of a room. Returns the removed ids and the media
        urls they referenced."""
        messages = self.list_by_room(room_id)
        urls = [m.media_url for m in messages if m.media_url]
        message_ids = [m.id for m in messages]
        if message_ids:
            db.session.execute(delete(Message).where(Message.room_id == room_id))
            self._commit('purge room messages')
            for message_id in message_ids:
                self.feed.publish(room_id, 'message_deleted', {'id': message_id})
        return message_ids, urls
