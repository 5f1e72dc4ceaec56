"""Two-slot admission for rooms: one creator, at most one guest."""
import logging

from config import SIX_COLORS, DEFAULT_CREATOR_COLOR, DEFAULT_GUEST_COLOR, ROOM_NAME_MAX_LENGTH
from errors import ConditionFailedError, InvalidRequestError, NotParticipantError, RoomFullError
from lifecycle import CLOSED
from models import utcnow

logger = logging.getLogger(__name__)

MAX_JOIN_ROUNDS = 3


def _color(color, default):
    if not color:
        return default
    color = color.lower()
    if color not in SIX_COLORS:
        raise InvalidRequestError(f"Unknown color {color}")
    return color


def _clean_name(name):
    name = (name or '').strip()
    if len(name) > ROOM_NAME_MAX_LENGTH:
        raise InvalidRequestError(f"Room name must be at most {ROOM_NAME_MAX_LENGTH} characters")
    return name or None


class OccupancyController:

    def __init__(self, rooms, lifecycle):
        self.rooms = rooms
        self.lifecycle = lifecycle

    def create_room(self, identity, color=None, name=None, now=None):
        if not identity:
            raise InvalidRequestError('Creator UUID is required')
        now = now or utcnow()
        room = self.rooms.create(
            creator_identity=identity,
            creator_color=_color(color, DEFAULT_CREATOR_COLOR),
            name=_clean_name(name),
            status='active',
            created_at=now,
            last_activity_at=now,
        )
        logger.info(f"Room created: room={room.room_id}, creator={identity}")
        return room

    def attempt_join(self, room_id, identity, color=None, now=None):
        """Admit identity to the room.

        The creator and an already seated guest get the room back unchanged.
        A free guest slot is claimed with a conditional write; losing that
        race means re-reading the room and deciding again.
        """
        if not identity:
            raise InvalidRequestError('Guest UUID is required')
        guest_color = _color(color, DEFAULT_GUEST_COLOR)

        for _ in range(MAX_JOIN_ROUNDS):
            room = self.rooms.get_by_id(room_id)
            self.lifecycle.ensure_active(room, now)

            if identity == room.creator_identity:
                return room
            if room.guest_identity is not None:
                if room.guest_identity != identity:
                    logger.warning(f"Join rejected, room full: room={room_id}, identity={identity}")
                    raise RoomFullError()
                return room

            try:
                room = self.rooms.update(
                    room_id,
                    {
                        'guest_identity': identity,
                        'guest_color': guest_color,
                        'last_activity_at': now or utcnow(),
                    },
                    precondition={'guest_identity': None},
                )
            except ConditionFailedError:
                logger.info(f"Guest slot race lost, re-evaluating: room={room_id}, identity={identity}")
                continue
            logger.info(f"Guest joined: room={room_id}, guest={identity}")
            return room

        raise ConditionFailedError('Could not settle the guest slot')

    def require_participant(self, room, identity):
        if room.role_of(identity) is None:
            raise NotParticipantError()
        return room

    def rename_room(self, room_id, identity, name, now=None):
        room = self.rooms.get_by_id(room_id)
        self.lifecycle.ensure_active(room, now)
        self.require_participant(room, identity)
        return self.rooms.update(room_id, {'name': _clean_name(name)})

    def close_room(self, room_id, identity):
        room = self.rooms.get_by_id(room_id)
        if identity != room.creator_identity:
            raise NotParticipantError('Only the creator can close this room')
        if room.status == CLOSED:
            return room
        logger.info(f"Room closed by creator: room={room_id}")
        return self.rooms.update(room_id, {'status': CLOSED})

    def room_statuses(self, room_ids, now=None):
        found = {room.room_id: room for room in self.rooms.get_many(room_ids)}
        statuses = {}
        for room_id in room_ids:
            room = found.get(room_id)
            statuses[room_id] = self.lifecycle.status(room, now) if room else 'unknown'
        return statuses

    def get_room(self, room_id, now=None):
        """Fetch a room for display; NotFoundError and ExpiredError stay distinct."""
        room = self.rooms.get_by_id(room_id)
        return self.lifecycle.ensure_active(room, now)
