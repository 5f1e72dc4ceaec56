from datetime import timedelta

from conftest import CREATOR, GUEST
from presence import RoomWatcher, TypingSignal, WatcherRegistry


class RecordingSocket:
    def __init__(self):
        self.emitted = []

    def emit(self, event, payload, **kwargs):
        self.emitted.append((event, payload, kwargs))


def test_typing_is_throttled_per_sender():
    socket = RecordingSocket()
    signal = TypingSignal(socket, interval=0.5)

    assert signal.broadcast('r', 'a', '#ff2d92', now=10.0)
    assert not signal.broadcast('r', 'a', '#ff2d92', now=10.3)
    assert signal.broadcast('r', 'b', '#d426ff', now=10.3)
    assert signal.broadcast('r', 'a', '#ff2d92', now=10.6)

    assert [p['identity'] for _, p, _ in socket.emitted] == ['a', 'b', 'a']
    assert socket.emitted[0][2]['to'] == 'r'


def test_room_watcher_tick_reports_countdown(app, svc, room):
    socket = RecordingSocket()
    watcher = RoomWatcher(app, socket, svc.rooms, svc.lifecycle, room.room_id, 'sid-1')

    assert watcher.tick(now=room.last_activity_at + timedelta(hours=1)) is True
    event, payload, kwargs = socket.emitted[-1]
    assert event == 'room_status'
    assert payload['remaining_seconds'] == 5 * 3600
    assert payload['label'] == '5h 0m'
    assert kwargs['to'] == 'sid-1'

    assert watcher.tick(now=room.last_activity_at + timedelta(hours=7)) is False
    assert socket.emitted[-1][1]['closed'] is True


def test_watcher_registry_stops_on_teardown(app, svc, room):
    registry = WatcherRegistry()
    first = registry.add(RoomWatcher(app, RecordingSocket(), svc.rooms, svc.lifecycle, room.room_id, 'sid-1'))
    second = registry.add(RoomWatcher(app, RecordingSocket(), svc.rooms, svc.lifecycle, 'other', 'sid-1'))

    registry.remove_sid('sid-1')

    assert first.stopped and second.stopped
    assert len(registry) == 0


def _events(client, name):
    return [e['args'][0] for e in client.get_received() if e['name'] == name]


def test_socket_join_requires_participant(socket_client, full_room):
    stranger = socket_client()
    stranger.emit('join', {'room': full_room.room_id, 'identity': 'stranger'})

    errors = _events(stranger, 'error')
    assert errors and errors[0]['code'] == 'NOT_PARTICIPANT'


def test_typing_reaches_partner_only(socket_client, full_room):
    creator, guest = socket_client(), socket_client()
    creator.emit('join', {'room': full_room.room_id, 'identity': CREATOR})
    guest.emit('join', {'room': full_room.room_id, 'identity': GUEST})
    creator.get_received()
    guest.get_received()

    creator.emit('typing', {'room': full_room.room_id, 'identity': CREATOR, 'color': '#ff2d92'})
    creator.emit('typing', {'room': full_room.room_id, 'identity': CREATOR, 'color': '#ff2d92'})

    assert _events(creator, 'typing') == []
    typing = _events(guest, 'typing')
    assert len(typing) == 1
    assert typing[0]['identity'] == CREATOR


def test_store_changes_are_pushed_to_room(socket_client, client, full_room):
    guest = socket_client()
    guest.emit('join', {'room': full_room.room_id, 'identity': GUEST})
    guest.get_received()

    client.post(f'/rooms/{full_room.room_id}/messages', json={'sender': CREATOR, 'content': 'ping'})

    inserted = _events(guest, 'message_inserted')
    assert [m['content'] for m in inserted] == ['ping']


def test_leave_announces_and_stops_delivery(socket_client, client, full_room):
    creator, guest = socket_client(), socket_client()
    creator.emit('join', {'room': full_room.room_id, 'identity': CREATOR})
    guest.emit('join', {'room': full_room.room_id, 'identity': GUEST})
    creator.get_received()

    guest.emit('leave', {'room': full_room.room_id, 'identity': GUEST})
    guest.get_received()

    statuses = _events(creator, 'status')
    assert statuses[-1]['online'] is False
    client.post(f'/rooms/{full_room.room_id}/messages', json={'sender': CREATOR, 'content': 'gone?'})
    assert _events(guest, 'message_inserted') == []


def test_release_drops_throttle_state_for_socket():
    signal = TypingSignal(RecordingSocket(), interval=0.5)
    signal.bind('sid-1', 'r', 'a')
    signal.bind('sid-2', 'r', 'b')
    signal.broadcast('r', 'a', '#ff2d92', now=10.0)
    signal.broadcast('r', 'b', '#d426ff', now=10.0)

    signal.release('sid-1')

    assert signal.broadcast('r', 'a', '#ff2d92', now=10.1)
    assert not signal.broadcast('r', 'b', '#d426ff', now=10.1)


def test_disconnect_forgets_typing_sender(socket_client, svc, full_room):
    creator = socket_client()
    creator.emit('join', {'room': full_room.room_id, 'identity': CREATOR})
    creator.emit('typing', {'room': full_room.room_id, 'identity': CREATOR, 'color': '#ff2d92'})
    assert (full_room.room_id, CREATOR) in svc.typing._last_sent

    creator.disconnect()

    assert svc.typing._last_sent == {}
