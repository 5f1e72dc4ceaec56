from flask import Blueprint, Flask, jsonify, request, send_from_directory, current_app
from flask_socketio import SocketIO, join_room, leave_room, emit, rooms
from werkzeug.exceptions import HTTPException
from types import SimpleNamespace
import logging
import os

import click

from config import Config
from errors import SixError, InvalidRequestError
from expiry import MessageExpiryEngine, seconds_left, format_countdown
from history import RoomHistory
from identity import IdentityProvider
from lifecycle import RoomLifecycle, format_remaining
from media import MediaStore, validate_upload, upload_path
from models import db, utcnow
from occupancy import OccupancyController
from presence import TypingSignal, RoomWatcher, WatcherRegistry
from storage import LocalStorage
from stores import ChangeFeed, RoomStore, MessageStore
from sweeper import Sweeper, purge_room

logger = logging.getLogger(__name__)

socketio = SocketIO()
bp = Blueprint('six', __name__)


def create_app(overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    db.init_app(app)
    with app.app_context():
        db.create_all()

    socketio.init_app(app, cors_allowed_origins="*")

    feed = ChangeFeed()
    room_store = RoomStore(feed)
    message_store = MessageStore(feed)
    lifecycle = RoomLifecycle(app.config['ROOM_TTL'])
    occupancy = OccupancyController(room_store, lifecycle)
    app.extensions['six'] = SimpleNamespace(
        feed=feed,
        rooms=room_store,
        messages=message_store,
        lifecycle=lifecycle,
        occupancy=occupancy,
        engine=MessageExpiryEngine(message_store, room_store, lifecycle, occupancy, app.config['MESSAGE_TTL']),
        media=MediaStore(app.config['UPLOAD_FOLDER']),
        typing=TypingSignal(socketio, app.config['TYPING_THROTTLE_SECONDS']),
        watchers=WatcherRegistry(),
    )
    feed.subscribe_all(relay_change)

    app.register_blueprint(bp)
    app.register_error_handler(SixError, handle_six_error)
    app.register_error_handler(Exception, handle_unexpected_error)

    @app.cli.command('sweep')
    def sweep_command():
        """Remove expired messages and close idle rooms once."""
        counts = Sweeper(app, socketio).sweep()
        click.echo(', '.join(f"{k}={v}" for k, v in counts.items()))

    @app.cli.command('history')
    def history_command():
        """Show this machine's identity and recently visited rooms."""
        storage = LocalStorage.from_config(app.config)
        history = RoomHistory.from_config(app.config, storage)
        click.echo(f"identity: {IdentityProvider(storage).get_or_create()}")
        now = utcnow()
        for entry in history.list(now):
            left = format_remaining(history.ttl - (now - entry.last_activity_at))
            role = 'creator' if entry.is_creator else 'guest'
            click.echo(f"{entry.room_id}  {entry.room_name or '-'}  {role}  {left}")

    return app


def six():
    return current_app.extensions['six']


def relay_change(room_id, event, payload):
    # push store changes to everyone watching the room
    socketio.emit(event, payload, to=room_id)


def handle_six_error(e):
    return jsonify(e.to_dict()), e.status_code


def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return e
    logger.exception(f"Unhandled exception: {e}")
    return jsonify({"detail": "Internal server error"}), 500


def _body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise InvalidRequestError('JSON body required')
    return data


def _require(data, *keys):
    missing = [k for k in keys if not data.get(k)]
    if missing:
        raise InvalidRequestError(f"{', '.join(missing)} required")
    return [data[k] for k in keys]


def _message_payload(message, now):
    data = message.to_dict()
    left = seconds_left(message, now)
    data['seconds_left'] = left
    data['countdown'] = format_countdown(left) if left is not None else None
    return data


@bp.route('/')
def index():
    return jsonify({"message": "SiX backend running"})


# Rooms

@bp.route('/rooms', methods=['POST'])
def create_room():
    data = _body()
    room = six().occupancy.create_room(data.get('creator_uuid'), data.get('creator_color'), data.get('name'))
    return jsonify({"roomId": room.room_id, "room": six().lifecycle.describe(room)})


@bp.route('/rooms', methods=['GET'])
def get_room():
    room_id = request.args.get('id')
    if not room_id:
        raise InvalidRequestError('Room ID is required')
    room = six().occupancy.get_room(room_id)
    return jsonify(six().lifecycle.describe(room))


@bp.route('/rooms', methods=['PATCH'])
def join_room_as_guest():
    data = _body()
    room_id, guest = _require(data, 'room_id', 'guest_uuid')
    room = six().occupancy.attempt_join(room_id, guest, data.get('guest_color'))
    return jsonify(six().lifecycle.describe(room))


@bp.route('/rooms/status')
def room_statuses():
    ids = [i for i in request.args.get('ids', '').split(',') if i]
    return jsonify(six().occupancy.room_statuses(ids))


@bp.route('/rooms/<room_id>/name', methods=['PUT'])
def rename_room(room_id):
    data = _body()
    identity, = _require(data, 'identity')
    room = six().occupancy.rename_room(room_id, identity, data.get('name'))
    return jsonify(six().lifecycle.describe(room))


@bp.route('/rooms/<room_id>', methods=['DELETE'])
def delete_room(room_id):
    data = _body()
    identity, = _require(data, 'identity')
    svc = six()
    svc.occupancy.close_room(room_id, identity)
    purged = purge_room(svc, room_id)
    return jsonify({"ok": True, "message": "Room closed and messages deleted", "purged": purged})


# Messages

@bp.route('/rooms/<room_id>/messages', methods=['GET'])
def list_messages(room_id):
    svc = six()
    now = utcnow()
    svc.occupancy.get_room(room_id, now)
    return jsonify({"messages": [_message_payload(m, now) for m in svc.engine.visible(room_id, now)]})


@bp.route('/rooms/<room_id>/messages', methods=['POST'])
def send_message(room_id):
    data = _body()
    sender, = _require(data, 'sender')
    message = six().engine.send(
        room_id,
        sender,
        content=data.get('content'),
        media_url=data.get('media_url'),
        media_type=data.get('media_type'),
    )
    return jsonify(_message_payload(message, utcnow())), 201


@bp.route('/rooms/<room_id>/messages/ack', methods=['POST'])
def acknowledge_messages(room_id):
    data = _body()
    viewer, = _require(data, 'viewer')
    read = six().engine.acknowledge(room_id, viewer)
    return jsonify({"read": [m.id for m in read]})


@bp.route('/messages/<int:message_id>/read', methods=['POST'])
def mark_read(message_id):
    data = _body()
    viewer, = _require(data, 'viewer')
    message = six().engine.mark_read(message_id, viewer)
    return jsonify(_message_payload(message, utcnow()))


@bp.route('/messages/<int:message_id>/reveal', methods=['POST'])
def reveal_media(message_id):
    data = _body()
    viewer, = _require(data, 'viewer')
    message = six().engine.reveal(message_id, viewer)
    return jsonify(_message_payload(message, utcnow()))


# Media

@bp.route('/upload', methods=['POST'])
def upload_file():
    if 'file' not in request.files:
        raise InvalidRequestError('No file provided')
    file = request.files['file']
    room_id = request.form.get('roomId')
    if not room_id:
        raise InvalidRequestError('No roomId provided')
    six().occupancy.get_room(room_id)

    data = file.read()
    media_type = validate_upload(file.mimetype, len(data))
    url = six().media.put(upload_path(room_id, file.filename), data, file.mimetype)
    return jsonify({"url": url, "mediaType": media_type, "filename": file.filename, "size": len(data)})


@bp.route('/upload', methods=['DELETE'])
def delete_upload():
    url, = _require(_body(), 'url')
    six().media.delete(url)
    return jsonify({"success": True})


@bp.route('/uploads/<room_id>/<path:filename>')
def serve_upload(room_id, filename):
    return send_from_directory(os.path.join(current_app.config['UPLOAD_FOLDER'], room_id), filename)


# Realtime

@socketio.on('join')
def handle_join(data):
    room_id = data.get('room')
    identity = data.get('identity')
    svc = six()
    try:
        room = svc.occupancy.get_room(room_id)
        svc.occupancy.require_participant(room, identity)
    except SixError as e:
        emit('error', e.to_dict())
        return
    join_room(room_id)
    svc.typing.bind(request.sid, room_id, identity)
    interval = current_app.config['ROOM_TICK_SECONDS']
    if interval:
        watcher = RoomWatcher(current_app._get_current_object(), socketio, svc.rooms, svc.lifecycle,
                              room_id, request.sid, interval)
        svc.watchers.add(watcher).start()
    emit('status', {'msg': f"{identity} has joined the room.", 'identity': identity, 'online': True}, to=room_id)


@socketio.on('typing')
def handle_typing(data):
    room_id = data.get('room')
    if room_id not in rooms():
        return
    six().typing.broadcast(room_id, data.get('identity'), data.get('color'), skip_sid=request.sid)


@socketio.on('leave')
def handle_leave(data):
    room_id = data.get('room')
    identity = data.get('identity')
    svc = six()
    svc.watchers.remove(request.sid, room_id)
    svc.typing.forget(room_id, identity)
    leave_room(room_id)
    emit('status', {'msg': f"{identity} has left the room.", 'identity': identity, 'online': False}, to=room_id)


@socketio.on('disconnect')
def handle_disconnect(*args):
    svc = six()
    svc.watchers.remove_sid(request.sid)
    svc.typing.release(request.sid)


if __name__ == "__main__":
    app = create_app()
    logging.basicConfig(level=app.config['LOG_LEVEL'], format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    Sweeper(app, socketio, app.config['SWEEP_INTERVAL_SECONDS']).start()
    socketio.run(app, debug=os.getenv('FLASK_DEBUG') == '1', host="0.0.0.0",
                 port=int(os.getenv('PORT', 5000)), allow_unsafe_werkzeug=True)
