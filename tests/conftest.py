import pytest

from app import create_app, socketio
from models import db
from storage import LocalStorage

CREATOR = 'c1'
GUEST = 'g1'


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'ROOM_TICK_SECONDS': 0,
        'STORAGE_PATH': str(tmp_path / 'local' / 'storage.json'),
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def svc(app):
    return app.extensions['six']


@pytest.fixture
def room(svc):
    return svc.occupancy.create_room(CREATOR, '#ff2d92')


@pytest.fixture
def full_room(svc, room):
    return svc.occupancy.attempt_join(room.room_id, GUEST, '#00d4ff')


@pytest.fixture
def socket_client(app, client):
    def make():
        return socketio.test_client(app, flask_test_client=client)
    return make


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(str(tmp_path / 'local' / 'storage.json'))
