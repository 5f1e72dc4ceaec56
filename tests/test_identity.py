import uuid

import pytest

from errors import StorageUnavailable
from history import RoomHistory
from identity import IdentityProvider, STORAGE_KEY
from models import utcnow
from storage import LocalStorage


def test_identity_is_created_once_and_persisted(storage):
    first = IdentityProvider(storage).get_or_create()
    second = IdentityProvider(LocalStorage(storage.path)).get_or_create()

    assert first == second
    assert uuid.UUID(first).version == 4
    assert storage.get_item(STORAGE_KEY) == first


def test_separate_storages_get_separate_identities(tmp_path):
    a = IdentityProvider(LocalStorage(str(tmp_path / 'a.json'))).get_or_create()
    b = IdentityProvider(LocalStorage(str(tmp_path / 'b.json'))).get_or_create()

    assert a != b


def test_clear_rotates_identity(storage):
    provider = IdentityProvider(storage)
    first = provider.get_or_create()

    provider.clear()

    assert provider.get_or_create() != first


def test_unreadable_storage_falls_back_to_session_identity(tmp_path):
    path = tmp_path / 'storage.json'
    path.write_text('{not json')
    provider = IdentityProvider(LocalStorage(str(path)))

    identity = provider.get_or_create()

    assert uuid.UUID(identity)
    assert provider.get_or_create() == identity


def test_local_storage_reports_corrupt_file(tmp_path):
    path = tmp_path / 'storage.json'
    path.write_text('[1, 2]')

    with pytest.raises(StorageUnavailable):
        LocalStorage(str(path)).get_item('anything')


def test_history_cli_shows_identity_and_rooms(app, storage):
    identity = IdentityProvider(storage).get_or_create()
    RoomHistory.from_config(app.config, storage).record_visit('room-1', utcnow(), True, '#ff2d92', room_name='plans')

    result = app.test_cli_runner().invoke(args=['history'])

    assert f'identity: {identity}' in result.output
    assert 'room-1  plans  creator' in result.output
