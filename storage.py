import json
import logging
import os

from errors import StorageUnavailable

logger = logging.getLogger(__name__)


class LocalStorage:
    """String key/value store persisted as one JSON file, the same shape as
    a browser's localStorage."""

    def __init__(self, path):
        self.path = path

    @classmethod
    def from_config(cls, config):
        return cls(config['STORAGE_PATH'])

    def _load(self):
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, encoding='utf-8') as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            raise StorageUnavailable(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageUnavailable(f"{self.path} is not a key/value file")
        return data

    def _save(self, data):
        try:
            os.makedirs(os.path.dirname(self.path) or '.', exist_ok=True)
            tmp = self.path + '.tmp'
            with open(tmp, 'w', encoding='utf-8') as fh:
                json.dump(data, fh)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StorageUnavailable(f"Cannot write {self.path}: {e}") from e

    def get_item(self, key):
        return self._load().get(key)

    def set_item(self, key, value):
        data = self._load()
        data[key] = value
        self._save(data)

    def remove_item(self, key):
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)

    def clear(self):
        self._save({})
