import logging
import uuid

from errors import StorageUnavailable

logger = logging.getLogger(__name__)

STORAGE_KEY = 'six_user_uuid'


def generate_identity():
    return str(uuid.uuid4())


class IdentityProvider:
    """Hands out the anonymous participant id for one local storage scope."""

    def __init__(self, storage):
        self.storage = storage
        self._ephemeral = None

    def get_or_create(self):
        try:
            identity = self.storage.get_item(STORAGE_KEY)
            if not identity:
                identity = generate_identity()
                self.storage.set_item(STORAGE_KEY, identity)
            return identity
        except StorageUnavailable as e:
            if self._ephemeral is None:
                logger.warning(f"Local storage unavailable, using a session-only identity: {e}")
                self._ephemeral = generate_identity()
            return self._ephemeral

    def clear(self):
        self._ephemeral = None
        try:
            self.storage.remove_item(STORAGE_KEY)
        except StorageUnavailable as e:
            logger.warning(f"Could not clear identity: {e}")
