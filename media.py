import logging
import os
import time

from werkzeug.utils import secure_filename

from config import ALLOWED_MEDIA_TYPES, MAX_UPLOAD_SIZE
from errors import InvalidRequestError, UploadRejectedError

logger = logging.getLogger(__name__)

URL_PREFIX = '/uploads/'


def validate_upload(content_type, size):
    """Returns the media kind ('image' or 'video'); nothing is stored on rejection."""
    if content_type not in ALLOWED_MEDIA_TYPES:
        raise UploadRejectedError('Invalid file type. Only images and videos are allowed.')
    if size > MAX_UPLOAD_SIZE:
        raise UploadRejectedError('File too large. Maximum size is 10MB.')
    return ALLOWED_MEDIA_TYPES[content_type]


def upload_path(room_id, filename):
    ext = os.path.splitext(secure_filename(filename or ''))[1].lower() or '.bin'
    return f"{secure_filename(room_id)}/{int(time.time() * 1000)}{ext}"


class MediaStore:
    """Public blob storage backed by the upload folder."""

    def __init__(self, folder):
        self.folder = folder
        os.makedirs(self.folder, exist_ok=True)

    def _resolve(self, path):
        full = os.path.abspath(os.path.join(self.folder, path))
        if not full.startswith(os.path.abspath(self.folder) + os.sep):
            raise InvalidRequestError('Path escapes the upload folder')
        return full

    def put(self, path, data, content_type):
        full = self._resolve(path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, 'wb') as fh:
            fh.write(data)
        logger.info(f"Stored upload {path} ({content_type}, {len(data)} bytes)")
        return URL_PREFIX + path

    def delete(self, url):
        if not url.startswith(URL_PREFIX):
            raise InvalidRequestError('Not an upload URL')
        full = self._resolve(url[len(URL_PREFIX):])
        if os.path.exists(full):
            os.remove(full)
            folder = os.path.dirname(full)
            if folder != os.path.abspath(self.folder) and not os.listdir(folder):
                os.rmdir(folder)
            return True
        return False
