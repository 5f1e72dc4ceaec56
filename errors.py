"""Error taxonomy for rooms, messages and uploads.

Every error raised by the engine derives from SixError and carries the HTTP
status and machine-readable code the host renders for it.
"""


class SixError(Exception):
    status_code = 400
    code = 'SIX_ERROR'

    def __init__(self, message=None, code=None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__
        if code:
            self.code = code

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class NotFoundError(SixError):
    """Room not found"""
    status_code = 404
    code = 'ROOM_NOT_FOUND'


class ExpiredError(SixError):
    """Room has expired"""
    status_code = 410
    code = 'ROOM_EXPIRED'


class RoomFullError(SixError):
    """Room is full"""
    status_code = 403
    code = 'ROOM_FULL'


class NotParticipantError(SixError):
    """Not a participant of this room"""
    status_code = 403
    code = 'NOT_PARTICIPANT'


class ConditionFailedError(SixError):
    """Row changed before the conditional write landed"""
    status_code = 409
    code = 'CONDITION_FAILED'


class UploadRejectedError(SixError):
    """Upload rejected"""
    status_code = 400
    code = 'UPLOAD_REJECTED'


class InvalidRequestError(SixError):
    """Invalid request"""
    status_code = 400
    code = 'INVALID_REQUEST'


class StoreUnavailableError(SixError):
    """Storage backend unavailable"""
    status_code = 503
    code = 'STORE_UNAVAILABLE'


class DecryptionFailure(SixError):
    """Sealed payload cannot be opened with this key"""
    code = 'DECRYPTION_FAILURE'


class StorageUnavailable(Exception):
    """Client-local storage cannot be read or written."""
