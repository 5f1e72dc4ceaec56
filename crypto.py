"""AES-GCM sealing of message content.

The room key never reaches the server: it travels in the share link's URL
fragment and each client seals content before sending and opens it after
retrieval. Envelope format:

    v1:<base64url(iv)>:<base64url(ciphertext||tag)>

with a 96-bit random IV per message and a 256-bit room key that is never
rotated. Content without the version prefix is legacy plaintext and passes
through untouched.
"""
import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from errors import DecryptionFailure

logger = logging.getLogger(__name__)

VERSION = 'v1'
IV_BYTES = 12
KEY_BYTES = 32
PLACEHOLDER = '[This message could not be decrypted]'


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode('ascii').rstrip('=')


def b64url_decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + '=' * (-len(data) % 4))


def generate_room_key() -> bytes:
    return AESGCM.generate_key(bit_length=KEY_BYTES * 8)


def encode_key(key: bytes) -> str:
    return b64url_encode(key)


def decode_key(encoded: str) -> bytes:
    try:
        key = b64url_decode(encoded)
    except (binascii.Error, ValueError) as e:
        raise DecryptionFailure('Malformed room key') from e
    if len(key) != KEY_BYTES:
        raise DecryptionFailure('Room key must be 256 bits')
    return key


def share_link(base_url: str, room_id: str, key: bytes) -> str:
    """Room URL carrying the key in its fragment, which browsers never send."""
    return f"{base_url.rstrip('/')}/room/{room_id}#k={encode_key(key)}"


def is_sealed(content: str) -> bool:
    return content.startswith(VERSION + ':') and content.count(':') == 2


def seal(plaintext: str, key: bytes) -> str:
    iv = os.urandom(IV_BYTES)
    ciphertext = AESGCM(key).encrypt(iv, plaintext.encode('utf-8'), None)
    return f"{VERSION}:{b64url_encode(iv)}:{b64url_encode(ciphertext)}"


def open_sealed(envelope: str, key: bytes) -> str:
    if not is_sealed(envelope):
        return envelope
    _, iv_b64, ct_b64 = envelope.split(':')
    try:
        iv = b64url_decode(iv_b64)
        ciphertext = b64url_decode(ct_b64)
        if len(iv) != IV_BYTES:
            raise DecryptionFailure('Bad IV length')
        plaintext = AESGCM(key).decrypt(iv, ciphertext, None)
        return plaintext.decode('utf-8')
    except (InvalidTag, binascii.Error, ValueError) as e:
        raise DecryptionFailure() from e


def open_or_placeholder(envelope: str, key: bytes) -> str:
    """Open for display; an undecryptable message becomes a placeholder so
    the rest of the history stays readable."""
    try:
        return open_sealed(envelope, key)
    except DecryptionFailure:
        logger.warning('Could not decrypt a message, showing placeholder')
        return PLACEHOLDER
