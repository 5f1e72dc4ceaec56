import pytest

from crypto import (
    PLACEHOLDER, decode_key, encode_key, generate_room_key, is_sealed, open_or_placeholder,
    open_sealed, seal, share_link,
)
from errors import DecryptionFailure


@pytest.fixture
def key():
    return generate_room_key()


@pytest.mark.parametrize('plaintext', ['hello', '', 'こんにちは 👋', 'a:b:c'])
def test_seal_then_open(key, plaintext):
    assert open_sealed(seal(plaintext, key), key) == plaintext


def test_envelope_format(key):
    envelope = seal('hi', key)
    version, iv, ciphertext = envelope.split(':')

    assert version == 'v1'
    assert is_sealed(envelope)
    assert '=' not in iv and '=' not in ciphertext
    # 12-byte IV encodes to 16 base64url characters
    assert len(iv) == 16


def test_each_seal_uses_a_fresh_iv(key):
    assert seal('same', key) != seal('same', key)


def test_wrong_key_fails(key):
    envelope = seal('secret', key)

    with pytest.raises(DecryptionFailure):
        open_sealed(envelope, generate_room_key())
    assert open_or_placeholder(envelope, generate_room_key()) == PLACEHOLDER


def test_tampered_envelope_fails(key):
    version, iv, ciphertext = seal('secret', key).split(':')
    tampered = ':'.join([version, iv, ciphertext[:-2] + ('A' if ciphertext[-2] != 'A' else 'B') + ciphertext[-1]])

    assert open_or_placeholder(tampered, key) == PLACEHOLDER


def test_plain_legacy_content_passes_through(key):
    assert open_sealed('just text', key) == 'just text'


def test_key_travels_in_link_fragment(key):
    link = share_link('https://six.example/', 'room-1', key)

    assert link.startswith('https://six.example/room/room-1#k=')
    assert decode_key(link.split('#k=')[1]) == key


def test_malformed_key_is_rejected():
    with pytest.raises(DecryptionFailure):
        decode_key(encode_key(b'short'))
