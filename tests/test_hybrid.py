import os

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from assetseal_crypto import (
    DecryptionFailed,
    EncryptionFailed,
    MalformedWrapPackage,
    PayloadCipher,
    PrivateKeyUnavailable,
    decrypt_bytes,
    encrypt_bytes,
    provision,
    split_wrap_package,
)
from assetseal_crypto.hybrid import IV_SIZE


def _decrypt(provisioned, payload, wrap, **kwargs):
    return decrypt_bytes(payload, wrap, provisioned.container, provisioned.passphrase, **kwargs)


@pytest.mark.parametrize("size", [0, 1, 15, 16, 17, 4096, 10 * 1024 + 3])
def test_round_trip(provisioned, public_key, size):
    data = os.urandom(size)
    payload, wrap = encrypt_bytes(data, public_key)
    assert _decrypt(provisioned, payload, wrap) == data


@pytest.mark.parametrize("size", [0, 1, 16, 33])
def test_cbc_payload_is_padded_to_block(public_key, size):
    payload, _ = encrypt_bytes(os.urandom(size), public_key)
    assert len(payload) == (size // 16 + 1) * 16


def test_fresh_session_key_per_call(public_key):
    data = b"identical input" * 10
    payload_a, wrap_a = encrypt_bytes(data, public_key)
    payload_b, wrap_b = encrypt_bytes(data, public_key)
    assert payload_a != payload_b
    assert wrap_a != wrap_b
    assert wrap_a[:IV_SIZE] != wrap_b[:IV_SIZE]


def test_wrap_package_layout(public_key):
    for size in (0, 100, 5000):
        _, wrap = encrypt_bytes(os.urandom(size), public_key)
        assert len(wrap) == 16 + 256
        iv, wrapped_key = split_wrap_package(wrap, 256)
        assert iv == wrap[:16]
        assert len(wrapped_key) == 256


def test_wrong_passphrase_never_returns_plaintext(provisioned, public_key):
    payload, wrap = encrypt_bytes(b"secret bundle", public_key)
    with pytest.raises(PrivateKeyUnavailable):
        decrypt_bytes(payload, wrap, provisioned.container, provisioned.passphrase[::-1])


def test_tampered_payload_is_detected_or_garbled(provisioned, public_key):
    # CBC carries no integrity tag: a flipped byte either breaks the padding
    # or silently yields different plaintext.
    data = os.urandom(64)
    payload, wrap = encrypt_bytes(data, public_key)
    tampered = bytearray(payload)
    tampered[5] ^= 0x01
    try:
        result = _decrypt(provisioned, bytes(tampered), wrap)
    except DecryptionFailed:
        return
    assert result != data


def test_tampered_last_block_breaks_padding_or_plaintext(provisioned, public_key):
    data = b"x" * 20
    payload, wrap = encrypt_bytes(data, public_key)
    tampered = bytearray(payload)
    tampered[-1] ^= 0xFF
    try:
        result = _decrypt(provisioned, bytes(tampered), wrap)
    except DecryptionFailed:
        return
    assert result != data


def test_truncated_payload(provisioned, public_key):
    payload, wrap = encrypt_bytes(os.urandom(40), public_key)
    with pytest.raises(DecryptionFailed):
        _decrypt(provisioned, payload[:-1], wrap)


def test_gcm_round_trip(provisioned, public_key):
    data = os.urandom(1000)
    payload, wrap = encrypt_bytes(data, public_key, cipher=PayloadCipher.AES_256_GCM)
    assert len(payload) == len(data) + 16
    assert len(wrap) == 16 + 256
    assert _decrypt(provisioned, payload, wrap, cipher=PayloadCipher.AES_256_GCM) == data


def test_gcm_detects_tampering(provisioned, public_key):
    payload, wrap = encrypt_bytes(os.urandom(100), public_key, cipher=PayloadCipher.AES_256_GCM)
    tampered = bytearray(payload)
    tampered[0] ^= 0x01
    with pytest.raises(DecryptionFailed):
        _decrypt(provisioned, bytes(tampered), wrap, cipher=PayloadCipher.AES_256_GCM)


def test_gcm_detects_swapped_iv(provisioned, public_key):
    payload, wrap = encrypt_bytes(b"data", public_key, cipher=PayloadCipher.AES_256_GCM)
    bad_wrap = os.urandom(16) + wrap[16:]
    with pytest.raises(DecryptionFailed):
        _decrypt(provisioned, payload, bad_wrap, cipher=PayloadCipher.AES_256_GCM)


@pytest.mark.parametrize("wrap", [b"", b"\x00" * 16])
def test_wrap_package_too_short(provisioned, wrap):
    with pytest.raises(MalformedWrapPackage):
        _decrypt(provisioned, b"\x00" * 16, wrap)


def test_wrap_package_wrong_key_length(provisioned, public_key):
    payload, wrap = encrypt_bytes(b"data", public_key)
    with pytest.raises(MalformedWrapPackage) as excinfo:
        _decrypt(provisioned, payload, wrap + b"\x00")
    assert isinstance(excinfo.value, ValueError)
    assert "wrap package" in str(excinfo.value)


def test_wrapped_key_corruption(provisioned, public_key):
    payload, wrap = encrypt_bytes(b"data", public_key)
    tampered = bytearray(wrap)
    tampered[-1] ^= 0x01
    with pytest.raises(DecryptionFailed) as excinfo:
        _decrypt(provisioned, payload, bytes(tampered))
    assert excinfo.value.step == "unwrap session key"


def test_wrong_key_pair(provisioned):
    other = rsa.generate_private_key(public_exponent=65537, key_size=2048).public_key()
    payload, wrap = encrypt_bytes(b"data", other)
    with pytest.raises(DecryptionFailed):
        _decrypt(provisioned, payload, wrap)


def test_missing_public_key():
    with pytest.raises(EncryptionFailed):
        encrypt_bytes(b"data", None)


def test_non_rsa_public_key():
    with pytest.raises(EncryptionFailed):
        encrypt_bytes(b"data", "not a key")


def test_plaintext_must_be_bytes(public_key):
    with pytest.raises(EncryptionFailed):
        encrypt_bytes("text", public_key)


def test_wrap_package_layout_3072(tmp_path):
    larger = provision("test-3072", 3072, cert_dir=str(tmp_path / "certs"))
    data = os.urandom(500)
    for _ in range(2):
        payload, wrap = encrypt_bytes(data, larger.identity.public_key)
        assert len(wrap) == 16 + 384
        assert decrypt_bytes(payload, wrap, larger.container, larger.passphrase) == data
