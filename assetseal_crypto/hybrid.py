"""
Hybrid RSA-OAEP + AES-256 encryption of in-memory payloads.

Wrap package layout: [16-byte IV][RSA-OAEP wrapped session key]
The wrapped key is always exactly modulus-size bytes (256 for RSA-2048).
"""

import enum
import logging
import os
from typing import Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, padding as sym_padding
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import DecryptionFailed, EncryptionFailed, MalformedWrapPackage
from .keystore import imported_private_key

log = logging.getLogger(__name__)

SESSION_KEY_SIZE = 32
IV_SIZE = 16
BLOCK_SIZE = 128
GCM_TAG_SIZE = 16


class PayloadCipher(enum.Enum):
    # Unauthenticated; default for compatibility with existing artifacts.
    AES_256_CBC = 'aes-256-cbc'
    # Authenticated; the 16-byte tag is appended to the payload.
    AES_256_GCM = 'aes-256-gcm'


DEFAULT_CIPHER = PayloadCipher.AES_256_CBC


def _oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


def _zero(buf: bytearray) -> None:
    for i in range(len(buf)):
        buf[i] = 0


def _encrypt_payload(data: bytes, key: bytearray, iv: bytes, cipher: PayloadCipher) -> bytes:
    if cipher is PayloadCipher.AES_256_GCM:
        encryptor = Cipher(algorithms.AES(key), modes.GCM(iv)).encryptor()
        return encryptor.update(data) + encryptor.finalize() + encryptor.tag

    padder = sym_padding.PKCS7(BLOCK_SIZE).padder()
    padded = padder.update(data) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return encryptor.update(padded) + encryptor.finalize()


def _decrypt_payload(payload: bytes, key: bytearray, iv: bytes, cipher: PayloadCipher) -> bytes:
    if cipher is PayloadCipher.AES_256_GCM:
        if len(payload) < GCM_TAG_SIZE:
            raise DecryptionFailed("Payload is shorter than the authentication tag",
                                   artifact='encrypted payload', step="decrypt payload")
        ciphertext, tag = payload[:-GCM_TAG_SIZE], payload[-GCM_TAG_SIZE:]
        decryptor = Cipher(algorithms.AES(key), modes.GCM(iv, tag)).decryptor()
        try:
            return decryptor.update(ciphertext) + decryptor.finalize()
        except InvalidTag as e:
            raise DecryptionFailed("Payload failed authentication",
                                   artifact='encrypted payload', step="decrypt payload") from e

    if not payload or len(payload) % (BLOCK_SIZE // 8):
        raise DecryptionFailed(f"Payload length {len(payload)} is not a positive multiple of the block size",
                               artifact='encrypted payload', step="decrypt payload")
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(payload) + decryptor.finalize()
    unpadder = sym_padding.PKCS7(BLOCK_SIZE).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise DecryptionFailed("Invalid padding: wrong key or corrupted payload",
                               artifact='encrypted payload', step="decrypt payload") from e


def encrypt_bytes(data: bytes, public_key: rsa.RSAPublicKey, *, cipher: PayloadCipher = DEFAULT_CIPHER,
                  logger: Optional[logging.Logger] = None) -> Tuple[bytes, bytes]:
    """Encrypt data under a fresh session key wrapped for public_key.

    Returns (encrypted_payload, wrap_package).
    """
    logger = logger or log
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise EncryptionFailed("Plaintext must be bytes", artifact='plaintext', step="read plaintext")
    if public_key is None:
        raise EncryptionFailed("No public key supplied", artifact='public key', step="load public key")
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise EncryptionFailed("Public key is not an RSA key", artifact='public key', step="load public key")

    session_key = bytearray(os.urandom(SESSION_KEY_SIZE))
    iv = os.urandom(IV_SIZE)
    try:
        try:
            wrapped_key = public_key.encrypt(bytes(session_key), _oaep())
        except ValueError as e:
            raise EncryptionFailed(f"Cannot wrap session key: {e}",
                                   artifact='public key', step="wrap session key") from e
        payload = _encrypt_payload(bytes(data), session_key, iv, cipher)
    finally:
        _zero(session_key)

    logger.debug("Encrypted %d bytes -> %d bytes (%s), wrapped key %d bytes",
                 len(data), len(payload), cipher.value, len(wrapped_key))
    return payload, iv + wrapped_key


def split_wrap_package(wrap_package: bytes, modulus_bytes: Optional[int] = None) -> Tuple[bytes, bytes]:
    """Split a wrap package into (iv, wrapped_key)."""
    if not isinstance(wrap_package, (bytes, bytearray, memoryview)):
        raise MalformedWrapPackage("Wrap package must be bytes", artifact='wrap package', step="split")
    wrap_package = bytes(wrap_package)
    if len(wrap_package) <= IV_SIZE:
        raise MalformedWrapPackage(f"Wrap package is {len(wrap_package)} bytes, too short for IV and wrapped key",
                                   artifact='wrap package', step="split")
    iv, wrapped_key = wrap_package[:IV_SIZE], wrap_package[IV_SIZE:]
    if modulus_bytes is not None and len(wrapped_key) != modulus_bytes:
        raise MalformedWrapPackage(
            f"Wrapped key is {len(wrapped_key)} bytes, expected {modulus_bytes} for this key pair",
            artifact='wrap package', step="split")
    return iv, wrapped_key


def decrypt_bytes(payload: bytes, wrap_package: bytes, container: bytes, passphrase: str, *,
                  cipher: PayloadCipher = DEFAULT_CIPHER, logger: Optional[logging.Logger] = None) -> bytes:
    """Recover the plaintext using the passphrase-protected private-key container.

    Without the authenticated cipher, a corrupted payload can decrypt to
    garbage instead of raising.
    """
    logger = logger or log
    split_wrap_package(wrap_package)

    with imported_private_key(container, passphrase, logger=logger) as handle:
        private_key = handle.private_key
        iv, wrapped_key = split_wrap_package(wrap_package, (private_key.key_size + 7) // 8)
        try:
            unwrapped = private_key.decrypt(wrapped_key, _oaep())
        except ValueError as e:
            raise DecryptionFailed("Cannot unwrap session key: wrong key pair or corrupted wrap package",
                                   artifact='wrap package', step="unwrap session key") from e
        finally:
            private_key = None

    session_key = bytearray(unwrapped)
    del unwrapped
    try:
        if len(session_key) != SESSION_KEY_SIZE:
            raise DecryptionFailed(f"Unwrapped session key is {len(session_key)} bytes, expected {SESSION_KEY_SIZE}",
                                   artifact='wrap package', step="unwrap session key")
        plaintext = _decrypt_payload(bytes(payload), session_key, iv, cipher)
    finally:
        _zero(session_key)

    logger.debug("Decrypted %d bytes -> %d bytes (%s)", len(payload), len(plaintext), cipher.value)
    return plaintext
