"""
In-process import of a passphrase-protected PKCS#12 container.

Imported key material lives only in an ImportedKey handle owned by the
caller. Use imported_private_key() so the handle is released on every exit
path, including exceptions.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from .errors import PrivateKeyUnavailable
from .provision import KeyPairIdentity, identity_from_certificate

log = logging.getLogger(__name__)


def _zero(buf: bytearray) -> None:
    for i in range(len(buf)):
        buf[i] = 0


class ImportedKey:
    """Opaque handle over an imported private key and its certificate."""

    def __init__(self, private_key: rsa.RSAPrivateKey, certificate: x509.Certificate):
        self._private_key = private_key
        self._certificate = certificate
        self.identity: KeyPairIdentity = identity_from_certificate(certificate)

    @property
    def released(self) -> bool:
        return self._private_key is None

    @property
    def private_key(self) -> rsa.RSAPrivateKey:
        if self._private_key is None:
            raise PrivateKeyUnavailable("Private key handle has been released",
                                        artifact=self.identity.thumbprint, step="use private key")
        return self._private_key

    def release(self) -> None:
        self._private_key = None
        self._certificate = None

    def __enter__(self) -> "ImportedKey":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        state = 'released' if self.released else 'live'
        return f"ImportedKey(thumbprint={self.identity.thumbprint!r}, {state})"


def import_private_key(container: bytes, passphrase: str, *, artifact: str = 'private-key container',
                       logger: Optional[logging.Logger] = None) -> ImportedKey:
    """Import the container and check that it exposes a usable RSA private key.

    Raises PrivateKeyUnavailable for a wrong passphrase, a corrupted container,
    or a container without a private key.
    """
    logger = logger or log
    if not container:
        raise PrivateKeyUnavailable("Private-key container is empty", artifact=artifact, step="import")
    if passphrase is None:
        raise PrivateKeyUnavailable("No passphrase supplied", artifact=artifact, step="import")

    if isinstance(passphrase, str):
        secret = bytearray(passphrase.encode('utf-8'))
    elif isinstance(passphrase, (bytes, bytearray)):
        secret = bytearray(passphrase)
    else:
        raise PrivateKeyUnavailable("Passphrase must be str or bytes", artifact=artifact, step="import")
    try:
        private_key, certificate, _ = pkcs12.load_key_and_certificates(bytes(container), secret)
    except ValueError as e:
        raise PrivateKeyUnavailable("Wrong passphrase or corrupted container",
                                    artifact=artifact, step="import") from e
    finally:
        _zero(secret)

    if private_key is None:
        raise PrivateKeyUnavailable("Container holds no private key", artifact=artifact, step="validate")
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise PrivateKeyUnavailable("Container key is not an RSA private key", artifact=artifact, step="validate")
    if certificate is None:
        raise PrivateKeyUnavailable("Container holds no certificate", artifact=artifact, step="validate")

    handle = ImportedKey(private_key, certificate)
    logger.debug("Imported private key for '%s' (thumbprint %s)",
                 handle.identity.subject, handle.identity.thumbprint)
    return handle


@contextmanager
def imported_private_key(container: bytes, passphrase: str, *, artifact: str = 'private-key container',
                         logger: Optional[logging.Logger] = None) -> Iterator[ImportedKey]:
    handle = import_private_key(container, passphrase, artifact=artifact, logger=logger)
    try:
        yield handle
    finally:
        handle.release()
        (logger or log).debug("Released private key handle %s", handle.identity.thumbprint)
