import logging
import os
from dataclasses import dataclass
from typing import Optional

from .codec import TEXT_SUFFIX, read_artifact, to_text, write_together
from .errors import DecryptionFailed, EncryptionFailed, PrivateKeyUnavailable
from .hybrid import DEFAULT_CIPHER, PayloadCipher, decrypt_bytes, encrypt_bytes
from .provision import (
    CERTIFICATE_NAME,
    CONTAINER_NAME,
    DEFAULT_KEY_SIZE,
    PASSPHRASE_NAME,
    load_certificate,
    provision,
    read_passphrase,
)

PAYLOAD_SUFFIX = '.enc'
WRAP_SUFFIX = '.key'

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class EncryptedArtifacts:
    payload_path: str
    wrap_path: str
    wrap_text_path: Optional[str] = None
    cert_dir: Optional[str] = None


def find_artifact(path: str) -> str:
    """Prefer the binary artifact; fall back to its Base64 text variant."""
    if os.path.exists(path):
        return path
    if os.path.exists(path + TEXT_SUFFIX):
        return path + TEXT_SUFFIX
    return path


def encrypt_file(input_path: str, output_path: Optional[str] = None, *, certificate_path: str,
                 cipher: PayloadCipher = DEFAULT_CIPHER, write_base64: bool = True,
                 logger: Optional[logging.Logger] = None) -> EncryptedArtifacts:
    """Encrypt input_path for the certificate at certificate_path.

    Writes '<output>' (payload), '<output>.key' (wrap package) and, unless
    write_base64 is False, '<output>.key.base64'.
    """
    logger = logger or log
    if output_path is None:
        output_path = f"{input_path}{PAYLOAD_SUFFIX}"
    wrap_path = f"{output_path}{WRAP_SUFFIX}"
    wrap_text_path = wrap_path + TEXT_SUFFIX if write_base64 else None
    for path in (output_path, wrap_path, wrap_text_path):
        if path and os.path.exists(path):
            raise FileExistsError(f"Output file '{path}' already exists")

    public_key = load_certificate(certificate_path)
    try:
        with open(input_path, 'rb') as f_in:
            data = f_in.read()
    except OSError as e:
        raise EncryptionFailed(f"Cannot read plaintext: {e}", artifact=input_path, step="read plaintext") from e

    payload, wrap_package = encrypt_bytes(data, public_key, cipher=cipher, logger=logger)
    outputs = [(output_path, payload), (wrap_path, wrap_package)]
    if wrap_text_path:
        outputs.append((wrap_text_path, to_text(wrap_package).encode('ascii')))
    write_together(outputs)

    logger.info("File '%s' encrypted to '%s' (wrap package '%s')", input_path, output_path, wrap_path)
    return EncryptedArtifacts(payload_path=output_path, wrap_path=wrap_path, wrap_text_path=wrap_text_path)


def decrypt_file(input_path: str, output_path: Optional[str] = None, *, container_path: str,
                 passphrase_path: str, wrap_path: Optional[str] = None,
                 cipher: PayloadCipher = DEFAULT_CIPHER, logger: Optional[logging.Logger] = None) -> str:
    """Decrypt a payload file. Container and wrap package may be binary or '.base64' text."""
    logger = logger or log
    if output_path is None:
        output_path = input_path[:-len(PAYLOAD_SUFFIX)] if input_path.endswith(PAYLOAD_SUFFIX) else f"{input_path}.dec"
    if os.path.exists(output_path):
        raise FileExistsError(f"Output file '{output_path}' already exists")
    if wrap_path is None:
        wrap_path = find_artifact(f"{input_path}{WRAP_SUFFIX}")

    try:
        container = read_artifact(container_path)
        passphrase = read_passphrase(passphrase_path)
    except (OSError, ValueError) as e:
        raise PrivateKeyUnavailable(f"Cannot read key material: {e}", artifact=container_path, step="read") from e

    try:
        wrap_package = read_artifact(wrap_path)
        with open(input_path, 'rb') as f_in:
            payload = f_in.read()
    except (OSError, ValueError) as e:
        raise DecryptionFailed(f"Cannot read encrypted artifacts: {e}", artifact=wrap_path, step="read") from e

    plaintext = decrypt_bytes(payload, wrap_package, container, passphrase, cipher=cipher, logger=logger)
    write_together([(output_path, plaintext)])

    logger.info("File '%s' decrypted to '%s'", input_path, output_path)
    return output_path


def protect_file(input_path: str, cert_dir: str, subject: str, output_path: Optional[str] = None, *,
                 key_size: int = DEFAULT_KEY_SIZE, cipher: PayloadCipher = DEFAULT_CIPHER,
                 write_base64: bool = True, logger: Optional[logging.Logger] = None) -> EncryptedArtifacts:
    """Provision a fresh certificate in cert_dir and encrypt input_path for it."""
    logger = logger or log
    provisioned = provision(subject, key_size, cert_dir=cert_dir, write_base64=write_base64, logger=logger)
    artifacts = encrypt_file(input_path, output_path, certificate_path=provisioned.certificate_path,
                             cipher=cipher, write_base64=write_base64, logger=logger)
    return EncryptedArtifacts(
        payload_path=artifacts.payload_path,
        wrap_path=artifacts.wrap_path,
        wrap_text_path=artifacts.wrap_text_path,
        cert_dir=cert_dir,
    )


def recover_file(input_path: str, cert_dir: str, output_path: Optional[str] = None, *,
                 wrap_path: Optional[str] = None, cipher: PayloadCipher = DEFAULT_CIPHER,
                 logger: Optional[logging.Logger] = None) -> str:
    """Decrypt input_path with the certificate directory written by protect_file."""
    return decrypt_file(
        input_path,
        output_path,
        container_path=find_artifact(os.path.join(cert_dir, CONTAINER_NAME)),
        passphrase_path=os.path.join(cert_dir, PASSPHRASE_NAME),
        wrap_path=wrap_path,
        cipher=cipher,
        logger=logger,
    )


def certificate_path_for(cert_dir: str) -> str:
    return os.path.join(cert_dir, CERTIFICATE_NAME)
