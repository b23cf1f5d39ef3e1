"""
Hybrid RSA+AES protection of file bundles for transit over public channels.

High-level API:
- provision(subject, key_size=2048, *, cert_dir) -> ProvisionedCertificate
- encrypt_bytes(data, public_key, *, cipher=AES_256_CBC) -> (payload, wrap_package)
- decrypt_bytes(payload, wrap_package, container, passphrase, *, cipher=AES_256_CBC) -> bytes
- encrypt_file(input_path, output_path=None, *, certificate_path) -> EncryptedArtifacts
- decrypt_file(input_path, output_path=None, *, container_path, passphrase_path) -> output_path
- protect_file / recover_file: provision + encrypt, and the reverse, around a certificate directory
- to_text / from_text: Base64 views of binary artifacts

Failures raise subclasses of AssetSealError instead of printing.
"""

from .codec import from_text, read_artifact, to_text, write_text_artifact
from .errors import (
    AssetSealError,
    DecryptionFailed,
    EncryptionFailed,
    MalformedWrapPackage,
    PrivateKeyUnavailable,
    ProvisioningFailed,
)
from .file_crypto import (
    EncryptedArtifacts,
    decrypt_file,
    encrypt_file,
    protect_file,
    recover_file,
)
from .hybrid import PayloadCipher, decrypt_bytes, encrypt_bytes, split_wrap_package
from .keystore import ImportedKey, imported_private_key
from .provision import (
    DEFAULT_KEY_SIZE,
    KeyPairIdentity,
    ProvisionedCertificate,
    generate_passphrase,
    load_certificate,
    provision,
)

__all__ = [
    "provision",
    "generate_passphrase",
    "load_certificate",
    "KeyPairIdentity",
    "ProvisionedCertificate",
    "DEFAULT_KEY_SIZE",
    "encrypt_bytes",
    "decrypt_bytes",
    "split_wrap_package",
    "PayloadCipher",
    "ImportedKey",
    "imported_private_key",
    "encrypt_file",
    "decrypt_file",
    "protect_file",
    "recover_file",
    "EncryptedArtifacts",
    "to_text",
    "from_text",
    "read_artifact",
    "write_text_artifact",
    "AssetSealError",
    "ProvisioningFailed",
    "EncryptionFailed",
    "PrivateKeyUnavailable",
    "MalformedWrapPackage",
    "DecryptionFailed",
]
