import datetime
import logging
import os
import secrets
import string
from dataclasses import dataclass
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from .codec import TEXT_SUFFIX, to_text, write_together
from .errors import EncryptionFailed, ProvisioningFailed

log = logging.getLogger(__name__)

MIN_KEY_SIZE = 2048
DEFAULT_KEY_SIZE = 2048
PUBLIC_EXPONENT = 65537
CERTIFICATE_VALIDITY_DAYS = 365
PKCS12_KDF_ROUNDS = 50000

PASSPHRASE_LENGTH = 128
PASSPHRASE_CLASSES = (
    string.ascii_uppercase,
    string.ascii_lowercase,
    string.digits,
    string.punctuation,
)

CONTAINER_NAME = 'certificate.pfx'
PASSPHRASE_NAME = 'certificate.passphrase'
CERTIFICATE_NAME = 'certificate.pem'


@dataclass(frozen=True)
class KeyPairIdentity:
    subject: str
    thumbprint: str
    key_size: int
    certificate: x509.Certificate

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self.certificate.public_key()


@dataclass(frozen=True)
class ProvisionedCertificate:
    identity: KeyPairIdentity
    passphrase: str
    container: bytes
    container_path: str
    passphrase_path: str
    certificate_path: str

    def __repr__(self) -> str:
        return (f"ProvisionedCertificate(subject={self.identity.subject!r}, "
                f"thumbprint={self.identity.thumbprint!r}, container_path={self.container_path!r})")


def generate_passphrase(length: int = PASSPHRASE_LENGTH) -> str:
    """Random passphrase with at least one character from every class."""
    if length < len(PASSPHRASE_CLASSES):
        raise ValueError(f"Passphrase length must be at least {len(PASSPHRASE_CLASSES)}")
    alphabet = ''.join(PASSPHRASE_CLASSES)
    while True:
        candidate = ''.join(secrets.choice(alphabet) for _ in range(length))
        if all(any(c in cls for c in candidate) for cls in PASSPHRASE_CLASSES):
            return candidate


def thumbprint(certificate: x509.Certificate) -> str:
    return certificate.fingerprint(hashes.SHA1()).hex().upper()


def identity_from_certificate(certificate: x509.Certificate) -> KeyPairIdentity:
    labels = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    subject = labels[0].value if labels else certificate.subject.rfc4514_string()
    return KeyPairIdentity(
        subject=subject,
        thumbprint=thumbprint(certificate),
        key_size=certificate.public_key().key_size,
        certificate=certificate,
    )


def _build_certificate(private_key: rsa.RSAPrivateKey, subject_label: str) -> x509.Certificate:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, subject_label)])
    now = datetime.datetime.now(datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=CERTIFICATE_VALIDITY_DAYS))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=False,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=True,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .sign(private_key, hashes.SHA256())
    )


def _export_container(private_key: rsa.RSAPrivateKey, certificate: x509.Certificate,
                      subject_label: str, passphrase: str) -> bytes:
    encryption = (
        serialization.PrivateFormat.PKCS12.encryption_builder()
        .kdf_rounds(PKCS12_KDF_ROUNDS)
        .key_cert_algorithm(pkcs12.PBES.PBESv2SHA256AndAES256CBC)
        .hmac_hash(hashes.SHA256())
        .build(passphrase.encode('utf-8'))
    )
    return pkcs12.serialize_key_and_certificates(
        name=subject_label.encode('utf-8'),
        key=private_key,
        cert=certificate,
        cas=None,
        encryption_algorithm=encryption,
    )


def provision(subject_label: str, key_size: int = DEFAULT_KEY_SIZE, *, cert_dir: str,
              write_base64: bool = True, logger: Optional[logging.Logger] = None) -> ProvisionedCertificate:
    """Create a self-signed RSA identity and persist it, passphrase-protected, under cert_dir.

    The passphrase is written before any key material exists. Raises
    ProvisioningFailed on any failure; nothing half-built is returned.
    """
    logger = logger or log

    if not subject_label:
        raise ProvisioningFailed("Subject label must not be empty", step="validate")
    if key_size < MIN_KEY_SIZE:
        raise ProvisioningFailed(f"Key size {key_size} is below the {MIN_KEY_SIZE}-bit minimum", step="validate")

    container_path = os.path.join(cert_dir, CONTAINER_NAME)
    passphrase_path = os.path.join(cert_dir, PASSPHRASE_NAME)
    certificate_path = os.path.join(cert_dir, CERTIFICATE_NAME)

    try:
        os.makedirs(cert_dir, exist_ok=True)
    except OSError as e:
        raise ProvisioningFailed(f"Cannot create certificate directory: {e}",
                                 artifact=cert_dir, step="create directory") from e

    existing = [path for path in (container_path, container_path + TEXT_SUFFIX, passphrase_path)
                if os.path.exists(path)]
    if existing:
        raise ProvisioningFailed("Certificate directory already holds an identity",
                                 artifact=existing[0], step="create directory")

    passphrase = generate_passphrase()
    try:
        write_together([(passphrase_path, passphrase.encode('utf-8'))], private=True)
    except OSError as e:
        raise ProvisioningFailed(f"Cannot persist passphrase: {e}",
                                 artifact=passphrase_path, step="persist passphrase") from e
    logger.debug("Passphrase written to '%s'", passphrase_path)

    try:
        private_key = rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=key_size)
        certificate = _build_certificate(private_key, subject_label)
        container = _export_container(private_key, certificate, subject_label, passphrase)
    except (ValueError, TypeError) as e:
        raise ProvisioningFailed(f"Key pair generation failed: {e}", step="generate key pair") from e
    finally:
        private_key = None

    # The binary container goes last: its presence marks the directory as provisioned.
    outputs = [(certificate_path, certificate.public_bytes(serialization.Encoding.PEM))]
    if write_base64:
        outputs.append((container_path + TEXT_SUFFIX, to_text(container).encode('ascii')))
    outputs.append((container_path, container))
    try:
        write_together(outputs, private=True)
    except OSError as e:
        raise ProvisioningFailed(f"Cannot persist certificate: {e}",
                                 artifact=container_path, step="persist container") from e

    identity = identity_from_certificate(certificate)
    logger.info("Provisioned certificate '%s' (%d-bit, thumbprint %s) in '%s'",
                identity.subject, identity.key_size, identity.thumbprint, cert_dir)
    return ProvisionedCertificate(
        identity=identity,
        passphrase=passphrase,
        container=container,
        container_path=container_path,
        passphrase_path=passphrase_path,
        certificate_path=certificate_path,
    )


def load_certificate(path: str) -> rsa.RSAPublicKey:
    """Load the RSA public key from a PEM certificate or a PEM public key file."""
    try:
        with open(path, 'rb') as key_file:
            key_data = key_file.read()
    except OSError as e:
        raise EncryptionFailed(f"Cannot read public key: {e}", artifact=path, step="load public key") from e

    try:
        if b'BEGIN CERTIFICATE' in key_data:
            public_key = x509.load_pem_x509_certificate(key_data).public_key()
        else:
            public_key = serialization.load_pem_public_key(key_data)
    except ValueError as e:
        raise EncryptionFailed("File does not contain a valid certificate or public key.",
                               artifact=path, step="load public key") from e

    if not isinstance(public_key, rsa.RSAPublicKey):
        raise EncryptionFailed("Public key is not an RSA key.", artifact=path, step="load public key")
    return public_key


def read_passphrase(path: str) -> str:
    with open(path, 'rb') as f_in:
        return f_in.read().decode('utf-8')
