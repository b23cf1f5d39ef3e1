import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from assetseal_crypto import provision  # noqa: E402


@pytest.fixture(scope="session")
def provisioned(tmp_path_factory):
    """One 2048-bit identity shared by the whole run; RSA key generation is slow."""
    cert_dir = tmp_path_factory.mktemp("certs") / "session"
    return provision("test", 2048, cert_dir=str(cert_dir))


@pytest.fixture
def public_key(provisioned):
    return provisioned.identity.public_key
