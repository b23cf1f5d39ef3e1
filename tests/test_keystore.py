import pytest

from assetseal_crypto import ImportedKey, PrivateKeyUnavailable, imported_private_key
from assetseal_crypto.keystore import import_private_key


def test_import_exposes_identity(provisioned):
    with imported_private_key(provisioned.container, provisioned.passphrase) as handle:
        assert handle.identity.thumbprint == provisioned.identity.thumbprint
        assert handle.private_key.key_size == 2048


def test_handle_released_on_exit(provisioned):
    with imported_private_key(provisioned.container, provisioned.passphrase) as handle:
        pass
    assert handle.released
    with pytest.raises(PrivateKeyUnavailable):
        handle.private_key


def test_handle_released_on_exception(provisioned):
    with pytest.raises(RuntimeError):
        with imported_private_key(provisioned.container, provisioned.passphrase) as handle:
            raise RuntimeError("boom")
    assert handle.released


def test_handle_is_a_context_manager(provisioned):
    with import_private_key(provisioned.container, provisioned.passphrase) as handle:
        assert isinstance(handle, ImportedKey)
        assert "live" in repr(handle)
    assert "released" in repr(handle)


def test_wrong_passphrase(provisioned):
    with pytest.raises(PrivateKeyUnavailable) as excinfo:
        import_private_key(provisioned.container, "wrong" + provisioned.passphrase)
    assert excinfo.value.step == "import"


def test_corrupted_container(provisioned):
    corrupted = bytearray(provisioned.container)
    corrupted[len(corrupted) // 2] ^= 0xFF
    with pytest.raises(PrivateKeyUnavailable):
        import_private_key(bytes(corrupted), provisioned.passphrase)


def test_empty_container():
    with pytest.raises(PrivateKeyUnavailable):
        import_private_key(b"", "secret")


def test_passphrase_as_bytes(provisioned):
    with imported_private_key(provisioned.container, provisioned.passphrase.encode("utf-8")) as handle:
        assert handle.identity.thumbprint == provisioned.identity.thumbprint


def test_passphrase_of_wrong_type(provisioned):
    with pytest.raises(PrivateKeyUnavailable) as excinfo:
        import_private_key(provisioned.container, 12345)
    assert excinfo.value.step == "import"
