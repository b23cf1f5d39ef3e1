import os

import pytest

import assetseal


def test_encrypt_then_decrypt(tmp_path, capsys):
    source = tmp_path / "bundle.bin"
    source.write_bytes(os.urandom(2048))
    cert_dir = str(tmp_path / "certs")

    assert assetseal.main(['-e', str(source), '-c', cert_dir, '--subject', 'test']) == 0
    assert os.path.exists(f"{source}.enc.key.base64")
    assert assetseal.main(['-d', f"{source}.enc", '-c', cert_dir, '-o', str(tmp_path / "out.bin")]) == 0

    assert (tmp_path / "out.bin").read_bytes() == source.read_bytes()
    assert "successfully decrypted" in capsys.readouterr().out


def test_authenticated_mode_with_keyfile(tmp_path, provisioned):
    source = tmp_path / "bundle.bin"
    source.write_bytes(b"authenticated payload")

    assert assetseal.main(['-e', str(source), '-i', provisioned.certificate_path, '--authenticated']) == 0
    assert assetseal.main(['-d', f"{source}.enc", '--container', provisioned.container_path,
                           '--passphrase-file', provisioned.passphrase_path, '--authenticated',
                           '-o', str(tmp_path / "out.bin")]) == 0
    assert (tmp_path / "out.bin").read_bytes() == b"authenticated payload"


def test_info(tmp_path, capsys):
    cert_dir = str(tmp_path / "certs")
    assert assetseal.main(['--provision', '-c', cert_dir, '--subject', 'release']) == 0
    assert assetseal.main(['--info', '-c', cert_dir]) == 0
    out = capsys.readouterr().out
    assert "Subject:    release" in out
    assert "2048 bits" in out


def test_base64_conversion(tmp_path):
    source = tmp_path / "blob.bin"
    source.write_bytes(os.urandom(77))
    assert assetseal.main(['--to-base64', str(source)]) == 0
    os.rename(source, tmp_path / "original.bin")
    assert assetseal.main(['--from-base64', f"{source}.base64"]) == 0
    assert source.read_bytes() == (tmp_path / "original.bin").read_bytes()


def test_decrypt_with_wrong_certdir_fails(tmp_path):
    payload = tmp_path / "x.enc"
    payload.write_bytes(b"\x00" * 16)
    assert assetseal.main(['-d', str(payload), '-c', str(tmp_path / "nowhere")]) == 1


def test_encrypt_requires_file():
    with pytest.raises(SystemExit) as excinfo:
        assetseal.main(['-e'])
    assert excinfo.value.code == 2


def test_keyfile_requires_encrypt():
    with pytest.raises(SystemExit):
        assetseal.main(['-d', 'file.enc', '-i', 'cert.pem'])


def test_certdir_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv(assetseal.CERTDIR_ENV, str(tmp_path / "envcerts"))
    assert assetseal.default_certdir() == str(tmp_path / "envcerts")
