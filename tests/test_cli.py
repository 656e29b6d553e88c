"""Tests for the atrest command line."""
import json

import pytest
from click.testing import CliRunner

from atrest.cli import cli

OTHER = "a1" * 32


@pytest.fixture
def runner(configured):
    return CliRunner()


@pytest.fixture
def plain_file(tmp_path):
    path = tmp_path / "files" / "invoice.pdf"
    path.parent.mkdir()
    path.write_bytes(b"%PDF invoice " * 40)
    return path


def test_encrypt_then_decrypt_to_file(runner, plain_file, tmp_path):
    result = runner.invoke(cli, ["encrypt", str(plain_file)])
    assert result.exit_code == 0, result.output
    assert "Encrypted" in result.output

    encrypted = plain_file.with_name("invoice.pdf.enc")
    assert encrypted.exists()
    assert not plain_file.exists()

    out = tmp_path / "out" / "invoice.pdf"
    out.parent.mkdir()
    result = runner.invoke(cli, ["decrypt", str(encrypted), "-o", str(out)])
    assert result.exit_code == 0, result.output
    assert out.read_bytes() == b"%PDF invoice " * 40
    # Stored ciphertext is left in place
    assert encrypted.exists()


def test_decrypt_to_stdout(runner, plain_file):
    runner.invoke(cli, ["encrypt", str(plain_file)])
    result = runner.invoke(cli, ["decrypt", str(plain_file.with_name("invoice.pdf.enc"))])
    assert result.exit_code == 0
    assert result.stdout_bytes == b"%PDF invoice " * 40


def test_encrypt_twice_is_noop(runner, plain_file):
    runner.invoke(cli, ["encrypt", str(plain_file)])
    encrypted = plain_file.with_name("invoice.pdf.enc")
    before = encrypted.read_bytes()

    result = runner.invoke(cli, ["encrypt", str(encrypted)])

    assert result.exit_code == 0
    assert "Already encrypted" in result.output
    assert encrypted.read_bytes() == before


def test_decrypt_requires_enc_suffix(runner, plain_file):
    result = runner.invoke(cli, ["decrypt", str(plain_file)])
    assert result.exit_code != 0
    assert "Not an encrypted asset" in result.output


def test_key_env_option(runner, plain_file, monkeypatch):
    monkeypatch.setenv("INVOICE_KEY", OTHER)
    runner.invoke(cli, ["encrypt", str(plain_file), "--key-env", "INVOICE_KEY"])
    encrypted = str(plain_file.with_name("invoice.pdf.enc"))

    wrong = runner.invoke(cli, ["decrypt", encrypted])
    assert wrong.exit_code != 0
    assert "Integrity check failed" in wrong.output

    right = runner.invoke(cli, ["decrypt", encrypted, "--key-env", "INVOICE_KEY"])
    assert right.exit_code == 0
    assert right.stdout_bytes == b"%PDF invoice " * 40


def test_empty_key_env_is_rejected(runner, plain_file, monkeypatch):
    monkeypatch.delenv("MISSING_KEY", raising=False)
    result = runner.invoke(cli, ["encrypt", str(plain_file), "--key-env", "MISSING_KEY"])
    assert result.exit_code != 0
    assert "MISSING_KEY is empty" in result.output
    assert plain_file.exists()


def test_inspect(runner, plain_file):
    runner.invoke(cli, ["encrypt", str(plain_file)])
    result = runner.invoke(cli, ["inspect", str(plain_file.with_name("invoice.pdf.enc"))])

    assert result.exit_code == 0
    info = json.loads(result.output)
    assert info["original_name"] == "invoice.pdf"
    assert info["encrypted"] is True
    assert info["version"] == 1
    assert info["chunk_size"] == 16
    assert info["plaintext_size"] == len(b"%PDF invoice " * 40)
    assert info["stored_size"] > info["plaintext_size"]


def test_inspect_plain_file(runner, plain_file):
    result = runner.invoke(cli, ["inspect", str(plain_file)])
    info = json.loads(result.output)
    assert info["encrypted"] is False
    assert "chunk_size" not in info
