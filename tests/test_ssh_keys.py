#!/usr/bin/env python3
"""
Tests for SSH key generation and inspection.
"""

import os
import shutil
import stat
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from gittool.errors import CapabilityMissing
from gittool.ssh_keys import (
    SshKeygen,
    KeyGenResult,
    extract_email,
    parse_key_listing,
    read_public_key,
)


requires_ssh_keygen = pytest.mark.skipif(
    shutil.which("ssh-keygen") is None, reason="ssh-keygen not installed"
)


def test_parse_key_listing():
    info = parse_key_listing("256 SHA256:abc123 work laptop key (ED25519)\n")

    assert info.bits == 256
    assert info.fingerprint == "SHA256:abc123"
    assert info.comment == "work laptop key"
    assert info.key_type == "ED25519"

    assert parse_key_listing("") is None
    assert parse_key_listing("The agent has no identities.") is None


def test_extract_email():
    assert extract_email("ssh-ed25519 AAAA me.name+tag@example.co.uk") == "me.name+tag@example.co.uk"
    assert extract_email("ssh-ed25519 AAAA no-email-here") is None


def test_read_public_key():
    with tempfile.TemporaryDirectory() as tmpdir:
        pub = os.path.join(tmpdir, "key.pub")
        Path(pub).write_text("ssh-ed25519 AAAA user@example.com\nsecond line\n")

        assert read_public_key(pub) == "ssh-ed25519 AAAA user@example.com"
        assert read_public_key(os.path.join(tmpdir, "missing.pub")) is None


def test_generate_without_ssh_keygen():
    keygen = SshKeygen()
    with patch("gittool.ssh_keys.shutil.which", return_value=None):
        with pytest.raises(CapabilityMissing, match="ssh-keygen"):
            keygen.generate("/tmp/never", "x@example.com")


def test_generate_keypair_existing():
    """Generation refuses to overwrite an existing key."""
    with tempfile.TemporaryDirectory() as tmpdir:
        key_path = os.path.join(tmpdir, "existing_key")
        Path(key_path).touch()

        with patch("gittool.ssh_keys.shutil.which", return_value="/usr/bin/ssh-keygen"):
            result = SshKeygen().generate(key_path, "test@example.com")

        assert not result.success
        assert "already exists" in result.error


@requires_ssh_keygen
def test_generate_keypair():
    """Test SSH keypair generation."""
    with tempfile.TemporaryDirectory() as tmpdir:
        key_path = os.path.join(tmpdir, "id_ed25519_test")

        result = SshKeygen().generate(key_path, "test@example.com")

        assert result.success
        assert result.fingerprint.startswith("SHA256:")
        assert os.path.exists(key_path)
        assert os.path.exists(f"{key_path}.pub")

        pubkey = read_public_key(f"{key_path}.pub")
        assert pubkey.startswith("ssh-ed25519")
        assert pubkey.endswith("test@example.com")
        assert stat.S_IMODE(os.stat(key_path).st_mode) & 0o077 == 0


@requires_ssh_keygen
def test_generate_with_passphrase_and_key_info():
    with tempfile.TemporaryDirectory() as tmpdir:
        key_path = os.path.join(tmpdir, "protected")
        keygen = SshKeygen()

        result = keygen.generate(key_path, "vault@example.com", passphrase="correct horse")
        assert result.success

        info = keygen.key_info(f"{key_path}.pub")
        assert info.key_type == "ED25519"
        assert info.fingerprint == result.fingerprint
        assert info.comment == "vault@example.com"

        assert keygen.fingerprint(os.path.join(tmpdir, "nonexistent")) is None


def test_keygen_result():
    ok = KeyGenResult(success=True, fingerprint="SHA256:x")
    assert ok.error is None

    failed = KeyGenResult(success=False, error="Something went wrong")
    assert failed.fingerprint is None


if __name__ == "__main__":
    pytest.main([__file__])
