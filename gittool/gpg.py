#!/usr/bin/env python3
"""
Asymmetric encryption through GnuPG.

gittool never handles key material itself: the vault secret is encrypted to
a public key with ``gpg --encrypt`` and decrypted with ``gpg --decrypt``,
letting gpg-agent/pinentry own any private-key passphrase prompt.
"""

import logging
import shutil
import subprocess
from typing import Optional

from .errors import CapabilityError, CapabilityMissing

logger = logging.getLogger("gittool.gpg")

KEY_PARAMS_TEMPLATE = """Key-Type: RSA
Key-Length: 3072
Subkey-Type: RSA
Subkey-Length: 3072
Name-Real: gittool-vault
Name-Comment: auto-generated key for gittool vault
Name-Email: gittool-vault@local
Expire-Date: {expire}
%no-protection
%commit
"""


def key_params(expiry_days: int = 0) -> str:
    """Batch key-generation parameters; ``0`` days means the key never expires."""
    expire = f"{expiry_days}d" if expiry_days and expiry_days > 0 else "0"
    return KEY_PARAMS_TEMPLATE.format(expire=expire)


def parse_first_key_id(colon_listing: str) -> Optional[str]:
    """Return the key id of the first ``pub`` record of ``--with-colons`` output."""
    for line in colon_listing.splitlines():
        fields = line.split(':')
        if fields[0] == 'pub' and len(fields) > 4 and fields[4]:
            return fields[4]
    return None


class GpgBackend:
    """``gpg`` as an injectable encrypt/decrypt capability."""

    tool = "gpg"

    def available(self) -> bool:
        return shutil.which(self.tool) is not None

    def _require(self):
        if not self.available():
            raise CapabilityMissing(self.tool, "install GnuPG")

    def first_key_id(self) -> Optional[str]:
        self._require()
        result = subprocess.run(
            [self.tool, "--list-keys", "--with-colons"],
            capture_output=True,
            text=True
        )
        if result.returncode != 0:
            return None
        return parse_first_key_id(result.stdout)

    def generate_key(self, params_path: str, expiry_days: int = 0) -> str:
        """
        Generate an unprotected RSA key in batch mode.

        Args:
            params_path: Where to write the parameter file gpg reads
            expiry_days: Key lifetime in days, 0 for no expiry

        Returns:
            Key id of the first public key after generation
        """
        self._require()
        with open(params_path, 'w') as f:
            f.write(key_params(expiry_days))

        result = subprocess.run(
            [self.tool, "--batch", "--generate-key", params_path],
            capture_output=True,
            text=True
        )
        if result.returncode != 0:
            raise CapabilityError(self.tool, result.stderr or "key generation failed")

        key_id = self.first_key_id()
        if not key_id:
            raise CapabilityError(self.tool, "failed to generate a GPG key for the vault")
        logger.info("Generated GPG key %s for the vault", key_id)
        return key_id

    def encrypt(self, data: str, key_id: str, output_path: str) -> None:
        """Encrypt ``data`` to ``key_id`` as ASCII armor at ``output_path``."""
        self._require()
        result = subprocess.run(
            [
                self.tool, "--batch", "--yes",
                "--encrypt", "--armor",
                "-r", key_id,
                "-o", output_path
            ],
            input=data,
            capture_output=True,
            text=True
        )
        if result.returncode != 0:
            raise CapabilityError(self.tool, result.stderr or "encryption failed")

    def decrypt(self, path: str) -> str:
        """Decrypt a file and return its plaintext."""
        self._require()
        result = subprocess.run(
            [self.tool, "--quiet", "--decrypt", path],
            capture_output=True,
            text=True
        )
        if result.returncode != 0:
            raise CapabilityError(self.tool, result.stderr or f"could not decrypt {path}")
        return result.stdout
