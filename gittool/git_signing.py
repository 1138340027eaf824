#!/usr/bin/env python3
"""
Global git configuration and SSH commit-signing registration.
"""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Optional

from . import trust
from .errors import CapabilityError, CapabilityMissing
from .ssh_keys import read_public_key

logger = logging.getLogger("gittool.git_signing")


class GitConfig:
    """Reads and writes ``git config --global`` values."""

    tool = "git"

    def available(self) -> bool:
        return shutil.which(self.tool) is not None

    def _require(self):
        if not self.available():
            raise CapabilityMissing(self.tool)

    def get(self, key: str) -> Optional[str]:
        self._require()
        result = subprocess.run(
            [self.tool, "config", "--global", "--get", key],
            capture_output=True,
            text=True
        )
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def set(self, key: str, value: str) -> None:
        self._require()
        result = subprocess.run(
            [self.tool, "config", "--global", key, value],
            capture_output=True,
            text=True
        )
        if result.returncode != 0:
            raise CapabilityError(self.tool, result.stderr or f"could not set {key}")


@dataclass
class SigningStatus:
    """Whether a key is set up for commit signing."""
    trusted: bool
    is_signing_key: bool


def register_signing(
    email: str,
    public_key_path: str,
    allowed_signers_path: str,
    git: GitConfig
) -> None:
    """
    Make ``public_key_path`` the global commit-signing key.

    Adds ``email <pubkey>`` to the trusted signers file and points git's
    ``user.signingkey`` and ``gpg.ssh.allowedSignersFile`` at them.
    """
    pubkey = read_public_key(public_key_path)
    if not pubkey:
        raise ValueError(f"Public key not found: {public_key_path}")

    if trust.add_signer(email, pubkey, allowed_signers_path):
        logger.debug("Trusted %s for %s", public_key_path, email)

    git.set("gpg.format", "ssh")
    git.set("user.signingkey", public_key_path)
    git.set("gpg.ssh.allowedSignersFile", allowed_signers_path)
    git.set("commit.gpgsign", "true")


def signing_status(
    public_key_path: str,
    allowed_signers_path: str,
    git: GitConfig
) -> SigningStatus:
    pubkey = read_public_key(public_key_path)
    trusted = bool(pubkey) and trust.has_key(pubkey, allowed_signers_path)

    configured = git.get("user.signingkey")
    is_signing_key = bool(configured) and (
        os.path.expanduser(configured) == os.path.expanduser(public_key_path)
    )
    return SigningStatus(trusted=trusted, is_signing_key=is_signing_key)
