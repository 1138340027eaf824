#!/usr/bin/env python3
"""
SSH key generation and inspection.

Wraps ``ssh-keygen`` for Ed25519 identity keys: generation (optionally
passphrase-protected), fingerprints and key metadata.
"""

import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from typing import Optional

from .errors import CapabilityMissing


EMAIL_RE = re.compile(r'[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}')


@dataclass
class KeyGenResult:
    """Result of a key generation."""
    success: bool
    fingerprint: Optional[str] = None
    error: Optional[str] = None


@dataclass
class KeyInfo:
    """What ``ssh-keygen -l`` reports about a key."""
    bits: int
    fingerprint: str
    comment: str
    key_type: str


def parse_key_listing(line: str) -> Optional[KeyInfo]:
    """
    Parse one line of ``ssh-keygen -l`` / ``ssh-add -l`` output.

    Format: ``256 SHA256:xxx... comment words (ED25519)``
    """
    parts = line.strip().split()
    if len(parts) < 2:
        return None
    try:
        bits = int(parts[0])
    except ValueError:
        return None

    key_type = ""
    rest = parts[2:]
    if rest and rest[-1].startswith('(') and rest[-1].endswith(')'):
        key_type = rest[-1][1:-1]
        rest = rest[:-1]

    return KeyInfo(bits=bits, fingerprint=parts[1], comment=' '.join(rest), key_type=key_type)


def extract_email(public_key_line: str) -> Optional[str]:
    """Pull the first email address out of a public key's comment."""
    match = EMAIL_RE.search(public_key_line)
    return match.group(0) if match else None


def read_public_key(pub_path: str) -> Optional[str]:
    """First line of a public key file, or None if unreadable."""
    try:
        with open(pub_path, 'r') as f:
            return f.readline().strip() or None
    except OSError:
        return None


class SshKeygen:
    """``ssh-keygen`` as an injectable capability."""

    tool = "ssh-keygen"

    def available(self) -> bool:
        return shutil.which(self.tool) is not None

    def _require(self):
        if not self.available():
            raise CapabilityMissing(self.tool, "install OpenSSH")

    def key_info(self, key_path: str) -> Optional[KeyInfo]:
        """Fingerprint and metadata of a key, None if it cannot be read."""
        self._require()
        result = subprocess.run(
            [self.tool, "-lf", os.path.expanduser(key_path)],
            capture_output=True,
            text=True
        )
        if result.returncode != 0:
            return None
        return parse_key_listing(result.stdout)

    def fingerprint(self, key_path: str) -> Optional[str]:
        """Get SHA256 fingerprint of an SSH key."""
        info = self.key_info(key_path)
        return info.fingerprint if info else None

    def generate(
        self,
        output_path: str,
        comment: str,
        passphrase: str = ""
    ) -> KeyGenResult:
        """
        Generate an Ed25519 keypair.

        Args:
            output_path: Where to save the private key (public key is .pub)
            comment: Key comment, normally the owner's email
            passphrase: Passphrase for the private key ("" for none)

        Returns:
            KeyGenResult with the new key's fingerprint or an error
        """
        self._require()
        output_path = os.path.expanduser(output_path)

        # Don't overwrite existing keys
        if os.path.exists(output_path):
            return KeyGenResult(success=False, error=f"Key already exists: {output_path}")

        os.makedirs(os.path.dirname(output_path), exist_ok=True)

        try:
            result = subprocess.run(
                [
                    self.tool,
                    "-q",
                    "-t", "ed25519",
                    "-f", output_path,
                    "-N", passphrase,
                    "-C", comment
                ],
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL
            )
        except OSError as e:
            return KeyGenResult(success=False, error=f"Error generating keypair: {e}")

        if result.returncode != 0:
            return KeyGenResult(
                success=False,
                error=f"Key generation failed: {result.stderr.strip()}"
            )
        if not (os.path.exists(output_path) and os.path.exists(f"{output_path}.pub")):
            return KeyGenResult(success=False, error="Key files not created")

        return KeyGenResult(success=True, fingerprint=self.fingerprint(f"{output_path}.pub"))
