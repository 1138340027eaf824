#!/usr/bin/env python3
"""
ssh-agent access through ``ssh-add``.

``detect_agent()`` returns either a working ``SshAgent`` or an
``UnavailableAgent`` whose every call raises ``AgentUnavailable``, so callers
can degrade agent steps to warnings without checking for the binary first.
"""

import logging
import os
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from typing import Mapping, Optional, Set

from .errors import AgentUnavailable, CapabilityError
from .ssh_keys import SshKeygen, parse_key_listing

logger = logging.getLogger("gittool.agent")

# Prints the passphrase handed over in the child's environment. The secret is
# never written to disk.
ASKPASS_SCRIPT = '#!/bin/sh\nprintf \'%s\' "$GITTOOL_ASKPASS_PASSPHRASE"\n'


class Agent(ABC):
    """Interface of the key agent capability."""

    @abstractmethod
    def list_fingerprints(self) -> Set[str]:
        """Fingerprints of the keys the agent holds."""

    @abstractmethod
    def contains(self, key_path: str) -> bool:
        """True if the agent holds the key stored at ``key_path``."""

    @abstractmethod
    def add(self, key_path: str, passphrase: Optional[str] = None) -> None:
        """Load a key, unlocking it with ``passphrase`` when given."""

    @abstractmethod
    def remove(self, key_path: str) -> None:
        """Unload a key."""


class UnavailableAgent(Agent):
    """Stand-in used when no agent can be reached."""

    def __init__(self, reason: str = "ssh-agent is not running"):
        self.reason = reason

    def list_fingerprints(self) -> Set[str]:
        raise AgentUnavailable(self.reason)

    def contains(self, key_path: str) -> bool:
        raise AgentUnavailable(self.reason)

    def add(self, key_path: str, passphrase: Optional[str] = None) -> None:
        raise AgentUnavailable(self.reason)

    def remove(self, key_path: str) -> None:
        raise AgentUnavailable(self.reason)


class SshAgent(Agent):
    """The running ssh-agent, driven through ``ssh-add``."""

    tool = "ssh-add"

    def __init__(self, keygen: Optional[SshKeygen] = None):
        self.keygen = keygen or SshKeygen()

    def list_fingerprints(self) -> Set[str]:
        result = subprocess.run(
            [self.tool, "-l"],
            capture_output=True,
            text=True,
            stdin=subprocess.DEVNULL
        )
        # ssh-add -l: 0 = keys listed, 1 = agent has no identities, 2 = no agent
        if result.returncode == 1:
            return set()
        if result.returncode != 0:
            raise AgentUnavailable(result.stderr.strip() or "cannot connect to ssh-agent")

        fingerprints = set()
        for line in result.stdout.splitlines():
            info = parse_key_listing(line)
            if info:
                fingerprints.add(info.fingerprint)
        return fingerprints

    def contains(self, key_path: str) -> bool:
        pub_path = f"{key_path}.pub"
        fingerprint = self.keygen.fingerprint(pub_path if os.path.exists(pub_path) else key_path)
        if not fingerprint:
            return False
        return fingerprint in self.list_fingerprints()

    def add(self, key_path: str, passphrase: Optional[str] = None) -> None:
        """
        Load a key into the agent.

        With a passphrase, ssh-add is run with ``SSH_ASKPASS`` pointing at a
        throwaway script that echoes the passphrase from the environment, so
        no terminal interaction is needed.
        """
        if passphrase is None:
            result = subprocess.run(
                [self.tool, key_path],
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL
            )
        else:
            result = self._add_with_askpass(key_path, passphrase)

        if result.returncode != 0:
            raise CapabilityError(self.tool, result.stderr or f"could not add {key_path}")
        logger.debug("Added %s to ssh-agent", key_path)

    def _add_with_askpass(self, key_path: str, passphrase: str) -> subprocess.CompletedProcess:
        with tempfile.TemporaryDirectory(prefix="gittool-askpass-") as tmpdir:
            script = os.path.join(tmpdir, "askpass")
            with open(script, 'w') as f:
                f.write(ASKPASS_SCRIPT)
            os.chmod(script, 0o700)

            env = dict(os.environ)
            env.update({
                "SSH_ASKPASS": script,
                "SSH_ASKPASS_REQUIRE": "force",
                "DISPLAY": env.get("DISPLAY", ":0"),
                "GITTOOL_ASKPASS_PASSPHRASE": passphrase,
            })
            return subprocess.run(
                [self.tool, key_path],
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL,
                env=env
            )

    def remove(self, key_path: str) -> None:
        result = subprocess.run(
            [self.tool, "-d", key_path],
            capture_output=True,
            text=True,
            stdin=subprocess.DEVNULL
        )
        if result.returncode != 0:
            raise CapabilityError(self.tool, result.stderr or f"could not remove {key_path}")


def detect_agent(environ: Optional[Mapping[str, str]] = None) -> Agent:
    """Return a usable agent, or an ``UnavailableAgent`` explaining why not."""
    env = os.environ if environ is None else environ
    if shutil.which(SshAgent.tool) is None:
        return UnavailableAgent("ssh-add not found in PATH")
    if not env.get("SSH_AUTH_SOCK"):
        return UnavailableAgent("SSH_AUTH_SOCK is not set; is ssh-agent running?")
    return SshAgent()
