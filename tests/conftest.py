"""
Shared fixtures: in-memory stand-ins for ssh-keygen, ssh-agent, gpg, git
(config and repository) and bw so the managers can be exercised without
the real binaries.
"""

import base64
import hashlib
import os

import pytest

from gittool.agent import Agent
from gittool.config_store import ConfigStore
from gittool.errors import CapabilityError
from gittool.identity import IdentityManager
from gittool.settings import Settings
from gittool.ssh_keys import KeyGenResult, KeyInfo
from gittool.vault import VaultManager


class FakeKeygen:
    """Writes deterministic fake key pairs instead of calling ssh-keygen."""

    tool = "ssh-keygen"

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def available(self):
        return True

    def generate(self, output_path, comment, passphrase=""):
        self.calls.append((output_path, comment, passphrase))
        if os.path.exists(output_path):
            return KeyGenResult(success=False, error=f"Key already exists: {output_path}")
        if self.fail:
            # Leave a half-written private key behind, like an interrupted run
            with open(output_path, 'w') as f:
                f.write("PARTIAL")
            return KeyGenResult(success=False, error="simulated ssh-keygen failure")

        blob = "AAAAC3Nz" + hashlib.sha256(
            f"{output_path}:{comment}:{len(self.calls)}".encode()
        ).hexdigest()
        with open(output_path, 'w') as f:
            f.write(f"FAKE_PRIVATE_KEY {blob}\n")
        with open(f"{output_path}.pub", 'w') as f:
            f.write(f"ssh-ed25519 {blob} {comment}\n")
        return KeyGenResult(success=True, fingerprint=f"SHA256:{blob[:20]}")

    def key_info(self, key_path):
        pub = key_path if key_path.endswith('.pub') else f"{key_path}.pub"
        if not os.path.exists(pub):
            return None
        with open(pub) as f:
            parts = f.read().split()
        return KeyInfo(bits=256, fingerprint=f"SHA256:{parts[1][:20]}",
                       comment=' '.join(parts[2:]), key_type="ED25519")

    def fingerprint(self, key_path):
        info = self.key_info(key_path)
        return info.fingerprint if info else None


class FakeAgent(Agent):
    """Tracks which key paths have been loaded."""

    def __init__(self, fail_add=False):
        self.fail_add = fail_add
        self.loaded = set()
        self.calls = []

    def list_fingerprints(self):
        self.calls.append(("list",))
        return set(self.loaded)

    def contains(self, key_path):
        self.calls.append(("contains", key_path))
        return key_path in self.loaded

    def add(self, key_path, passphrase=None):
        self.calls.append(("add", key_path, passphrase))
        if self.fail_add:
            raise CapabilityError("ssh-add", "incorrect passphrase")
        self.loaded.add(key_path)

    def remove(self, key_path):
        self.calls.append(("remove", key_path))
        self.loaded.discard(key_path)


class FakeGit:
    tool = "git"

    def __init__(self, values=None):
        self.values = dict(values or {})

    def available(self):
        return True

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value):
        self.values[key] = value


class FakeRepo:
    """A repository whose origin lives in memory."""

    def __init__(self, url="git@github.com:me/repo.git", work_tree=True):
        self.url = url
        self.work_tree = work_tree

    def is_work_tree(self):
        return self.work_tree

    def origin_url(self):
        return self.url

    def set_origin_url(self, url):
        self.url = url


class FakeGpg:
    """Reversible stand-in for gpg: 'encrypts' by base64 encoding."""

    tool = "gpg"

    def __init__(self, key_id="ABCDEF0123456789"):
        self.key_id = key_id
        self.generated = []
        self.decrypt_calls = 0

    def available(self):
        return True

    def first_key_id(self):
        return self.key_id

    def generate_key(self, params_path, expiry_days=0):
        with open(params_path, 'w') as f:
            f.write(f"Expire-Date: {expiry_days}\n")
        self.generated.append((params_path, expiry_days))
        self.key_id = "GENERATED00000001"
        return self.key_id

    def encrypt(self, data, key_id, output_path):
        encoded = base64.b64encode(data.encode()).decode()
        with open(output_path, 'w') as f:
            f.write(f"FAKE-GPG {key_id} {encoded}\n")

    def decrypt(self, path):
        self.decrypt_calls += 1
        with open(path) as f:
            _, _, encoded = f.read().split()
        # gpg output often carries a trailing newline
        return base64.b64decode(encoded).decode() + "\r\n"


class FakeBitwarden:
    def __init__(self, token="bw-session-token"):
        self.token = token
        self.passwords = []

    def available(self):
        return True

    def unlock(self, password=None):
        self.passwords.append(password)
        return self.token


@pytest.fixture
def settings(tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    return Settings(home=str(home), config_root=str(home / ".config" / "gittool"))


@pytest.fixture
def store(settings):
    return ConfigStore(settings.config_file)


@pytest.fixture
def gpg():
    return FakeGpg()


@pytest.fixture
def bitwarden():
    return FakeBitwarden()


@pytest.fixture
def vault(store, settings, gpg, bitwarden):
    return VaultManager(store, settings, gpg=gpg, password_manager=bitwarden)


@pytest.fixture
def keygen():
    return FakeKeygen()


@pytest.fixture
def agent():
    return FakeAgent()


@pytest.fixture
def git():
    return FakeGit({"user.email": "global@example.com"})


@pytest.fixture
def repo():
    return FakeRepo()


@pytest.fixture
def identities(settings, vault, keygen, agent, git, repo):
    return IdentityManager(settings, vault, keygen=keygen, agent=agent, git=git, repo=repo)
