#!/usr/bin/env python3
"""
Vault manager: the GPG-encrypted master secret and its metadata.

The secret itself lives in ``<config_root>/vault/vault-<id>.gpg``, encrypted
to a GPG public key. The ``[vault]`` config section records where it is, when
it expires and which SSH aliases use it as their key passphrase::

    [vault]
    provider=local
    path=/home/me/.config/gittool/vault/vault-0123456789abcdef.gpg
    expires=2026-12-31
    ssh_hosts=work,personal

Security Note:
    Never log the master secret or session tokens. Only paths, key ids and
    aliases are logged.
"""

import glob
import logging
import os
import secrets
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Union

from .config_store import ConfigStore
from .errors import AlreadyInitialized, CapabilityError, NotInitialized
from .gpg import GpgBackend
from .password_manager import BitwardenCli
from .prompts import Prompter, choose_master
from .settings import Settings

logger = logging.getLogger("gittool.vault")

LOCAL = "local"
EXTERNAL = "external"

# provider -> (config section, blob file prefix)
PROVIDERS = {
    LOCAL: ("vault", "vault-"),
    EXTERNAL: ("bitwarden", "bitwarden-"),
}

NEVER = ("", "0", "never")


@dataclass
class VaultHandle:
    """An initialized vault."""
    provider: str
    path: str
    key_id: str
    expires: Optional[date] = None
    generated_secret: bool = False


@dataclass
class VaultStatus:
    """Snapshot of the local vault for display."""
    initialized: bool
    provider: Optional[str] = None
    path: Optional[str] = None
    expires: Optional[date] = None
    expired: bool = False
    days_left: Optional[int] = None
    linked_aliases: List[str] = field(default_factory=list)


def parse_expiry(value: Optional[str]) -> Optional[date]:
    """Parse a stored ``expires`` value; empty, ``0`` and garbage mean never."""
    if value is None or value.strip().lower() in NEVER:
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        logger.warning("Ignoring unparseable vault expiry %r", value)
        return None


def expiry_from_days(days: int, now: Union[date, datetime, None] = None) -> Optional[date]:
    """Expiry date ``days`` from today, or None for ``0`` (never)."""
    if days < 0:
        raise ValueError("Expiration days must be 0 (never) or a positive number")
    if days == 0:
        return None
    return _today(now) + timedelta(days=days)


def _today(now: Union[date, datetime, None]) -> date:
    if now is None:
        return date.today()
    if isinstance(now, datetime):
        return now.date()
    return now


def split_hosts(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [h.strip() for h in value.split(',') if h.strip()]


class VaultManager:
    """
    Owns the master secret lifecycle.

    Uninitialized -> Active on ``initialize``; Active -> Expired once the
    recorded expiry date is reached; ``renew`` returns it to Active. Expiry is
    logical only and is checked by callers before sensitive operations.
    """

    def __init__(
        self,
        store: ConfigStore,
        settings: Settings,
        gpg: Optional[GpgBackend] = None,
        password_manager: Optional[BitwardenCli] = None,
        prompter: Optional[Prompter] = None,
    ):
        self.store = store
        self.settings = settings
        self.gpg = gpg or GpgBackend()
        self.password_manager = password_manager or BitwardenCli()
        self.prompter = prompter

    def _section(self, provider: str = LOCAL) -> Dict[str, str]:
        section_name, _ = PROVIDERS[provider]
        return self.store.read_section(section_name) or {}

    def blob_path(self, provider: str = LOCAL) -> Optional[str]:
        """Location of the provider's encrypted blob, if one exists."""
        if provider not in PROVIDERS:
            raise ValueError(f"Unknown vault provider: {provider}")

        recorded = self._section(provider).get("path")
        if recorded and os.path.isfile(recorded):
            return recorded

        _, prefix = PROVIDERS[provider]
        found = sorted(glob.glob(os.path.join(self.settings.vault_dir, f"{prefix}*.gpg")))
        return found[0] if found else None

    def is_initialized(self, provider: str = LOCAL) -> bool:
        return self.blob_path(provider) is not None

    def initialize(
        self,
        password: str = "",
        key_id: Optional[str] = None,
        expiry_days: int = 0,
        provider: str = LOCAL,
        now: Union[date, datetime, None] = None,
    ) -> VaultHandle:
        """
        Create the vault for a provider.

        Args:
            password: Master password ("" to prompt or generate). For the
                external provider this is the password manager's password.
            key_id: GPG key to encrypt to (default: first key, generated if
                there is none)
            expiry_days: Days until the vault expires, 0 for never
            provider: ``local`` or ``external``

        Raises:
            AlreadyInitialized: A blob already exists for this provider;
                callers treat this as a successful no-op
            CapabilityMissing: gpg (or bw) is not installed
        """
        existing = self.blob_path(provider)
        if existing:
            raise AlreadyInitialized(existing, provider)

        expires = expiry_from_days(expiry_days, now)
        vault_dir = self.settings.vault_dir
        os.makedirs(vault_dir, mode=0o700, exist_ok=True)

        if not key_id:
            key_id = self.gpg.first_key_id()
        if not key_id:
            logger.info("No GPG key found, generating one for the vault")
            key_id = self.gpg.generate_key(
                os.path.join(vault_dir, "gpg-key-params.txt"), expiry_days
            )

        generated = False
        if provider == EXTERNAL:
            secret = self.password_manager.unlock(password or None)
        else:
            secret, generated = choose_master(password, self.settings.interactive, self.prompter)

        section_name, prefix = PROVIDERS[provider]
        path = os.path.join(vault_dir, f"{prefix}{secrets.token_hex(8)}.gpg")

        logger.info("Encrypting %s vault secret with GPG key %s", provider, key_id)
        self.gpg.encrypt(secret, key_id, path)
        if not os.path.isfile(path) or os.path.getsize(path) == 0:
            raise CapabilityError("gpg", "failed to create encrypted vault file")

        def record(entries: Dict[str, str]) -> Dict[str, str]:
            entries["provider"] = provider
            entries["path"] = path
            if provider == LOCAL and expires is not None:
                entries["expires"] = expires.isoformat()
            return entries

        self.store.write_section(section_name, record)
        logger.info("Vault initialized at %s", path)

        return VaultHandle(
            provider=provider,
            path=path,
            key_id=key_id,
            expires=expires if provider == LOCAL else None,
            generated_secret=generated,
        )

    def reveal_master(self) -> str:
        """
        Decrypt and return the master secret.

        gpg may prompt for the private key's passphrase through its own
        pinentry; that wait is outside gittool's control.

        Raises:
            NotInitialized: No local vault blob exists
        """
        path = self.blob_path(LOCAL)
        if not path:
            raise NotInitialized()

        value = self.gpg.decrypt(path).replace('\r', '').rstrip()
        if not value:
            raise CapabilityError("gpg", "Failed to decrypt master password")
        return value

    def expires_at(self) -> Optional[date]:
        return parse_expiry(self._section(LOCAL).get("expires"))

    def days_until_expiry(self, now: Union[date, datetime, None] = None) -> Optional[int]:
        """Whole days left, negative once past; None if the vault never expires."""
        expires = self.expires_at()
        if expires is None:
            return None
        return (expires - _today(now)).days

    def is_expired(self, now: Union[date, datetime, None] = None) -> bool:
        days = self.days_until_expiry(now)
        return days is not None and days <= 0

    def renew(self, days: int, now: Union[date, datetime, None] = None) -> Optional[date]:
        """
        Set a new expiry ``days`` from today (0 = never).

        Only the ``expires`` key is rewritten.
        """
        if not self.is_initialized(LOCAL):
            raise NotInitialized()
        expires = expiry_from_days(days, now)

        def update(entries: Dict[str, str]) -> Dict[str, str]:
            if expires is None:
                entries.pop("expires", None)
            else:
                entries["expires"] = expires.isoformat()
            return entries

        self.store.write_section("vault", update)
        logger.info("Vault expiry set to %s", expires.isoformat() if expires else "never")
        return expires

    def linked_aliases(self) -> List[str]:
        return split_hosts(self._section(LOCAL).get("ssh_hosts"))

    def is_linked(self, alias: str) -> bool:
        return alias in self.linked_aliases()

    def link_alias(self, alias: str) -> bool:
        """
        Record that ``alias`` is unlocked with the master secret.

        Returns False without writing when there is no local vault or the
        alias is already linked.
        """
        if not self.is_initialized(LOCAL):
            logger.debug("No vault; not linking %s", alias)
            return False
        hosts = self.linked_aliases()
        if alias in hosts:
            return False

        def update(entries: Dict[str, str]) -> Dict[str, str]:
            entries["ssh_hosts"] = ",".join(hosts + [alias])
            return entries

        self.store.write_section("vault", update)
        return True

    def unlink_alias(self, alias: str) -> bool:
        hosts = self.linked_aliases()
        if alias not in hosts:
            return False

        def update(entries: Dict[str, str]) -> Dict[str, str]:
            entries["ssh_hosts"] = ",".join(h for h in hosts if h != alias)
            return entries

        self.store.write_section("vault", update)
        return True

    def status(self, now: Union[date, datetime, None] = None) -> VaultStatus:
        path = self.blob_path(LOCAL)
        if not path:
            return VaultStatus(initialized=False)
        section = self._section(LOCAL)
        return VaultStatus(
            initialized=True,
            provider=section.get("provider", LOCAL),
            path=path,
            expires=self.expires_at(),
            expired=self.is_expired(now),
            days_left=self.days_until_expiry(now),
            linked_aliases=self.linked_aliases(),
        )
