#!/usr/bin/env python3
"""
Identity lifecycle: per-alias SSH keys and their Host blocks.

Each identity is an Ed25519 key pair (``~/.ssh/id_ed25519_<alias>``) plus a
``Host <alias>`` block in ``~/.ssh/config``. Identities can be created,
rotated (with a time-stamped backup and full rollback on failure), removed
and, when linked to the vault, unlocked into ssh-agent with the vault's
master secret as passphrase. An existing key can be registered instead of
generating one, and the current repository's ``origin`` can be pointed at
an alias.

Agent registration and commit-signing setup are optional side effects: their
failures are returned as warnings and never fail the primary operation.

Known gap: there is no cross-process locking. Two invocations working on the
same alias at the same time can race.
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, List, Optional, Tuple

from . import trust
from .agent import Agent, detect_agent
from .errors import (
    AgentUnavailable,
    AliasExists,
    AliasNotFound,
    CapabilityError,
    CapabilityMissing,
    GittoolError,
    InvalidAlias,
    NotInitialized,
    NotVaultLinked,
    OriginError,
    RotationFailed,
    UnresolvedIdentity,
)
from .git_remote import GitRepo, rewrite_origin_url
from .git_signing import GitConfig, SigningStatus, register_signing, signing_status
from .settings import DEFAULT_HOST_NAME, DEFAULT_USER, KEY_PREFIX, Settings
from .ssh_config import (
    iter_aliases,
    load_ssh_config,
    render_block,
    resolve_identity_file,
    save_ssh_config,
)
from .ssh_keys import SshKeygen, extract_email, read_public_key
from .vault import VaultManager

logger = logging.getLogger("gittool.identity")


@dataclass
class Identity:
    """An SSH identity bound to a host alias."""
    alias: str
    host_name: str
    user: str
    private_key_path: str
    in_agent: Optional[bool] = None

    @property
    def public_key_path(self) -> str:
        return f"{self.private_key_path}.pub"


@dataclass
class IdentityResult:
    """Outcome of add/rotate: the identity plus anything the operator should read."""
    identity: Identity
    plan: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    dry_run: bool = False
    key_generated: bool = False
    backup_paths: Optional[Tuple[str, str]] = None


@dataclass
class UnlockResult:
    alias: str
    unlocked: bool
    already_loaded: bool = False
    warning: Optional[str] = None


@dataclass
class AliasListing:
    """Aliases found in the ssh config; ``configured`` is False when there is no file."""
    configured: bool
    config_path: str
    aliases: Iterator[str]


@dataclass
class IdentityDetails:
    """Read-only view of one identity for ``show``."""
    alias: str
    host_name: Optional[str]
    user: Optional[str]
    identity_file: Optional[str]
    public_key_path: Optional[str]
    key_type: Optional[str] = None
    fingerprint: Optional[str] = None
    comment: Optional[str] = None
    created: Optional[datetime] = None
    age_days: Optional[int] = None
    in_agent: Optional[bool] = None
    signing: Optional[SigningStatus] = None
    vault_linked: bool = False


@dataclass
class OriginChange:
    """Result of pointing the repository origin at an alias."""
    alias: str
    old_url: str
    new_url: str


def validate_alias(alias: str) -> str:
    if not alias:
        raise InvalidAlias(alias, "alias cannot be empty")
    if any(c.isspace() for c in alias):
        raise InvalidAlias(alias, "alias cannot contain spaces")
    if alias.startswith('-'):
        raise InvalidAlias(alias, "alias cannot start with '-'")
    return alias


def backup_suffix(now: Optional[datetime] = None) -> str:
    return ".old-" + (now or datetime.now()).strftime("%Y%m%d%H%M%S")


def unique_backup_suffix(private_key: str, public_key: str) -> str:
    """A backup suffix not yet used by either key file (``-1``, ``-2``... appended)."""
    base = backup_suffix()
    suffix = base
    counter = 1
    while os.path.exists(private_key + suffix) or os.path.exists(public_key + suffix):
        suffix = f"{base}-{counter}"
        counter += 1
    return suffix


def alias_from_key_path(key_path: str) -> str:
    """``~/.ssh/id_ed25519_work(.pub)`` -> ``work``; other names are kept as is."""
    name = os.path.basename(key_path)
    if name.endswith('.pub'):
        name = name[:-4]
    if name.startswith(KEY_PREFIX) and len(name) > len(KEY_PREFIX):
        name = name[len(KEY_PREFIX):]
    return name


class IdentityManager:
    """Creates, rotates, removes and unlocks alias identities."""

    def __init__(
        self,
        settings: Settings,
        vault: VaultManager,
        keygen: Optional[SshKeygen] = None,
        agent: Optional[Agent] = None,
        git: Optional[GitConfig] = None,
        repo: Optional[GitRepo] = None,
    ):
        self.settings = settings
        self.vault = vault
        self.keygen = keygen or SshKeygen()
        self.agent = agent or detect_agent()
        self.git = git or GitConfig()
        self.repo = repo or GitRepo()

    # -- helpers -----------------------------------------------------------

    def _ensure_ssh_dir(self):
        if not os.path.isdir(self.settings.ssh_dir):
            os.makedirs(self.settings.ssh_dir, exist_ok=True)
            os.chmod(self.settings.ssh_dir, 0o700)

    def _global_email(self) -> Optional[str]:
        try:
            return self.git.get("user.email")
        except CapabilityMissing:
            return None

    def _agent_add(self, key_path: str, passphrase: Optional[str]) -> Optional[str]:
        """Load a key into the agent, returning a warning instead of raising."""
        try:
            self.agent.add(key_path, passphrase)
        except AgentUnavailable as e:
            return f"Key not added to ssh-agent: {e}"
        except CapabilityError as e:
            return f"ssh-add failed for {key_path} (continuing): {e}"
        logger.info("Key added to ssh-agent: %s", key_path)
        return None

    def _register_signing(self, email: Optional[str], public_key_path: str) -> Optional[str]:
        if not email:
            return "Commit signing not configured: no email known for this key"
        try:
            register_signing(email, public_key_path, self.settings.allowed_signers, self.git)
        except (GittoolError, ValueError, OSError) as e:
            return f"Commit signing setup failed: {e}"
        return None

    def _require_block(self, alias: str):
        doc = load_ssh_config(self.settings.ssh_config)
        block = doc.find(alias)
        if block is None:
            raise AliasNotFound(alias, self.settings.ssh_config)
        return doc, block

    # -- operations --------------------------------------------------------

    def add(
        self,
        alias: Optional[str] = None,
        host_name: str = DEFAULT_HOST_NAME,
        email: Optional[str] = None,
        use_vault_passphrase: bool = False,
        skip_agent: bool = False,
        skip_signing: bool = False,
        dry_run: bool = False,
        key_path: Optional[str] = None,
    ) -> IdentityResult:
        """
        Create an identity for ``alias``.

        An existing ``~/.ssh/id_ed25519_<alias>`` is reused; otherwise a new
        key is generated, protected by the vault master when
        ``use_vault_passphrase`` is set. With ``key_path`` an existing key
        file is registered instead; the alias then defaults to the file name
        without ``id_ed25519_`` and ``.pub``.

        Raises:
            InvalidAlias: Empty alias or alias with whitespace
            AliasExists: A Host block already exists (nothing is modified)
            NotInitialized: ``use_vault_passphrase`` without a vault
            ValueError: ``key_path`` does not exist
        """
        if key_path:
            if key_path.endswith('.pub'):
                key_path = key_path[:-4]
            key_path = self.settings.expand(key_path)
            if not os.path.isfile(key_path):
                raise ValueError(f"Key file not found: {key_path}")
            alias = alias or alias_from_key_path(key_path)
        validate_alias(alias or "")
        config_path = self.settings.ssh_config
        doc = load_ssh_config(config_path)
        if doc.find(alias) is not None:
            raise AliasExists(alias, config_path)

        key_path = key_path or self.settings.key_path(alias)
        identity = Identity(alias=alias, host_name=host_name, user=DEFAULT_USER,
                            private_key_path=key_path)
        result = IdentityResult(identity=identity, dry_run=dry_run)

        need_key = not os.path.exists(key_path)
        if need_key:
            email = email or self._global_email()
            if not email:
                raise ValueError("Email cannot be empty: pass --email or set git user.email")
            protection = " protected by the vault master" if use_vault_passphrase else ""
            result.plan.append(f"Generate ed25519 key {key_path} for {email}{protection}")
        else:
            email = email or extract_email(read_public_key(identity.public_key_path) or "")
            result.plan.append(f"Reuse existing key {key_path}")

        if use_vault_passphrase:
            if not self.vault.is_initialized():
                raise NotInitialized()
            result.plan.append(f"Link '{alias}' to the vault")
        result.plan.append(f"Append Host {alias} (HostName {host_name}) to {config_path}")
        if not skip_agent:
            result.plan.append("Add key to ssh-agent")
        if not skip_signing:
            result.plan.append(f"Register {identity.public_key_path} for commit signing")

        if dry_run:
            return result

        passphrase = self.vault.reveal_master() if use_vault_passphrase else None

        self._ensure_ssh_dir()
        if need_key:
            generated = self.keygen.generate(key_path, email, passphrase or "")
            if not generated.success:
                raise CapabilityError("ssh-keygen", generated.error or "key generation failed")
            result.key_generated = True
            logger.info("Generated %s (%s)", key_path, generated.fingerprint)
        os.chmod(key_path, 0o600)

        doc.append(render_block(alias, host_name, DEFAULT_USER, key_path))
        save_ssh_config(config_path, doc)
        logger.info("Configuration added: %s", alias)

        if use_vault_passphrase:
            self.vault.link_alias(alias)

        if not skip_agent:
            warning = self._agent_add(key_path, passphrase)
            if warning:
                result.warnings.append(warning)
        if not skip_signing:
            warning = self._register_signing(email, identity.public_key_path)
            if warning:
                result.warnings.append(warning)

        for warning in result.warnings:
            logger.debug(warning)
        return result

    def rotate(
        self,
        alias: str,
        email: Optional[str] = None,
        skip_agent: bool = False,
        skip_signing: bool = False,
        dry_run: bool = False,
    ) -> IdentityResult:
        """
        Replace the key material of ``alias``, keeping its Host block.

        The current pair is moved to ``<key>.old-<timestamp>`` before the new
        one is generated. If generation fails, the backups are moved back and
        ``RotationFailed`` is raised. ``dry_run`` returns the plan without
        touching any file.
        """
        config_path = self.settings.ssh_config
        _, block = self._require_block(alias)

        declared = resolve_identity_file(alias, config_path)
        if not declared:
            raise UnresolvedIdentity(alias)
        private_key = self.settings.expand(declared)
        if not os.path.exists(private_key):
            raise UnresolvedIdentity(alias)
        public_key = f"{private_key}.pub"

        identity = Identity(
            alias=alias,
            host_name=block.get("HostName") or DEFAULT_HOST_NAME,
            user=block.get("User") or DEFAULT_USER,
            private_key_path=private_key,
        )
        result = IdentityResult(identity=identity, dry_run=dry_run)

        old_pubkey = read_public_key(public_key)
        email = email or extract_email(old_pubkey or "") or self._global_email()
        if not email:
            raise ValueError("Could not determine an email for the new key: pass --email")

        linked = self.vault.is_linked(alias)
        suffix = unique_backup_suffix(private_key, public_key)
        result.plan.append(f"Move {private_key} and {public_key} to *{suffix}")
        result.plan.append(f"Generate new ed25519 key at {private_key} for {email}"
                           + (" protected by the vault master" if linked else ""))
        if not skip_agent:
            result.plan.append("Add new key to ssh-agent")
        if not skip_signing:
            result.plan.append("Replace old key in trusted signers and re-register signing")

        if dry_run:
            return result

        if not self.keygen.available():
            raise CapabilityMissing(self.keygen.tool, "install OpenSSH")
        passphrase = self.vault.reveal_master() if linked else None

        backup_private = f"{private_key}{suffix}"
        backup_public = f"{public_key}{suffix}"
        moved: List[Tuple[str, str]] = []
        attempted = False

        try:
            self._move_to_backup(private_key, backup_private, moved)
            if os.path.exists(public_key):
                self._move_to_backup(public_key, backup_public, moved)
            logger.info("Backed up %s to %s", private_key, backup_private)

            attempted = True
            generated = self.keygen.generate(private_key, email, passphrase or "")
            failure = None if generated.success else (generated.error or "key generation failed")
        except (GittoolError, OSError) as e:
            failure = str(e)

        if failure:
            self._restore(moved, (private_key, public_key) if attempted else ())
            raise RotationFailed(alias, failure)
        result.backup_paths = (backup_private, backup_public)

        result.key_generated = True
        os.chmod(private_key, 0o600)
        logger.info("Rotated key for %s (%s)", alias, generated.fingerprint)

        if not skip_agent:
            warning = self._agent_add(private_key, passphrase)
            if warning:
                result.warnings.append(warning)

        if not skip_signing:
            if old_pubkey:
                try:
                    trust.remove_key(old_pubkey, self.settings.allowed_signers)
                except (ValueError, OSError) as e:
                    result.warnings.append(f"Could not prune old key from trusted signers: {e}")
            warning = self._register_signing(email, public_key)
            if warning:
                result.warnings.append(warning)

        for warning in result.warnings:
            logger.debug(warning)
        return result

    @staticmethod
    def _move_to_backup(path: str, backup: str, moved: List[Tuple[str, str]]):
        # os.rename silently replaces an existing target
        if os.path.exists(backup):
            raise FileExistsError(f"Backup already exists: {backup}")
        os.rename(path, backup)
        moved.append((path, backup))

    def _restore(self, moved: List[Tuple[str, str]], partials: Tuple[str, ...]):
        """Put the backed-up files back in place after a failed rotation."""
        for partial in partials:
            if os.path.exists(partial):
                os.remove(partial)
        for original, backup in moved:
            os.rename(backup, original)
        logger.info("Rotation failed; restored %s", ", ".join(o for o, _ in moved) or "nothing")

    def remove(self, alias: str) -> bool:
        """
        Delete the Host block of ``alias`` and its ``id_ed25519_<alias>`` pair.

        Only the conventional key files are deleted, and only when no other
        Host block still uses them. Keys registered from another path stay
        on disk.

        Returns:
            False when the alias has no Host block (nothing is touched)
        """
        config_path = self.settings.ssh_config
        if not os.path.exists(config_path):
            return False
        doc = load_ssh_config(config_path)
        if doc.find(alias) is None:
            return False

        doc.remove(alias)
        still_used = {
            self.settings.expand(b.get("IdentityFile"))
            for b in doc.blocks if b.get("IdentityFile")
        }
        private_key = self.settings.key_path(alias)
        delete_key = os.path.exists(private_key) and private_key not in still_used

        if delete_key:
            try:
                self.agent.remove(private_key)
            except (AgentUnavailable, CapabilityError) as e:
                logger.debug("ssh-add -d %s: %s", private_key, e)

        save_ssh_config(config_path, doc)

        if delete_key:
            for path in (private_key, f"{private_key}.pub"):
                if os.path.exists(path):
                    os.remove(path)
                    logger.info("Removed %s", path)
        elif os.path.exists(private_key):
            logger.info("Keeping %s, still used by another Host block", private_key)

        self.vault.unlink_alias(alias)
        return True

    def unlock(self, alias: str) -> UnlockResult:
        """
        Load the key for a vault-linked alias into ssh-agent.

        Raises:
            NotVaultLinked: The alias is not in the vault's ``ssh_hosts``; no
                agent call is made
            UnresolvedIdentity: No IdentityFile for the alias
        """
        if not self.vault.is_linked(alias):
            raise NotVaultLinked(alias)

        declared = resolve_identity_file(alias, self.settings.ssh_config)
        if not declared:
            raise UnresolvedIdentity(alias)
        private_key = self.settings.expand(declared)

        try:
            if self.agent.contains(private_key):
                return UnlockResult(alias=alias, unlocked=True, already_loaded=True)
        except AgentUnavailable as e:
            return UnlockResult(alias=alias, unlocked=False, warning=str(e))

        master = self.vault.reveal_master()
        warning = self._agent_add(private_key, master)
        if warning:
            logger.debug(warning)
            return UnlockResult(alias=alias, unlocked=False, warning=warning)
        return UnlockResult(alias=alias, unlocked=True)

    def list(self) -> AliasListing:
        config_path = self.settings.ssh_config
        if not os.path.exists(config_path):
            return AliasListing(configured=False, config_path=config_path, aliases=iter(()))
        return AliasListing(configured=True, config_path=config_path,
                            aliases=iter_aliases(config_path))

    def show(self, alias: str, now: Optional[datetime] = None) -> IdentityDetails:
        _, block = self._require_block(alias)

        declared = block.get("IdentityFile")
        private_key = self.settings.expand(declared) if declared else None
        public_key = f"{private_key}.pub" if private_key else None

        details = IdentityDetails(
            alias=alias,
            host_name=block.get("HostName"),
            user=block.get("User"),
            identity_file=private_key,
            public_key_path=public_key,
            vault_linked=self.vault.is_linked(alias),
        )
        if not private_key:
            return details

        inspect = public_key if os.path.exists(public_key) else private_key
        if os.path.exists(inspect):
            try:
                info = self.keygen.key_info(inspect)
            except CapabilityMissing:
                info = None
            if info:
                details.key_type = info.key_type
                details.fingerprint = info.fingerprint
                details.comment = info.comment
            details.created = datetime.fromtimestamp(os.stat(inspect).st_mtime)
            details.age_days = ((now or datetime.now()) - details.created).days

        try:
            details.in_agent = self.agent.contains(private_key)
        except (AgentUnavailable, CapabilityError, CapabilityMissing):
            details.in_agent = None

        try:
            details.signing = signing_status(public_key, self.settings.allowed_signers, self.git)
        except CapabilityMissing:
            details.signing = None

        return details

    def find_unconfigured_keys(self, pattern: str) -> List[str]:
        """
        Private keys directly under ``~/.ssh`` whose name contains ``pattern``
        and whose derived alias has no Host block yet.
        """
        ssh_dir = self.settings.ssh_dir
        if not os.path.isdir(ssh_dir):
            return []
        configured = set(load_ssh_config(self.settings.ssh_config).aliases())
        found = []
        for name in sorted(os.listdir(ssh_dir)):
            path = os.path.join(ssh_dir, name)
            if pattern not in name or name.endswith('.pub') or not os.path.isfile(path):
                continue
            if alias_from_key_path(path) not in configured:
                found.append(path)
        return found

    def select_origin(self, alias: str) -> OriginChange:
        """
        Point the current repository's ``origin`` at ``alias``.

        Raises:
            AliasNotFound: No Host block for the alias
            OriginError: Not in a work tree, no origin, or origin is not scp-style SSH
        """
        self._require_block(alias)
        if not self.repo.is_work_tree():
            raise OriginError("Not inside a Git repository.")
        old_url = self.repo.origin_url()
        if not old_url:
            raise OriginError("Remote 'origin' not found.")
        new_url = rewrite_origin_url(old_url, alias)
        self.repo.set_origin_url(new_url)
        logger.info("Updated origin to: %s", new_url)
        return OriginChange(alias=alias, old_url=old_url, new_url=new_url)
