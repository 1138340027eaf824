#!/usr/bin/env python3
"""
Error types raised by gittool.

Every error carries a human-readable message that callers print verbatim.
"""

from typing import Optional


class GittoolError(Exception):
    """Base class for all gittool errors."""


class ConfigAccessError(GittoolError):
    """A config file could not be read or written because of permissions."""

    def __init__(self, path: str, reason: str = "permission denied"):
        super().__init__(f"Cannot access config file {path}: {reason}")
        self.path = path


class AlreadyInitialized(GittoolError):
    """A vault blob already exists for the requested provider."""

    def __init__(self, path: str, provider: str = "local"):
        super().__init__(f"Vault is already initialized ({provider}): {path}")
        self.path = path
        self.provider = provider


class NotInitialized(GittoolError):
    def __init__(self, message: str = "Vault is not initialized. Run 'gt vault init' first."):
        super().__init__(message)


class InvalidAlias(GittoolError):
    def __init__(self, alias: str, reason: str):
        super().__init__(f"Invalid alias '{alias}': {reason}")
        self.alias = alias


class AliasExists(GittoolError):
    def __init__(self, alias: str, config_path: str):
        super().__init__(f"Configuration for '{alias}' already exists in {config_path}")
        self.alias = alias


class AliasNotFound(GittoolError):
    def __init__(self, alias: str, config_path: str):
        super().__init__(f"Host '{alias}' not found in {config_path}")
        self.alias = alias


class UnresolvedIdentity(GittoolError):
    def __init__(self, alias: str):
        super().__init__(f"Could not resolve IdentityFile for alias '{alias}'")
        self.alias = alias


class RotationFailed(GittoolError):
    """Key generation failed during rotation; the previous key pair was restored."""

    def __init__(self, alias: str, reason: str):
        super().__init__(f"Rotation of '{alias}' failed, previous key restored: {reason}")
        self.alias = alias
        self.reason = reason


class NotVaultLinked(GittoolError):
    def __init__(self, alias: str):
        super().__init__(
            f"Alias '{alias}' is not linked to the vault; refusing to unlock it"
        )
        self.alias = alias


class AgentUnavailable(GittoolError):
    """ssh-agent cannot be reached. Always degraded to a warning by the core."""

    def __init__(self, reason: str = "ssh-agent is not running"):
        super().__init__(reason)


class CapabilityMissing(GittoolError):
    """A required external tool is not installed."""

    def __init__(self, tool: str, hint: Optional[str] = None):
        message = f"{tool} is required but not installed"
        if hint:
            message += f" ({hint})"
        super().__init__(message)
        self.tool = tool


class CapabilityError(GittoolError):
    """An external tool is installed but the call failed."""

    def __init__(self, tool: str, detail: str):
        super().__init__(f"{tool} failed: {detail.strip()}")
        self.tool = tool
        self.detail = detail


class OriginError(GittoolError):
    """The current repository's ``origin`` cannot be pointed at an alias."""
