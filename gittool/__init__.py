"""gittool library."""

from .config_store import ConfigStore
from .errors import (
    GittoolError,
    AlreadyInitialized,
    NotInitialized,
    ConfigAccessError,
    InvalidAlias,
    AliasExists,
    AliasNotFound,
    UnresolvedIdentity,
    RotationFailed,
    NotVaultLinked,
    OriginError,
    AgentUnavailable,
    CapabilityMissing,
    CapabilityError,
)
from .identity import (
    Identity,
    IdentityDetails,
    IdentityManager,
    IdentityResult,
    UnlockResult,
    AliasListing,
    OriginChange,
)
from .settings import Settings
from .ssh_config import resolve_identity_file
from .vault import VaultManager, VaultHandle, VaultStatus

__version__ = "0.1.0"
__all__ = [
    "ConfigStore",
    "GittoolError",
    "AlreadyInitialized",
    "NotInitialized",
    "ConfigAccessError",
    "InvalidAlias",
    "AliasExists",
    "AliasNotFound",
    "UnresolvedIdentity",
    "RotationFailed",
    "NotVaultLinked",
    "OriginError",
    "AgentUnavailable",
    "CapabilityMissing",
    "CapabilityError",
    "Identity",
    "IdentityDetails",
    "IdentityManager",
    "IdentityResult",
    "UnlockResult",
    "AliasListing",
    "OriginChange",
    "Settings",
    "resolve_identity_file",
    "VaultManager",
    "VaultHandle",
    "VaultStatus",
]
