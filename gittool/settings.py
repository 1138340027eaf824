#!/usr/bin/env python3
"""
Filesystem locations and environment-derived settings.

A ``Settings`` value is built once by the caller and passed to every
component; nothing in gittool reads these paths from globals.
"""

import os
import sys
from dataclasses import dataclass
from typing import Mapping, Optional


DEFAULT_HOST_NAME = "github.com"
DEFAULT_USER = "git"
KEY_PREFIX = "id_ed25519_"
DEFAULT_EXPIRY_WARN_DAYS = 5


@dataclass
class Settings:
    """Where gittool keeps its state."""
    home: str
    config_root: str
    interactive: bool = False

    @property
    def config_file(self) -> str:
        return os.path.join(self.config_root, "config")

    @property
    def vault_dir(self) -> str:
        return os.path.join(self.config_root, "vault")

    @property
    def ssh_dir(self) -> str:
        return os.path.join(self.home, ".ssh")

    @property
    def ssh_config(self) -> str:
        return os.path.join(self.ssh_dir, "config")

    @property
    def allowed_signers(self) -> str:
        return os.path.join(self.home, ".config", "git", "allowed_signers")

    def key_path(self, alias: str) -> str:
        """Default private key location for an alias."""
        return os.path.join(self.ssh_dir, f"{KEY_PREFIX}{alias}")

    def expand(self, path: str) -> str:
        """Expand a leading ``~`` against ``home`` and make the path absolute."""
        if path == "~" or path.startswith("~/"):
            path = os.path.join(self.home, path[2:])
        return os.path.abspath(path)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        stdin_isatty: Optional[bool] = None,
    ) -> "Settings":
        """
        Build settings from the process environment.

        Honours ``GITTOOL_CFG_ROOT``, then ``XDG_CONFIG_HOME``; interactive
        prompting is disabled when stdin is not a TTY or when
        ``GITTOOL_NON_INTERACTIVE`` is set.
        """
        env = os.environ if environ is None else environ
        home = env.get("HOME") or os.path.expanduser("~")

        config_root = env.get("GITTOOL_CFG_ROOT")
        if not config_root:
            xdg = env.get("XDG_CONFIG_HOME") or os.path.join(home, ".config")
            config_root = os.path.join(xdg, "gittool")

        if stdin_isatty is None:
            stdin_isatty = sys.stdin is not None and sys.stdin.isatty()
        interactive = stdin_isatty and not env.get("GITTOOL_NON_INTERACTIVE")

        return cls(home=home, config_root=config_root, interactive=bool(interactive))
