#!/usr/bin/env python3
"""
Pointing a repository's ``origin`` at a host alias.

``git@github.com:me/repo.git`` becomes ``git@work:me/repo.git`` so that ssh
picks the ``Host work`` block and its key for that repository.
"""

import re
import shutil
import subprocess
from typing import Optional

from .errors import CapabilityError, CapabilityMissing, OriginError

SSH_URL_RE = re.compile(r'^git@([^:]+):(.+)$')


def rewrite_origin_url(url: str, alias: str) -> str:
    """Replace the host of an scp-style SSH URL with ``alias``."""
    match = SSH_URL_RE.match(url.strip())
    if not match:
        raise OriginError("Origin is not an SSH URL (git@host:path).")
    return f"git@{alias}:{match.group(2)}"


class GitRepo:
    """The git repository at ``path`` (default: the working directory)."""

    tool = "git"

    def __init__(self, path: Optional[str] = None):
        self.path = path or "."

    def available(self) -> bool:
        return shutil.which(self.tool) is not None

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        if not self.available():
            raise CapabilityMissing(self.tool)
        return subprocess.run(
            [self.tool, "-C", self.path] + list(args),
            capture_output=True,
            text=True
        )

    def is_work_tree(self) -> bool:
        result = self._run("rev-parse", "--is-inside-work-tree")
        return result.returncode == 0 and result.stdout.strip() == "true"

    def origin_url(self) -> Optional[str]:
        result = self._run("remote", "get-url", "origin")
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def set_origin_url(self, url: str) -> None:
        result = self._run("remote", "set-url", "origin", url)
        if result.returncode != 0:
            raise CapabilityError(self.tool, result.stderr or "could not update origin")
