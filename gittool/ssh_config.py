#!/usr/bin/env python3
"""
OpenSSH client config handling.

Parses ``~/.ssh/config`` into an ordered list of Host/Match blocks so that
blocks can be looked up, appended and removed without disturbing the rest of
the file, and resolves a host alias to its ``IdentityFile``.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from .errors import ConfigAccessError
from .fileutil import atomic_write, read_text

logger = logging.getLogger("gittool.ssh_config")

_BLOCK_RE = re.compile(r'^\s*(Host|Match)\s+(.*?)\s*$', re.IGNORECASE)
_FIELD_RE = re.compile(r'^\s*([A-Za-z][A-Za-z0-9]*)(?:\s*=\s*|\s+)(.*?)\s*$')


@dataclass
class HostBlock:
    """One ``Host``/``Match`` stanza and the raw lines that belong to it."""
    keyword: str
    pattern: str
    lines: List[str] = field(default_factory=list)
    # set when append() had to terminate the line before this block
    joined: bool = False

    @property
    def alias(self) -> Optional[str]:
        """The alias for single-name ``Host`` blocks, None otherwise."""
        if self.keyword.lower() != 'host':
            return None
        names = self.pattern.split()
        return names[0] if len(names) == 1 else None

    def fields(self) -> Dict[str, str]:
        """First value of each keyword, keyed by lower-cased keyword."""
        values: Dict[str, str] = {}
        for line in self.lines[1:]:
            stripped = line.strip()
            if not stripped or stripped.startswith('#'):
                continue
            match = _FIELD_RE.match(stripped)
            if match:
                values.setdefault(match.group(1).lower(), match.group(2))
        return values

    def get(self, keyword: str) -> Optional[str]:
        return self.fields().get(keyword.lower())


def render_block(alias: str, host_name: str, user: str, identity_file: str) -> HostBlock:
    """Build the Host block gittool writes for a new identity."""
    lines = [
        f"Host {alias}\n",
        "  AddKeysToAgent yes\n",
        f"  HostName {host_name}\n",
        f"  User {user}\n",
        f"  IdentityFile {identity_file}\n",
        "  IdentitiesOnly yes\n",
    ]
    return HostBlock(keyword="Host", pattern=alias, lines=lines)


@dataclass
class SshConfig:
    """Ordered document model of an ssh client config file."""
    preamble: List[str] = field(default_factory=list)
    blocks: List[HostBlock] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> "SshConfig":
        doc = cls()
        current: Optional[HostBlock] = None

        for line in text.splitlines(keepends=True):
            match = _BLOCK_RE.match(line)
            if match:
                current = HostBlock(keyword=match.group(1), pattern=match.group(2), lines=[line])
                doc.blocks.append(current)
            elif current is None:
                doc.preamble.append(line)
            else:
                current.lines.append(line)

        return doc

    def serialize(self) -> str:
        parts = list(self.preamble)
        for block in self.blocks:
            parts.extend(block.lines)
        return "".join(parts)

    def aliases(self) -> List[str]:
        return [b.alias for b in self.blocks if b.alias]

    def find(self, alias: str) -> Optional[HostBlock]:
        for block in self.blocks:
            if block.alias == alias:
                return block
        return None

    def _last_line_holder(self) -> Optional[List[str]]:
        if self.blocks:
            return self.blocks[-1].lines
        return self.preamble or None

    def append(self, block: HostBlock) -> None:
        text = self.serialize()
        if text and not text.endswith('\n'):
            self._last_line_holder()[-1] += '\n'
            block.joined = True
        self.blocks.append(block)

    def remove(self, alias: str) -> bool:
        """Drop the block for ``alias``. Returns False if there was none."""
        removed = False
        while True:
            index = next((i for i, b in enumerate(self.blocks) if b.alias == alias), None)
            if index is None:
                return removed
            block = self.blocks.pop(index)
            removed = True
            if block.joined and index == len(self.blocks):
                holder = self._last_line_holder()
                if holder and holder[-1].endswith('\n'):
                    holder[-1] = holder[-1][:-1]


def load_ssh_config(path: str) -> SshConfig:
    try:
        return SshConfig.parse(read_text(path))
    except PermissionError as e:
        raise ConfigAccessError(path, e.strerror or "permission denied") from e


def save_ssh_config(path: str, doc: SshConfig) -> None:
    """Atomically rewrite the ssh config, creating ``~/.ssh`` as 0700 if needed."""
    ssh_dir = os.path.dirname(os.path.abspath(path))
    if not os.path.isdir(ssh_dir):
        os.makedirs(ssh_dir, exist_ok=True)
        os.chmod(ssh_dir, 0o700)
    try:
        atomic_write(path, doc.serialize(), mode=0o600)
    except PermissionError as e:
        raise ConfigAccessError(path, e.strerror or "permission denied") from e
    logger.debug("Rewrote %s (%d blocks)", path, len(doc.blocks))


def iter_aliases(config_path: str) -> Iterator[str]:
    """Yield single-name Host aliases in file order, reading lazily."""
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            for line in f:
                match = _BLOCK_RE.match(line)
                if not match or match.group(1).lower() != 'host':
                    continue
                names = match.group(2).split()
                if len(names) == 1:
                    yield names[0]
    except PermissionError as e:
        raise ConfigAccessError(config_path, e.strerror or "permission denied") from e


def resolve_identity_file(alias: str, config_path: str) -> Optional[str]:
    """
    Return the ``IdentityFile`` declared in the Host block for ``alias``.

    Reads the file on every call; returns None when the file, the block or
    the field is missing.
    """
    if not os.path.exists(config_path):
        return None
    block = load_ssh_config(config_path).find(alias)
    if block is None:
        return None
    return block.get('IdentityFile')
