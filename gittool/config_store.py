#!/usr/bin/env python3
"""
Sectioned key=value config store.

File format::

    vault_expiry_warn_days=5

    [vault]
    provider=local
    path=/home/me/.config/gittool/vault/vault-0123456789abcdef.gpg
    ssh_hosts=work,personal

A ``[name]`` line starts a section that runs until the next ``[...]`` line or
end of file. Lines before the first section are the preamble and hold
top-level settings. Rewriting one section leaves every other section
byte-for-byte intact.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .errors import ConfigAccessError
from .fileutil import atomic_write, read_text

logger = logging.getLogger("gittool.config")

_SECTION_RE = re.compile(r'^\[([^\[\]]+)\]\s*$')


def parse_entries(lines: List[str]) -> Dict[str, str]:
    """Collect ``key=value`` pairs from raw lines, ignoring comments and blanks."""
    entries: Dict[str, str] = {}
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith(('#', ';')) or '=' not in stripped:
            continue
        key, value = stripped.split('=', 1)
        entries[key.strip()] = value.strip()
    return entries


@dataclass
class Section:
    """A named section and its raw lines (header included)."""
    name: str
    lines: List[str] = field(default_factory=list)

    def entries(self) -> Dict[str, str]:
        return parse_entries(self.lines[1:])

    @classmethod
    def render(cls, name: str, entries: Dict[str, str]) -> "Section":
        lines = [f"[{name}]\n"]
        lines.extend(f"{key}={value}\n" for key, value in entries.items())
        return cls(name=name, lines=lines)


@dataclass
class ConfigDocument:
    """Ordered in-memory view of a config file."""
    preamble: List[str] = field(default_factory=list)
    sections: List[Section] = field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> "ConfigDocument":
        doc = cls()
        current: Optional[Section] = None

        for line in text.splitlines(keepends=True):
            match = _SECTION_RE.match(line.strip())
            if match:
                current = Section(name=match.group(1).strip(), lines=[line])
                doc.sections.append(current)
            elif current is None:
                doc.preamble.append(line)
            else:
                current.lines.append(line)

        return doc

    def serialize(self) -> str:
        parts = list(self.preamble)
        for section in self.sections:
            parts.extend(section.lines)
        return "".join(parts)

    def find(self, name: str) -> Optional[Section]:
        for section in self.sections:
            if section.name == name:
                return section
        return None

    def replace(self, section: Section) -> None:
        """Drop any section with the same name and append ``section`` last."""
        self.sections = [s for s in self.sections if s.name != section.name]

        # Keep the appended header on its own line.
        text_before = self.serialize()
        if text_before and not text_before.endswith('\n'):
            if self.sections:
                self.sections[-1].lines[-1] += '\n'
            else:
                self.preamble[-1] += '\n'

        self.sections.append(section)

    def settings(self) -> Dict[str, str]:
        return parse_entries(self.preamble)


class ConfigStore:
    """Reads and writes named sections of a single config file."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> ConfigDocument:
        try:
            return ConfigDocument.parse(read_text(self.path))
        except PermissionError as e:
            raise ConfigAccessError(self.path, e.strerror or "permission denied") from e

    def read_section(self, name: str) -> Optional[Dict[str, str]]:
        """Return the section's key/value mapping, or None if it is absent."""
        section = self.load().find(name)
        if section is None:
            return None
        return section.entries()

    def read_setting(self, key: str) -> Optional[str]:
        """Return a top-level setting from outside any section."""
        return self.load().settings().get(key)

    def write_section(
        self,
        name: str,
        mutate: Callable[[Dict[str, str]], Dict[str, str]],
    ) -> Dict[str, str]:
        """
        Apply ``mutate`` to a section and persist the whole file atomically.

        Args:
            name: Section name (without brackets)
            mutate: Receives a copy of the current mapping (empty if the
                section is new) and returns the mapping to store

        Returns:
            The mapping that was written
        """
        doc = self.load()
        existing = doc.find(name)
        current = existing.entries() if existing else {}

        updated = mutate(dict(current))
        doc.replace(Section.render(name, updated))

        try:
            atomic_write(self.path, doc.serialize())
        except PermissionError as e:
            raise ConfigAccessError(self.path, e.strerror or "permission denied") from e

        logger.debug("Wrote section [%s] to %s (%d keys)", name, self.path, len(updated))
        return updated
