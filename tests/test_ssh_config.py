#!/usr/bin/env python3
"""
Tests for ssh config parsing, block edits and alias resolution.
"""

import os
import stat
import tempfile

import pytest

from gittool.ssh_config import (
    SshConfig,
    iter_aliases,
    load_ssh_config,
    render_block,
    resolve_identity_file,
    save_ssh_config,
)


CONFIG = """# managed by hand
Include ~/.ssh/extra

Host work
  AddKeysToAgent yes
  HostName github.com
  User git
  IdentityFile ~/.ssh/id_ed25519_work
  IdentitiesOnly yes
Host personal
    HostName=gitlab.com
    identityfile /keys/personal

Host *.internal bastion
  User admin
Match host foo
  User bar
"""


def test_parse_blocks():
    doc = SshConfig.parse(CONFIG)

    assert doc.preamble == ["# managed by hand\n", "Include ~/.ssh/extra\n", "\n"]
    assert [b.pattern for b in doc.blocks] == ["work", "personal", "*.internal bastion", "host foo"]
    assert doc.aliases() == ["work", "personal"]
    assert doc.serialize() == CONFIG


def test_block_fields_case_insensitive():
    doc = SshConfig.parse(CONFIG)

    work = doc.find("work")
    assert work.get("HostName") == "github.com"
    assert work.get("identityfile") == "~/.ssh/id_ed25519_work"

    personal = doc.find("personal")
    assert personal.get("HostName") == "gitlab.com"
    assert personal.get("IdentityFile") == "/keys/personal"
    assert personal.get("User") is None


def test_multi_pattern_and_match_blocks_have_no_alias():
    doc = SshConfig.parse(CONFIG)
    assert doc.find("bastion") is None
    assert doc.blocks[3].alias is None


def test_render_block():
    block = render_block("demo", "github.com", "git", "/home/me/.ssh/id_ed25519_demo")
    assert "".join(block.lines) == (
        "Host demo\n"
        "  AddKeysToAgent yes\n"
        "  HostName github.com\n"
        "  User git\n"
        "  IdentityFile /home/me/.ssh/id_ed25519_demo\n"
        "  IdentitiesOnly yes\n"
    )
    assert block.alias == "demo"


def test_append_then_remove_restores_bytes():
    doc = SshConfig.parse(CONFIG)
    doc.append(render_block("new", "github.com", "git", "/k/new"))
    assert doc.find("new") is not None

    assert doc.remove("new")
    assert doc.serialize() == CONFIG


def test_remove_keeps_neighbours():
    doc = SshConfig.parse(CONFIG)
    assert doc.remove("work")
    text = doc.serialize()

    assert "Host work" not in text
    assert "id_ed25519_work" not in text
    assert "Host personal\n" in text
    assert not doc.remove("work")


def test_append_to_unterminated_file():
    doc = SshConfig.parse("Host a\n  User git")
    doc.append(render_block("b", "h", "git", "/k/b"))
    assert doc.serialize().startswith("Host a\n  User git\nHost b\n")


def test_append_then_remove_on_unterminated_file_restores_bytes():
    for text in ("Host a\n  User git", "# only a comment"):
        doc = SshConfig.parse(text)
        doc.append(render_block("b", "h", "git", "/k/b"))
        assert doc.remove("b")
        assert doc.serialize() == text


def test_resolve_identity_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "config")
        with open(path, 'w') as f:
            f.write(CONFIG)

        assert resolve_identity_file("work", path) == "~/.ssh/id_ed25519_work"
        assert resolve_identity_file("personal", path) == "/keys/personal"
        assert resolve_identity_file("missing", path) is None
        assert resolve_identity_file("work", os.path.join(tmpdir, "nope")) is None

        # Always reflects the latest write
        doc = load_ssh_config(path)
        doc.remove("work")
        save_ssh_config(path, doc)
        assert resolve_identity_file("work", path) is None


def test_iter_aliases_in_file_order():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "config")
        with open(path, 'w') as f:
            f.write(CONFIG)

        aliases = iter_aliases(path)
        assert next(aliases) == "work"
        assert list(aliases) == ["personal"]


def test_save_creates_private_ssh_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, ".ssh", "config")
        doc = SshConfig()
        doc.append(render_block("a", "github.com", "git", "/k/a"))

        save_ssh_config(path, doc)

        assert stat.S_IMODE(os.stat(os.path.dirname(path)).st_mode) == 0o700
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
        assert load_ssh_config(path).aliases() == ["a"]


if __name__ == "__main__":
    pytest.main([__file__])
