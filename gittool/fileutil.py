#!/usr/bin/env python3
"""
Small filesystem helpers shared by the config writers.
"""

import os
import tempfile


def atomic_write(path: str, text: str, mode: int = 0o600) -> None:
    """
    Replace ``path`` with ``text`` via a temp file in the same directory.

    The temp file is flushed, fsynced and renamed over the target, so an
    interrupted write never leaves a truncated file behind.
    """
    parent = os.path.dirname(os.path.abspath(path))
    os.makedirs(parent, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode='w', delete=False, dir=parent, prefix='.tmp-', encoding='utf-8'
    ) as tmp:
        tmp.write(text)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_path = tmp.name

    try:
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


def read_text(path: str) -> str:
    """Read a text file, returning an empty string when it does not exist."""
    if not os.path.exists(path):
        return ""
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()
