#!/usr/bin/env python3
"""
Trusted signers management.

Maintains the allowed_signers file that ``git`` uses to verify SSH commit
signatures (``gpg.ssh.allowedSignersFile``). Entries are
``email [options] keytype key [comment]``.
"""

import os
from typing import List, Dict, Optional

from .fileutil import atomic_write, read_text

KEY_TYPE_PREFIXES = ('ssh-', 'ecdsa-', 'sk-', 'rsa-')


def parse_allowed_signers_line(line: str) -> Optional[Dict]:
    """
    Parse a line from an SSH allowed_signers file.

    Format: identity [cert-authority] [namespaces="ns1,ns2"] keytype key [comment]

    Returns dict with parsed fields or None if invalid/comment.
    """
    line = line.strip()

    # Skip empty lines and comments
    if not line or line.startswith('#'):
        return None

    # Split on whitespace, but preserve quoted sections
    parts = []
    in_quotes = False
    current = ""

    for char in line:
        if char == '"':
            in_quotes = not in_quotes
            current += char
        elif char.isspace() and not in_quotes:
            if current:
                parts.append(current)
                current = ""
        else:
            current += char

    if current:
        parts.append(current)

    if len(parts) < 3:
        return None  # Need at least identity, keytype, key

    result = {
        'identity': parts[0],
        'cert_authority': False,
        'namespaces': None,
        'algorithm': None,
        'key': None,
        'comment': None
    }

    for i in range(1, len(parts)):
        part = parts[i]

        if part == 'cert-authority':
            result['cert_authority'] = True
        elif part.startswith('namespaces='):
            ns_part = part[11:]
            if ns_part.startswith('"') and ns_part.endswith('"'):
                result['namespaces'] = ns_part[1:-1]
        elif part.startswith(KEY_TYPE_PREFIXES):
            result['algorithm'] = part
            if i + 1 < len(parts):
                result['key'] = parts[i + 1]

            # Everything after key is comment
            if i + 2 < len(parts):
                result['comment'] = ' '.join(parts[i + 2:])
            break

    return result if result['algorithm'] and result['key'] else None


def split_pubkey(pubkey: str):
    """Split a public key line into (algorithm, key, comment)."""
    parts = pubkey.strip().split()
    if len(parts) < 2:
        raise ValueError("Invalid public key format")
    return parts[0], parts[1], ' '.join(parts[2:])


def list_signers(allowed_signers_path: str) -> List[Dict]:
    """
    List all signers from allowed_signers file.

    Returns list of dicts with signer information.
    """
    allowed_signers_path = os.path.expanduser(allowed_signers_path)

    if not os.path.exists(allowed_signers_path):
        return []

    signers = []

    with open(allowed_signers_path, 'r') as f:
        for line_num, line in enumerate(f, 1):
            parsed = parse_allowed_signers_line(line)
            if parsed:
                parsed['line_number'] = line_num
                signers.append(parsed)

    return signers


def has_key(pubkey: str, allowed_signers_path: str, identity: Optional[str] = None) -> bool:
    """True if the key (optionally for a given identity) is already trusted."""
    _, key, _ = split_pubkey(pubkey)
    for signer in list_signers(allowed_signers_path):
        if signer['key'] == key and (identity is None or signer['identity'] == identity):
            return True
    return False


def add_signer(identity: str, pubkey: str, allowed_signers_path: str) -> bool:
    """
    Trust a public key for an identity.

    Args:
        identity: Email of the signer
        pubkey: Full public key line (ssh-ed25519 AAAA... comment)
        allowed_signers_path: Path to allowed_signers file

    Returns:
        True if a line was added, False if the entry was already present
    """
    allowed_signers_path = os.path.expanduser(allowed_signers_path)
    algorithm, key, comment = split_pubkey(pubkey)

    if has_key(pubkey, allowed_signers_path, identity):
        return False

    line = f'{identity} {algorithm} {key}'
    if comment:
        line += f' {comment}'

    content = read_text(allowed_signers_path)
    if content and not content.endswith('\n'):
        content += '\n'
    atomic_write(allowed_signers_path, content + line + '\n', mode=0o644)
    return True


def remove_key(pubkey: str, allowed_signers_path: str) -> int:
    """
    Drop every entry that trusts the given public key.

    Returns:
        Number of lines removed
    """
    allowed_signers_path = os.path.expanduser(allowed_signers_path)
    if not os.path.exists(allowed_signers_path):
        return 0

    _, key, _ = split_pubkey(pubkey)

    with open(allowed_signers_path, 'r') as f:
        lines = f.readlines()

    new_lines = []
    for line in lines:
        parsed = parse_allowed_signers_line(line)
        if parsed and parsed['key'] == key:
            continue
        new_lines.append(line)

    removed = len(lines) - len(new_lines)
    if removed:
        atomic_write(allowed_signers_path, ''.join(new_lines), mode=0o644)
    return removed
