#!/usr/bin/env python3
"""
CLI for gittool: per-remote SSH identities unlocked by a GPG-encrypted vault.
"""

import argparse
import logging
import os
import sys
from datetime import date

from .config_store import ConfigStore
from .errors import AliasExists, AlreadyInitialized, GittoolError
from .identity import IdentityManager
from .prompts import Prompter
from .settings import DEFAULT_EXPIRY_WARN_DAYS, DEFAULT_HOST_NAME, Settings
from .vault import EXTERNAL, LOCAL, VaultManager


def build_managers():
    """Wire the components from the process environment."""
    settings = Settings.from_env()
    store = ConfigStore(settings.config_file)
    vault = VaultManager(store, settings)
    return settings, store, vault, IdentityManager(settings, vault)


def print_warnings(warnings):
    for warning in warnings:
        print(f"Warning: {warning}", file=sys.stderr)


def warn_days(store: ConfigStore) -> int:
    raw = store.read_setting("vault_expiry_warn_days")
    try:
        return int(raw) if raw else DEFAULT_EXPIRY_WARN_DAYS
    except ValueError:
        return DEFAULT_EXPIRY_WARN_DAYS


def pick(settings: Settings, question: str, options):
    """One option is taken as is; several need an interactive choice."""
    if len(options) == 1:
        return options[0]
    if not settings.interactive:
        raise ValueError(f"Several candidates, name one explicitly: {', '.join(options)}")
    return Prompter().choose(question, options)


def resolve_key_argument(settings: Settings, identities: IdentityManager, key: str) -> str:
    """A path to an existing key, or a pattern matched against unconfigured keys in ~/.ssh."""
    candidate = key[:-4] if key.endswith('.pub') else key
    if os.path.isfile(settings.expand(candidate)):
        return settings.expand(candidate)
    matches = identities.find_unconfigured_keys(key)
    if not matches:
        raise ValueError(f"No unconfigured key matching '{key}' in {settings.ssh_dir}")
    return pick(settings, "Select a key", matches)


def cmd_vault_init(args):
    """Initialize the vault."""
    _, _, vault, _ = build_managers()
    try:
        handle = vault.initialize(
            password=args.password or "",
            key_id=args.key_id,
            expiry_days=args.expires_days,
            provider=args.provider,
        )
    except AlreadyInitialized as e:
        print(str(e))
        return 0

    if handle.generated_secret:
        print("Generated master secret (DO NOT SHARE).", file=sys.stderr)
    print(f"✓ Vault initialized at {handle.path} (GPG key {handle.key_id})")
    if handle.expires:
        print(f"Expires: {handle.expires.isoformat()}")
    return 0


def cmd_vault_show_master(args):
    """Decrypt and print the master secret."""
    _, _, vault, _ = build_managers()
    print(vault.reveal_master())
    return 0


def cmd_vault_update_expiration(args):
    """Set a new vault expiry."""
    _, _, vault, _ = build_managers()
    expires = vault.renew(args.days)
    print(f"✓ Vault expiration set to {expires.isoformat() if expires else 'never'}")
    return 0


def cmd_vault_status(args):
    """Show vault state and expiry warnings."""
    _, store, vault, _ = build_managers()
    status = vault.status(date.today())

    if not status.initialized:
        print("Vault is not initialized. Run 'gt vault init' first.")
        return 1

    print(f"Provider: {status.provider}")
    print(f"Path: {status.path}")
    print(f"Expires: {status.expires.isoformat() if status.expires else 'never'}")
    print(f"Linked aliases: {', '.join(status.linked_aliases) or '(none)'}")

    if status.expired:
        print("Your vault has expired. Run: gt vault update-expiration <days>", file=sys.stderr)
        return 1
    if status.days_left is not None and status.days_left <= warn_days(store):
        print(f"Your vault will expire in {status.days_left} day(s).", file=sys.stderr)
    return 0


def cmd_ssh_add(args):
    """Create an identity for an alias, or register an existing key."""
    settings, _, _, identities = build_managers()
    if not args.alias and not args.key:
        print("Error: give an alias, --key, or both", file=sys.stderr)
        return 1
    key_path = resolve_key_argument(settings, identities, args.key) if args.key else None
    try:
        result = identities.add(
            args.alias,
            key_path=key_path,
            host_name=args.host,
            email=args.email,
            use_vault_passphrase=args.vault,
            skip_agent=args.no_agent,
            skip_signing=args.no_sign,
            dry_run=args.dry_run,
        )
    except AliasExists as e:
        print(str(e))
        return 0

    if result.dry_run:
        print(f"Dry run for '{result.identity.alias}', nothing changed:")
        for step in result.plan:
            print(f"  - {step}")
        return 0

    print_warnings(result.warnings)
    print(f"✓ Configuration added: {result.identity.alias}")
    print(f"Public key: {result.identity.public_key_path}")
    return 0


def cmd_ssh_rotate(args):
    """Rotate the key of an alias."""
    _, _, _, identities = build_managers()
    result = identities.rotate(
        args.alias,
        email=args.email,
        skip_agent=args.no_agent,
        skip_signing=args.no_sign,
        dry_run=args.dry_run,
    )

    if result.dry_run:
        print(f"Dry run for '{args.alias}', nothing changed:")
        for step in result.plan:
            print(f"  - {step}")
        return 0

    print_warnings(result.warnings)
    print(f"✓ Rotated key for {args.alias}")
    if result.backup_paths:
        print(f"Backup: {result.backup_paths[0]}")
    print(f"Add the new public key to your Git provider: {result.identity.public_key_path}")
    return 0


def cmd_ssh_remove(args):
    """Remove an alias and its keys."""
    settings, _, _, identities = build_managers()
    if not identities.remove(args.alias):
        print(f"Host '{args.alias}' not found in {settings.ssh_config}.")
        return 0
    print(f"✓ Removed '{args.alias}'")
    return 0


def cmd_ssh_unlock(args):
    """Load a vault-linked key into ssh-agent."""
    _, _, _, identities = build_managers()
    result = identities.unlock(args.alias)

    if result.already_loaded:
        print(f"Key for '{args.alias}' is already loaded in ssh-agent")
    elif result.unlocked:
        print(f"✓ Unlocked '{args.alias}'")
    else:
        print_warnings([result.warning])
        return 1
    return 0


def cmd_ssh_list(args):
    """List configured aliases."""
    _, _, _, identities = build_managers()
    listing = identities.list()

    if not listing.configured:
        print(f"No SSH config file found at {listing.config_path}.")
        return 0

    print(f"Current HostAliases in {listing.config_path}:")
    for alias in listing.aliases:
        print(alias)
    return 0


def cmd_ssh_select(args):
    """Point the origin of the current repository at an alias."""
    _, _, _, identities = build_managers()
    alias = args.alias
    if not alias:
        listing = identities.list()
        if not listing.configured:
            print("No SSH config file found.", file=sys.stderr)
            return 1
        aliases = list(listing.aliases)
        if not aliases:
            print("No HostAliases configured.", file=sys.stderr)
            return 1
        alias = pick(identities.settings, "Select a HostAlias", aliases)

    change = identities.select_origin(alias)
    print(f"Updated origin to: {change.new_url}")
    return 0


def cmd_ssh_show(args):
    """Show details of one alias."""
    _, _, _, identities = build_managers()
    details = identities.show(args.alias)

    def fmt(value):
        if value is None:
            return "unknown"
        if isinstance(value, bool):
            return "yes" if value else "no"
        return str(value)

    print(f"Alias: {details.alias}")
    print(f"HostName: {fmt(details.host_name)}")
    print(f"User: {fmt(details.user)}")
    print(f"IdentityFile: {fmt(details.identity_file)}")
    print(f"Key type: {fmt(details.key_type)}")
    print(f"Fingerprint: {fmt(details.fingerprint)}")
    if details.created:
        print(f"Created: {details.created.isoformat(timespec='seconds')} ({details.age_days} days ago)")
    print(f"In ssh-agent: {fmt(details.in_agent)}")
    print(f"Vault linked: {fmt(details.vault_linked)}")
    if details.signing:
        print(f"Trusted signer: {fmt(details.signing.trusted)}")
        print(f"Signing key: {fmt(details.signing.is_signing_key)}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog="gt",
        description="Per-remote SSH identities unlocked by a GPG-encrypted vault"
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Show debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # gt vault
    vault_parser = subparsers.add_parser('vault', help='Manage the master secret vault')
    vault_sub = vault_parser.add_subparsers(dest='vault_command', help='Vault commands')

    init_parser = vault_sub.add_parser('init', help='Initialize the vault')
    init_parser.add_argument('key_id', nargs='?', help='GPG key id (default: first key, generated if none)')
    init_parser.add_argument('--password', '-p', help='Master password (default: prompt or generate)')
    init_parser.add_argument('--expires-days', type=int, default=0, help='Days until expiry (0 = never)')
    init_parser.add_argument('--provider', choices=[LOCAL, EXTERNAL], default=LOCAL,
                             help='local master password or external password manager session')
    init_parser.set_defaults(func=cmd_vault_init)

    show_parser = vault_sub.add_parser('show-master', help='Decrypt and print the master secret')
    show_parser.set_defaults(func=cmd_vault_show_master)

    expire_parser = vault_sub.add_parser('update-expiration', help='Set vault expiry in days (0 = never)')
    expire_parser.add_argument('days', type=int, help='Days from today')
    expire_parser.set_defaults(func=cmd_vault_update_expiration)

    status_parser = vault_sub.add_parser('status', help='Show vault status')
    status_parser.set_defaults(func=cmd_vault_status)

    # gt ssh
    ssh_parser = subparsers.add_parser('ssh', help='Manage SSH identities')
    ssh_sub = ssh_parser.add_subparsers(dest='ssh_command', help='SSH commands')

    add_parser = ssh_sub.add_parser('add', help='Create a key and Host block for an alias')
    add_parser.add_argument('alias', nargs='?', help='Host alias (e.g. personal; default: derived from --key)')
    add_parser.add_argument('--key', help='Register an existing key: a path, or a pattern matched in ~/.ssh')
    add_parser.add_argument('--host', default=DEFAULT_HOST_NAME, help=f'HostName (default: {DEFAULT_HOST_NAME})')
    add_parser.add_argument('--email', help='Email for the key comment (default: git user.email)')
    add_parser.add_argument('--vault', action='store_true', help='Protect the key with the vault master')
    add_parser.add_argument('--no-agent', action='store_true', help='Do not add the key to ssh-agent')
    add_parser.add_argument('--no-sign', action='store_true', help='Do not set up commit signing')
    add_parser.add_argument('--dry-run', action='store_true', help='Show the plan without changing anything')
    add_parser.set_defaults(func=cmd_ssh_add)

    rotate_parser = ssh_sub.add_parser('rotate', help='Replace the key of an alias')
    rotate_parser.add_argument('alias', help='Host alias')
    rotate_parser.add_argument('--email', help='Email for the new key (default: from the old key)')
    rotate_parser.add_argument('--no-agent', action='store_true', help='Do not add the key to ssh-agent')
    rotate_parser.add_argument('--no-sign', action='store_true', help='Do not update commit signing')
    rotate_parser.add_argument('--dry-run', action='store_true', help='Show the plan without changing anything')
    rotate_parser.set_defaults(func=cmd_ssh_rotate)

    remove_parser = ssh_sub.add_parser('remove', help='Remove an alias and its key files')
    remove_parser.add_argument('alias', help='Host alias')
    remove_parser.set_defaults(func=cmd_ssh_remove)

    unlock_parser = ssh_sub.add_parser('unlock', help='Load a vault-linked key into ssh-agent')
    unlock_parser.add_argument('alias', help='Host alias')
    unlock_parser.set_defaults(func=cmd_ssh_unlock)

    list_parser = ssh_sub.add_parser('list', help='List configured Host aliases')
    list_parser.set_defaults(func=cmd_ssh_list)

    select_parser = ssh_sub.add_parser('select', help='Point origin of the current repository at an alias')
    select_parser.add_argument('alias', nargs='?', help='Host alias (default: choose from the configured ones)')
    select_parser.set_defaults(func=cmd_ssh_select)

    detail_parser = ssh_sub.add_parser('show', help='Show details of an alias')
    detail_parser.add_argument('alias', help='Host alias')
    detail_parser.set_defaults(func=cmd_ssh_show)

    return parser, {'vault': vault_parser, 'ssh': ssh_parser}


def main(argv=None):
    """Main CLI entry point."""
    parser, group_parsers = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.command:
        parser.print_help()
        return 1

    if not hasattr(args, 'func'):
        group_parsers[args.command].print_help()
        return 1

    try:
        return args.func(args)
    except (GittoolError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
