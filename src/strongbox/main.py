#!/usr/bin/env python3
"""Strongbox - a local, single-user secret store.

A master password unlocks the vault's X25519 private key; every credential
is sealed for the vault public key with a one-shot ephemeral key pair.
Uses SQLite storage and libsodium cryptography via pynacl.
"""

import argparse
import sys

from . import __version__
from .config import Settings
from .errors import ErrorKind, NotFound, ValidationFailure, VaultError
from .interaction import confirm, copy_to_clipboard, get_password, read_line, read_secret
from .service import VaultService

# Exit codes per error kind; an existing vault on init is not a failure
EXIT_CODES = {
    ErrorKind.AUTHENTICATION_FAILURE: 1,
    ErrorKind.VALIDATION_FAILURE: 1,
    ErrorKind.NOT_FOUND: 1,
    ErrorKind.ALREADY_EXISTS: 0,
    ErrorKind.STORAGE_FAILURE: 1,
}


def get_service(args) -> VaultService:
    return VaultService.from_settings(Settings.from_env(getattr(args, "home", None)))


def read_new_secret() -> bytes:
    """Prompt for a secret twice; mismatch aborts."""
    secret = read_secret("Secret: ")
    again = read_secret("Confirm secret: ")
    if secret != again:
        raise ValidationFailure("Entered secrets do not match")
    if not secret:
        raise ValidationFailure("Secret must not be empty")
    return secret


def output_secret(secret: bytes, show: bool) -> None:
    if show:
        print(secret.decode("utf-8", errors="replace"))
        return

    if copy_to_clipboard(secret):
        print("(copied to clipboard)")
    else:
        print("Clipboard unavailable; re-run with --show to print the secret", file=sys.stderr)


def cmd_init(args):
    """Create a new vault."""
    service = get_service(args)

    if service.is_initialized():
        print(f"Vault already initialized: {service.settings.db_path}", file=sys.stderr)
        return

    password = get_password("Enter master password: ")
    confirmation = get_password("Confirm master password: ")
    service.init(password, confirmation)

    print(f"Vault created at {service.settings.db_path}")


def cmd_add(args):
    """Add a credential, asking before overwriting an existing one."""
    service = get_service(args)
    service.store.get_vault_record()

    overwrite = args.force
    if not overwrite and service.exists(args.label, args.user):
        print(f"Credential {args.label} ({args.user}) already exists")
        if not confirm("Overwrite the credential?"):
            print("Cancelled.")
            return
        overwrite = True

    password = get_password("Enter master password: ")
    record = service.add(args.label, args.user, read_new_secret, password, overwrite=overwrite)
    print(f"Saved {record.display_name}.")


def cmd_get(args):
    """Decrypt one credential by exact label and user."""
    service = get_service(args)
    service.store.get_vault_record()
    credential = service.lookup(args.label, args.user)

    password = get_password("Enter master password: ")
    secret = service.reveal(credential, password, "GET")
    output_secret(secret, args.show)


def cmd_search(args):
    """Fuzzy search and decrypt the best match."""
    service = get_service(args)
    service.store.get_vault_record()

    results = service.find(args.label, args.user or "")
    if not results:
        print("View existing credentials with 'strongbox list'", file=sys.stderr)
        raise NotFound("No suitable match found")

    if args.list:
        print(f"{'ID':<4} {'LABEL':<20} {'USER':<20} {'SCORE':>6}")
        print("─" * 53)
        for result in results:
            c = result.credential
            print(f"{c.id:<4} {truncate(c.label, 20):<20} {truncate(c.user, 20):<20} {result.score:>6.3f}")
        return

    best = results[0]
    print(f"Found: {best.credential.display_name}")

    password = get_password("Enter master password: ")
    secret = service.reveal(best.credential, password, "SEARCH")
    output_secret(secret, args.show)


def truncate(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return text[:width - 3] + "..."


def format_time(value) -> str:
    if value is None:
        return "never"
    return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def cmd_list(args):
    """List credentials, optionally filtered by label/user substring."""
    service = get_service(args)

    label_filter = args.label
    user_filter = args.user
    # A bare positional filter means "user contains"
    if not label_filter and not user_filter and args.filter:
        user_filter = args.filter

    credentials = service.list_credentials(label_filter, user_filter)

    if not credentials:
        print("No credentials found.")
        return

    print(f"{'ID':<4} {'LABEL':<18} {'USER':<18} {'CREATED AT':<20} {'ACCESSED AT':<20} {'COUNT':>5}")
    print("─" * 90)
    for c in credentials:
        print(
            f"{c.id:<4} {truncate(c.label, 18):<18} {truncate(c.user, 18):<18} "
            f"{format_time(c.created_at):<20} {format_time(c.accessed_at):<20} {c.access_count:>5}"
        )


def cmd_update(args):
    """Replace the secret of an existing credential."""
    service = get_service(args)
    credential = service.lookup_id(args.id)
    print(f"Updating {credential.display_name}")

    password = get_password("Enter master password: ")
    service.update(args.id, read_new_secret, password)
    print("Updated.")


def cmd_delete(args):
    """Permanently delete a credential."""
    service = get_service(args)
    credential = service.lookup_id(args.id)

    if not args.yes:
        print("This permanently deletes the following credential:")
        print(f"  id:    {credential.id}")
        print(f"  label: {credential.label}")
        print(f"  user:  {credential.user}")

        expected = f"delete {credential.label} {credential.user}"
        if read_line(f"Type '{expected}' to confirm: ") != expected:
            print("Confirmation does not match; nothing deleted.")
            return

    password = get_password("Enter master password: ")
    service.delete(args.id, password)
    print("Deleted.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='strongbox',
        description="Strongbox - local secret store"
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument('--home', help='Vault directory (default: ~/.strongbox)')
    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # init
    subparsers.add_parser('init', help='Create a new vault')

    # add
    add_parser = subparsers.add_parser('add', help='Add a credential')
    add_parser.add_argument('label', help='Credential label (e.g. github)')
    add_parser.add_argument('user', help='User name for the credential')
    add_parser.add_argument('--force', action='store_true', help='Overwrite without asking')

    # get
    get_parser = subparsers.add_parser('get', help='Retrieve a credential')
    get_parser.add_argument('label', help='Credential label')
    get_parser.add_argument('user', help='User name')
    get_parser.add_argument('--show', action='store_true', help='Print to stdout instead of clipboard')

    # search
    search_parser = subparsers.add_parser('search', help='Fuzzy search and retrieve the best match')
    search_parser.add_argument('label', help='Partial label')
    search_parser.add_argument('user', nargs='?', help='Partial user name')
    search_parser.add_argument('--show', action='store_true', help='Print to stdout instead of clipboard')
    search_parser.add_argument('--list', action='store_true', help='Only list ranked matches')

    # list
    list_parser = subparsers.add_parser('list', help='List credentials')
    list_parser.add_argument('filter', nargs='?', help='Filter users containing this text')
    list_parser.add_argument('--label', help='Filter labels containing this text')
    list_parser.add_argument('--user', help='Filter users containing this text')

    # update
    update_parser = subparsers.add_parser('update', help='Replace the secret of a credential')
    update_parser.add_argument('id', type=int, help='Credential id (see list)')

    # delete
    delete_parser = subparsers.add_parser('delete', help='Delete a credential')
    delete_parser.add_argument('id', type=int, help='Credential id (see list)')
    delete_parser.add_argument('--yes', action='store_true', help='Skip the confirmation prompt')

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        'init': cmd_init,
        'add': cmd_add,
        'get': cmd_get,
        'search': cmd_search,
        'list': cmd_list,
        'update': cmd_update,
        'delete': cmd_delete,
    }

    try:
        commands[args.command](args)
    except VaultError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_CODES[e.kind])
    except KeyboardInterrupt:
        print(file=sys.stderr)
        sys.exit(130)


if __name__ == '__main__':
    main()
