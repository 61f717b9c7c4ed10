"""Line-based command-line front end for pwvault.

Start with ``python -m pwvault.frontend.cli.app`` (or ``pwvault``):

    pwvault init [vault.json] [--force]
    pwvault add  [vault.json]
    pwvault list [vault.json]
    pwvault find [vault.json] PREFIX [--copy]
    pwvault del  [vault.json] [SITE]

Without a command an interactive menu is shown. This module owns prompting,
echo suppression and error display; every vault operation goes through
:class:`pwvault.core.vault.Vault`.
"""

from __future__ import annotations

import argparse
import getpass
import logging
from pathlib import Path
import sys
from typing import Iterable, List, Optional

import pyperclip

from pwvault.core.config import load_config
from pwvault.core.models import Entry
from pwvault.core.vault import Vault
from pwvault.frontend.cli.clipboard import copy_to_clipboard
from pwvault.frontend.cli.logging_config import configure_logging


def _prompt(label: str) -> str:
    return input(label)


def _prompt_secret(label: str) -> str:
    # getpass disables terminal echo
    return getpass.getpass(label)


def _err(msg: str) -> None:
    print(msg, file=sys.stderr)


def _print_entries(entries: Iterable[Entry]) -> None:
    items = sorted(entries, key=lambda e: (e.site.lower(), e.username))
    if not items:
        print("(no entries)")
        return
    for e in items:
        print(f"{e.site} | {e.username} | {e.reveal()}")


def _open(path: str) -> Optional[Vault]:
    vault = Vault(path)
    if not vault.load(_prompt_secret("Enter master password: ")):
        _err(vault.last_error)
        vault.close()
        return None
    return vault


# === Commands ===

def cmd_init(path: str, force: bool = False) -> int:
    if Path(path).exists() and not force:
        _err(f"A vault already exists at {path}. Use --force to overwrite it.")
        return 1

    master = _prompt_secret("Create master password: ")
    if master != _prompt_secret("Confirm master password: "):
        _err("Passwords do not match.")
        return 1

    with Vault(path) as vault:
        if not vault.init_new(master):
            _err(vault.last_error)
            return 1
    print(f"Vault successfully created at {path}")
    return 0


def cmd_add(path: str) -> int:
    vault = _open(path)
    if vault is None:
        return 1
    with vault:
        site = _prompt("Site: ")
        username = _prompt("Username: ")
        secret = _prompt_secret("Password: ")
        if not vault.add(site, username, secret) or not vault.save():
            _err(vault.last_error)
            return 1
    print(f"Added entry for {site}")
    return 0


def cmd_list(path: str) -> int:
    vault = _open(path)
    if vault is None:
        return 1
    with vault:
        _print_entries(vault.entries)
    return 0


def cmd_find(path: str, prefix: str, copy: bool = False) -> int:
    vault = _open(path)
    if vault is None:
        return 1
    with vault:
        matches = vault.find(prefix)
        if not matches:
            print(f"No entries match {prefix!r}")
            return 0
        if copy:
            try:
                copy_to_clipboard(matches[0].reveal())
            except pyperclip.PyperclipException as e:
                _err(f"Clipboard unavailable: {e}")
                return 1
            print(f"Copied password for {matches[0].site} ({matches[0].username}) to clipboard")
            return 0
        _print_entries(matches)
    return 0


def cmd_del(path: str, site: Optional[str] = None) -> int:
    if not Path(path).exists():
        _err(f"No vault exists at {path}. Try initializing first.")
        return 1

    vault = _open(path)
    if vault is None:
        return 1
    with vault:
        if site is None:
            site = _prompt("Site to delete (exact match): ")
        removed = vault.remove_by_site(site)
        if removed == 0:
            print(f"No entries matched {site}")
            return 0
        if not vault.save():
            _err(vault.last_error)
            return 1
    print(f"Successfully deleted {removed} entr{'y' if removed == 1 else 'ies'}")
    return 0


# === Interactive menu ===

MENU = (
    "=== PASSWORD VAULT ===\n"
    "1) Initialize Vault\n"
    "2) Add Entry\n"
    "3) List Entries\n"
    "4) Delete Entry\n"
    "Q) Quit Application"
)


def menu(default_path: str) -> int:
    handlers = {"1": cmd_init, "2": cmd_add, "3": cmd_list, "4": cmd_del}
    while True:
        print(MENU)
        try:
            choice = _prompt("Choice: ").strip()
        except EOFError:
            return 1
        if choice.lower() == "q":
            print("Goodbye")
            return 0
        handler = handlers.get(choice)
        if handler is None:
            _err("Unknown Choice")
            continue
        chosen = _prompt(f"Vault path (default: {default_path}): ").strip() or default_path
        path = str(Path(chosen).absolute())
        print(f"Using path: {path}")
        handler(path)
        print()


# === Entry point ===

def build_parser(default_path: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pwvault", description="Encrypted local password vault")
    parser.add_argument("-v", "--verbose", action="store_true", help="log vault operations")
    sub = parser.add_subparsers(dest="command")

    p_init = sub.add_parser("init", help="create a new vault")
    p_init.add_argument("path", nargs="?", default=default_path)
    p_init.add_argument("--force", action="store_true", help="overwrite an existing vault")

    p_add = sub.add_parser("add", help="add an entry")
    p_add.add_argument("path", nargs="?", default=default_path)

    p_list = sub.add_parser("list", help="list all entries")
    p_list.add_argument("path", nargs="?", default=default_path)

    p_find = sub.add_parser("find", help="find entries by site prefix")
    p_find.add_argument("path", nargs="?", default=default_path)
    p_find.add_argument("prefix")
    p_find.add_argument("--copy", action="store_true", help="copy the first match to the clipboard")

    p_del = sub.add_parser("del", help="delete entries by exact site")
    p_del.add_argument("path", nargs="?", default=default_path)
    p_del.add_argument("site", nargs="?", default=None)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    try:
        config = load_config()
    except ValueError as e:
        _err(f"Invalid configuration: {e}")
        return 1

    args = build_parser(config.vault_path).parse_args(argv)
    configure_logging(logging.INFO if args.verbose else logging.WARNING)

    if args.command == "init":
        return cmd_init(args.path, force=args.force)
    if args.command == "add":
        return cmd_add(args.path)
    if args.command == "list":
        return cmd_list(args.path)
    if args.command == "find":
        return cmd_find(args.path, args.prefix, copy=args.copy)
    if args.command == "del":
        return cmd_del(args.path, args.site)
    return menu(config.vault_path)


if __name__ == "__main__":
    sys.exit(main())
