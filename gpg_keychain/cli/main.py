"""CLI entrypoint for gpg-keychain."""
import sys
import argparse
import getpass
import logging
from pathlib import Path

from gpg_keychain.keychains.domains.config_loader import (
    ConfigError,
    default_config_path,
    load_config,
    storage_root,
)
from gpg_keychain.keychains.domains.errors import (
    KeychainError,
    KeychainNotFoundError,
    PartialFailure,
)
from gpg_keychain.keychains.domains.gpg_engine import GPGEngine
from gpg_keychain.keychains.domains.layout import StorageLayout
from gpg_keychain.keychains.workflows import credentials, resolver
from gpg_keychain.keychains.workflows import secret_operations
from gpg_keychain.keychains.workflows.refresh import refresh

from .validators import validate_key_name, validate_key_value, validate_keychain_name

VERSION = "0.1.0"

# Configure logging to stderr
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def _get_engine(config):
    return GPGEngine.from_config(config)


def _context(args):
    """Load config and build the layout and engine for one invocation."""
    config = load_config()
    layout = StorageLayout(storage_root(config))
    return config, layout, _get_engine(config)


def _active(args, layout):
    """Resolve the keychain this invocation operates on."""
    explicit = getattr(args, "keychain", None)
    if explicit:
        validate_keychain_name(explicit)
    return resolver.resolve(layout, explicit)


def _confirm(prompt):
    response = input(f"{prompt} (y/N): ").strip().lower()
    return response == 'y'


def _print_report(report, backup_dir):
    print(f"Keychain '{report.keychain}' refreshed to {report.identity}")
    print(f"  Processed: {report.processed}")
    print(f"  Succeeded: {len(report.succeeded)}")
    print(f"  Failed:    {len(report.failed)}")
    for key, reason in sorted(report.failed.items()):
        print(f"    ✗ {key}: {reason}")
    if report.cancelled:
        print("  Cancelled before all keys were processed")
    if report.processed:
        print(f"  Backups kept in: {backup_dir}")


def cmd_version(args):
    """Show version information."""
    print(f"gpg-keychain {VERSION}")


def cmd_config_set_path(args):
    """Set config file path preference."""
    from gpg_keychain.keychains.domains.preferences import set_preference

    config_path = Path(args.path).resolve()

    if not config_path.exists():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    if not config_path.is_file():
        print(f"Error: Path is not a file: {config_path}", file=sys.stderr)
        sys.exit(1)

    set_preference("config_path", str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_show(args):
    """Show current config file path and storage root."""
    from gpg_keychain.keychains.domains.preferences import get_preference

    config_path_pref = get_preference("config_path")

    if config_path_pref:
        config_path = Path(config_path_pref)
        if config_path.exists():
            print(f"Config path: {config_path}")
        else:
            print(f"Config path (from preference, but file not found): {config_path}")
        print("Source: preference")
    else:
        default_config = default_config_path()
        print(f"Config path: {default_config}")
        if default_config.exists():
            print("Source: default")
        else:
            print("Source: default (file not found, using built-in settings)")

    config = load_config()
    print(f"Storage root: {storage_root(config)}")


def cmd_config_clear(args):
    """Clear config path preference."""
    from gpg_keychain.keychains.domains.preferences import clear_preference

    clear_preference("config_path")
    print(f"Config path preference cleared. Will use default: {default_config_path()}")


def cmd_use(args):
    """Make a keychain the default."""
    validate_keychain_name(args.name)
    _config, layout, _engine = _context(args)

    resolver.set_default(layout, args.name)

    print(f"Default keychain is now '{args.name}'")


def cmd_list(args):
    """List keys in the active keychain."""
    _config, layout, _engine = _context(args)
    active = _active(args, layout)

    keys = secret_operations.list_keys(layout, active)
    if not keys:
        print(f"Keychain '{active.name}' has no keys", file=sys.stderr)
        return
    for key in keys:
        print(key)


def cmd_read(args):
    """Decrypt a key and print its value."""
    validate_key_name(args.key)
    _config, layout, engine = _context(args)
    active = _active(args, layout)

    value = secret_operations.read_key(layout, active, args.key, engine)
    print(value)


def _read_value(args):
    if args.value is not None:
        return args.value
    if sys.stdin.isatty():
        return getpass.getpass(f"Value for '{args.key}': ")
    return sys.stdin.read().rstrip("\n")


def cmd_write(args):
    """Encrypt a value under a key, replacing any previous value."""
    validate_key_name(args.key)
    value = _read_value(args)
    validate_key_value(value)

    _config, layout, engine = _context(args)
    active = _active(args, layout)

    secret_operations.write_key(layout, active, args.key, value, engine)
    if not args.quiet:
        print(f"Wrote key '{args.key}' to keychain '{active.name}'")


def cmd_remove(args):
    """Remove a key after confirmation."""
    validate_key_name(args.key)
    _config, layout, _engine = _context(args)
    active = _active(args, layout)

    confirm = None if args.yes else (
        lambda key: _confirm(f"Remove key '{key}' from keychain '{active.name}'?")
    )
    if secret_operations.remove_key(layout, active, args.key, confirm):
        print(f"Removed key '{args.key}' from keychain '{active.name}'")


def _run_refresh(layout, active, engine):
    try:
        report = refresh(layout, active, engine, handle_interrupt=True)
    except PartialFailure as e:
        _print_report(e.report, layout.backup_dir(active.name))
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    _print_report(report, layout.backup_dir(active.name))
    if report.cancelled:
        sys.exit(1)


def cmd_refresh(args):
    """Re-encrypt all keys of the active keychain under its current credential."""
    _config, layout, engine = _context(args)
    active = _active(args, layout)
    _run_refresh(layout, active, engine)


def cmd_keygen(args):
    """Replace the active keychain's credential, then refresh its keys."""
    config, layout, engine = _context(args)
    active = _active(args, layout)

    credential = credentials.replace(layout, active.name, engine, config)
    print(f"Keychain '{active.name}' now uses credential {credential.identity}")

    if args.no_refresh:
        print("Keys still target the previous credential. Run 'keychain refresh' to re-encrypt them.")
        return
    _run_refresh(layout, active, engine)


def cmd_manage_create(args):
    """Create a keychain with a fresh credential."""
    validate_keychain_name(args.name)
    config, layout, engine = _context(args)

    credential = credentials.create_keychain(layout, args.name, engine, config)
    print(f"Created keychain '{args.name}' with credential {credential.identity}")

    if args.use:
        resolver.set_default(layout, args.name)
        print(f"Default keychain is now '{args.name}'")


def cmd_manage_remove(args):
    """Destroy a keychain and every key in it."""
    validate_keychain_name(args.name)
    _config, layout, _engine = _context(args)

    confirm = None if args.yes else (
        lambda name: _confirm(f"Permanently remove keychain '{name}' and all of its keys?")
    )
    if credentials.remove_keychain(layout, args.name, confirm):
        print(f"Removed keychain '{args.name}'")


def cmd_manage_rename(args):
    """Rename a keychain."""
    validate_keychain_name(args.old)
    validate_keychain_name(args.new)
    _config, layout, _engine = _context(args)

    credentials.rename_keychain(layout, args.old, args.new)
    print(f"Renamed keychain '{args.old}' to '{args.new}'")


def cmd_manage_list(args):
    """List keychains, marking the default."""
    _config, layout, _engine = _context(args)

    names = credentials.list_keychains(layout)
    if not names:
        print(f"No keychains in {layout.root}", file=sys.stderr)
        return
    current = layout.read_pointer()
    for name in names:
        marker = "*" if name == current else " "
        print(f"{marker} {name}")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="keychain",
        description="gpg-keychain - GnuPG-encrypted personal keychains",
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (missing keychain or key, gpg failure, partial refresh, etc.)
  2 - Usage error (invalid arguments, invalid key or keychain name, etc.)

Environment variables:
  KEYCHAIN_ROOT   - Storage root (overrides config file)
  KEYCHAIN_CONFIG - Config file path (overrides preference)

Configuration:
  Default location: ~/.config/gpg-keychain/config.yml
  Custom path: Set with 'keychain config set-path <path>'
        """
    )
    parser.add_argument(
        "-k", "--keychain",
        help="Keychain to operate on (defaults to the one selected with 'keychain use')"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Show progress (-v) or gpg invocations (-vv) on stderr"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "version",
        help="Show version information",
        description="Display the current version of gpg-keychain"
    )

    keygen_parser = subparsers.add_parser(
        "keygen",
        help="Replace the active keychain's credential",
        description="""
Generate a new key pair for the active keychain and replace its credential.

Existing keys are then re-encrypted to the new credential (see 'refresh').
The previous private key stays in the gpg keyring so old ciphertext can
still be opened.
        """
    )
    keygen_parser.add_argument(
        "--no-refresh",
        action="store_true",
        help="Only replace the credential; do not re-encrypt existing keys"
    )

    subparsers.add_parser(
        "list",
        help="List keys in the active keychain",
        description="Print the name of every key stored in the active keychain"
    )

    manage_parser = subparsers.add_parser(
        "manage",
        help="Keychain management",
        description="Create, remove, rename and list keychains"
    )
    manage_subparsers = manage_parser.add_subparsers(dest="manage_command")

    manage_create_parser = manage_subparsers.add_parser(
        "create",
        help="Create a keychain",
        description="Create a keychain and generate its credential"
    )
    manage_create_parser.add_argument("name", help="Keychain name")
    manage_create_parser.add_argument(
        "--use",
        action="store_true",
        help="Make the new keychain the default"
    )

    manage_remove_parser = manage_subparsers.add_parser(
        "remove",
        help="Remove a keychain",
        description="Delete a keychain's credential and all of its keys"
    )
    manage_remove_parser.add_argument("name", help="Keychain name")
    manage_remove_parser.add_argument(
        "-y", "--yes",
        action="store_true",
        help="Do not ask for confirmation"
    )

    manage_rename_parser = manage_subparsers.add_parser(
        "rename",
        help="Rename a keychain",
        description="Rename a keychain; the default pointer follows it"
    )
    manage_rename_parser.add_argument("old", help="Current keychain name")
    manage_rename_parser.add_argument("new", help="New keychain name")

    manage_subparsers.add_parser(
        "list",
        help="List keychains",
        description="List keychains; the default is marked with '*'"
    )

    read_parser = subparsers.add_parser(
        "read",
        help="Print a key's value",
        description="Decrypt a key from the active keychain and print it to stdout"
    )
    read_parser.add_argument("key", help="Key name")

    subparsers.add_parser(
        "refresh",
        help="Re-encrypt all keys",
        description="""
Re-encrypt every key in the active keychain to its current credential.

Each key's ciphertext is first copied to the keychain's backup/ directory.
A key that fails is reported and the others are still processed.
Ctrl-C stops after the key currently being processed.
        """
    )

    write_parser = subparsers.add_parser(
        "write",
        help="Store a key's value",
        description="""
Encrypt a value into the active keychain, replacing any previous value.

When VALUE is omitted it is read from stdin (or prompted for on a terminal).
        """
    )
    write_parser.add_argument("key", help="Key name")
    write_parser.add_argument("value", nargs="?", help="Value to store")
    write_parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Do not print a confirmation"
    )

    remove_parser = subparsers.add_parser(
        "remove",
        help="Remove a key",
        description="Delete a key from the active keychain after confirmation"
    )
    remove_parser.add_argument("key", help="Key name")
    remove_parser.add_argument(
        "-y", "--yes",
        action="store_true",
        help="Do not ask for confirmation"
    )

    use_parser = subparsers.add_parser(
        "use",
        help="Select the default keychain",
        description="Make a keychain the default for subsequent commands"
    )
    use_parser.add_argument("name", help="Keychain name")

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage gpg-keychain configuration"
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")

    config_set_path_parser = config_subparsers.add_parser(
        "set-path",
        help="Set config file path",
        description="""
Set the configuration file path preference.

This stores the absolute path to your config file in:
~/.config/gpg-keychain/preferences.json
        """
    )
    config_set_path_parser.add_argument("path", help="Path to config file")

    config_subparsers.add_parser(
        "show",
        help="Show current config path",
        description="Display the configuration file path, its source and the storage root"
    )

    config_subparsers.add_parser(
        "clear",
        help="Clear config path preference",
        description="Remove the config path preference and fall back to the default location"
    )

    return parser, {
        "manage": manage_parser,
        "config": config_parser,
    }


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors (missing keychain/key, gpg failure, partial refresh, etc.)
        2 - Usage errors (invalid arguments, invalid names, etc.)
    """
    parser, group_parsers = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG if args.verbose > 1 else logging.INFO)

    # If no command provided, show help and exit with usage error code
    if not args.command:
        parser.print_help()
        sys.exit(2)

    handlers = {
        "version": cmd_version,
        "keygen": cmd_keygen,
        "list": cmd_list,
        "read": cmd_read,
        "refresh": cmd_refresh,
        "write": cmd_write,
        "remove": cmd_remove,
        "use": cmd_use,
    }
    group_handlers = {
        "manage": ("manage_command", {
            "create": cmd_manage_create,
            "remove": cmd_manage_remove,
            "rename": cmd_manage_rename,
            "list": cmd_manage_list,
        }),
        "config": ("config_command", {
            "set-path": cmd_config_set_path,
            "show": cmd_config_show,
            "clear": cmd_config_clear,
        }),
    }

    # Route to command handlers
    try:
        if args.command in handlers:
            handlers[args.command](args)
        else:
            dest, commands = group_handlers[args.command]
            handler = commands.get(getattr(args, dest))
            if handler is None:
                group_parsers[args.command].print_help()
                sys.exit(2)
            handler(args)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except KeychainNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        if e.available:
            print("Available keychains:", file=sys.stderr)
            for name in e.available:
                print(f"  {name}", file=sys.stderr)
        else:
            print("No keychains exist yet; create one with 'keychain manage create <name>'", file=sys.stderr)
        sys.exit(1)
    except (KeychainError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
