"""Input validation for CLI arguments."""
import re
import sys

from gpg_keychain.keychains.domains.layout import POINTER_NAME

NAME_PATTERN = r'^[A-Za-z0-9_][A-Za-z0-9_.-]*$'


def _validate_name(name: str, kind: str) -> None:
    if not name:
        print(f"Error: {kind.capitalize()} name cannot be empty", file=sys.stderr)
        print(f"\n{kind.capitalize()} names must match: [A-Za-z0-9_.-]", file=sys.stderr)
        sys.exit(2)

    if not re.match(NAME_PATTERN, name) or name in (".", ".."):
        print(f"Error: Invalid {kind} name '{name}'", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, underscores (_), hyphens (-), dots (.)", file=sys.stderr)
        print("Names cannot start with a dot or hyphen, or contain slashes or spaces.", file=sys.stderr)
        print("\nExamples of valid names:", file=sys.stderr)
        print("  ✓ personal", file=sys.stderr)
        print("  ✓ db-password", file=sys.stderr)
        print("  ✓ aws.prod_key", file=sys.stderr)
        print("\nExamples of invalid names:", file=sys.stderr)
        print("  ✗ .hidden (starts with dot)", file=sys.stderr)
        print("  ✗ work/db (contains slash)", file=sys.stderr)
        print("  ✗ my key (contains space)", file=sys.stderr)
        sys.exit(2)


def validate_keychain_name(name: str) -> None:
    """
    Validate a keychain name is filesystem-safe and not reserved.

    Raises:
        SystemExit with code 2 if validation fails
    """
    _validate_name(name, "keychain")
    if name == POINTER_NAME:
        print(f"Error: '{POINTER_NAME}' is reserved for the default keychain pointer", file=sys.stderr)
        sys.exit(2)


def validate_key_name(name: str) -> None:
    """
    Validate a key name is filesystem-safe.

    Raises:
        SystemExit with code 2 if validation fails
    """
    _validate_name(name, "key")


def validate_key_value(value: str) -> None:
    """
    Validate a key value is not empty.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not value or value.strip() == "":
        print("Error: Key value cannot be empty", file=sys.stderr)
        print("\nPass the value as an argument or pipe it on stdin.", file=sys.stderr)
        sys.exit(2)
