"""Workflow for resolving and switching the default keychain."""
import logging
import os
from typing import Optional

from ..domains.errors import KeychainNotFoundError, NoKeychainsError
from ..domains.layout import StorageLayout
from ..domains.models import ActiveKeychain

logger = logging.getLogger(__name__)


def resolve(layout: StorageLayout, explicit: Optional[str] = None) -> ActiveKeychain:
    """
    Determine the keychain a command operates on.

    Args:
        layout: Storage layout of the keychain root
        explicit: Keychain named on the command line, bypassing the pointer

    Returns:
        The active keychain

    Behavior:
        - An explicit name must exist, otherwise KeychainNotFoundError
        - Otherwise the Default Pointer is followed if it targets an existing keychain
        - A missing or dangling pointer falls back to the lexicographically first keychain
        - Never creates or repairs the pointer
    """
    if explicit:
        if not layout.keychain_exists(explicit):
            raise KeychainNotFoundError(explicit, layout.list_keychains())
        return ActiveKeychain(explicit, layout.keychain_dir(explicit), "explicit")

    name = layout.read_pointer()
    if name is not None:
        if layout.keychain_exists(name):
            return ActiveKeychain(name, layout.keychain_dir(name), "pointer")
        logger.warning(f"Default pointer references missing keychain '{name}', falling back")

    keychains = layout.list_keychains()
    if not keychains:
        raise NoKeychainsError(layout.root)

    name = keychains[0]
    logger.debug(f"No default keychain set, using first keychain '{name}'")
    return ActiveKeychain(name, layout.keychain_dir(name), "fallback")


def set_default(layout: StorageLayout, name: str) -> ActiveKeychain:
    """
    Point the Default Pointer at an existing keychain.

    The new symlink is created beside the old one and renamed over it, so a
    concurrent reader sees either the old or the new target.

    Raises:
        KeychainNotFoundError: No keychain with that name (carries the known keychains)
    """
    if not layout.keychain_exists(name):
        raise KeychainNotFoundError(name, layout.list_keychains())

    pointer = layout.pointer_path
    staging = layout.root / f".{pointer.name}.{os.getpid()}.tmp"
    if staging.is_symlink() or staging.exists():
        staging.unlink()
    os.symlink(name, staging)
    os.replace(staging, pointer)

    logger.info(f"Default keychain set to '{name}'")
    return ActiveKeychain(name, layout.keychain_dir(name), "pointer")


def clear_default(layout: StorageLayout) -> None:
    """Remove the Default Pointer if present."""
    pointer = layout.pointer_path
    if pointer.is_symlink():
        pointer.unlink()
        logger.info("Default keychain pointer cleared")
