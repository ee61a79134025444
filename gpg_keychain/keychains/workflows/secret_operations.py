"""Workflow for reading, writing and removing keys in a keychain."""
import logging
import os
from pathlib import Path
from typing import Callable, List, Optional

from ..domains.errors import (
    EngineFailure,
    KeychainError,
    KeychainNotFoundError,
    KeyNotFoundError,
)
from ..domains.gpg_engine import GPGEngine
from ..domains.layout import StorageLayout
from ..domains.locking import keychain_lock
from ..domains.models import ActiveKeychain, RecipientIdentity
from .credentials import PRIVATE_DIR_MODE, PRIVATE_FILE_MODE, lookup

logger = logging.getLogger(__name__)


def encrypt(engine: GPGEngine, plaintext: bytes, identity: RecipientIdentity) -> bytes:
    """Seal plaintext to a recipient identity."""
    return engine.encrypt(plaintext, identity)


def decrypt(engine: GPGEngine, ciphertext: bytes) -> bytes:
    """Open ciphertext with whichever secret key the engine holds for it."""
    return engine.decrypt(ciphertext)


def atomic_write(path: Path, staging: Path, data: bytes) -> None:
    """Write data beside path and rename it into place."""
    fd = os.open(str(staging), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, PRIVATE_FILE_MODE)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(staging, path)
    except Exception:
        staging.unlink(missing_ok=True)
        raise


def list_keys(layout: StorageLayout, keychain: ActiveKeychain) -> List[str]:
    return layout.list_keys(keychain.name)


def read_key(layout: StorageLayout, keychain: ActiveKeychain, key: str,
             engine: GPGEngine) -> str:
    """
    Decrypt a stored key.

    Raises:
        KeyNotFoundError: No ciphertext stored under that name
        EngineFailure: Decryption failed or timed out
    """
    path = layout.key_path(keychain.name, key)
    if not path.is_file():
        raise KeyNotFoundError(keychain.name, key)

    try:
        plaintext = decrypt(engine, path.read_bytes())
    except EngineFailure as e:
        raise type(e)(f"Failed to read key '{key}' from keychain '{keychain.name}': {e}") from e

    try:
        value = plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise KeychainError(
            f"Key '{key}' in keychain '{keychain.name}' is not UTF-8 text: {e}"
        ) from e
    logger.debug(f"Read key '{key}' from keychain '{keychain.name}'")
    return value


def write_key(layout: StorageLayout, keychain: ActiveKeychain, key: str, value: str,
              engine: GPGEngine) -> None:
    """
    Encrypt a value to the keychain's current identity, overwriting any previous value.

    Raises:
        NoCredentialError: Keychain has no usable credential
        EngineFailure: Encryption failed or timed out
    """
    if not layout.keychain_exists(keychain.name):
        raise KeychainNotFoundError(keychain.name, layout.list_keychains())

    with keychain_lock(layout.lock_path(keychain.name), keychain.name):
        identity = lookup(layout, keychain.name)
        try:
            ciphertext = encrypt(engine, value.encode("utf-8"), identity)
        except EngineFailure as e:
            raise type(e)(
                f"Failed to write key '{key}' to keychain '{keychain.name}': {e}"
            ) from e
        keys_dir = layout.keys_dir(keychain.name)
        keys_dir.mkdir(mode=PRIVATE_DIR_MODE, exist_ok=True)
        atomic_write(
            layout.key_path(keychain.name, key),
            layout.staging_path(keychain.name, key),
            ciphertext,
        )

    logger.info(f"Wrote key '{key}' to keychain '{keychain.name}'")


def remove_key(layout: StorageLayout, keychain: ActiveKeychain, key: str,
               confirm: Optional[Callable[[str], bool]] = None) -> bool:
    """
    Delete a stored key.

    Args:
        confirm: Called with the key name; returning False aborts.
            None removes without asking.

    Returns:
        True if a key was removed. A missing key is a no-op returning False.
    """
    path = layout.key_path(keychain.name, key)
    if not path.is_file():
        logger.info(f"Key '{key}' not present in keychain '{keychain.name}', nothing to remove")
        return False

    if confirm is not None and not confirm(key):
        logger.info(f"Removal of key '{key}' cancelled")
        return False

    path.unlink(missing_ok=True)
    logger.info(f"Removed key '{key}' from keychain '{keychain.name}'")
    return True
