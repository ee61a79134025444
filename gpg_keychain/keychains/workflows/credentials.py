"""Workflow for keychain credentials and keychain lifecycle."""
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..domains.errors import (
    CredentialExistsError,
    KeychainExistsError,
    KeychainNotFoundError,
    NoCredentialError,
    PermissionDeniedError,
)
from ..domains.gpg_engine import GPGEngine
from ..domains.layout import StorageLayout
from ..domains.locking import keychain_lock
from ..domains.models import Credential, RecipientIdentity
from .resolver import clear_default, set_default

logger = logging.getLogger(__name__)

PRIVATE_FILE_MODE = 0o600
PRIVATE_DIR_MODE = 0o700


def _restrict(path: Path, mode: int) -> None:
    """chmod to owner-only and verify no group/other bits survived."""
    try:
        os.chmod(path, mode)
        actual = path.stat().st_mode & 0o777
    except OSError as e:
        raise PermissionDeniedError(f"Failed to restrict permissions on {path}: {e}")
    if actual & 0o077:
        raise PermissionDeniedError(
            f"Permissions on {path} are {oct(actual)}; group/other access could not be removed"
        )


def build_uid(config: Dict[str, Any], keychain: str) -> str:
    """User id for a keychain's key pair, from the identity templates in config."""
    identity = config["identity"]
    uid = identity["name_real"].format(keychain=keychain)
    if identity.get("name_email"):
        uid = f"{uid} <{identity['name_email'].format(keychain=keychain)}>"
    return uid


def _generate(layout: StorageLayout, name: str, engine: GPGEngine,
              config: Dict[str, Any]) -> Credential:
    """Generate a key pair and persist its private half under a staging name."""
    gpg = config["gpg"]
    identity = engine.generate_keypair(
        build_uid(config, name),
        algo=gpg["key_algo"],
        usage=gpg["key_usage"],
        expire=gpg["key_expire"],
    )
    armored = engine.export_private_credential(identity)

    final = layout.credential_path(name, identity.fingerprint)
    staging = final.with_name(f".{final.name}.tmp")
    fd = os.open(str(staging), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, PRIVATE_FILE_MODE)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(armored)
        _restrict(staging, PRIVATE_FILE_MODE)
    except Exception:
        staging.unlink(missing_ok=True)
        raise
    return Credential(name, identity, staging)


def _commit(staged: Credential, layout: StorageLayout) -> Credential:
    final = layout.credential_path(staged.keychain, staged.identity.fingerprint)
    os.replace(staged.path, final)
    return Credential(staged.keychain, staged.identity, final)


def create(layout: StorageLayout, name: str, engine: GPGEngine,
           config: Dict[str, Any]) -> Credential:
    """
    Generate the credential for a keychain.

    Raises:
        KeychainNotFoundError: Keychain directory doesn't exist
        CredentialExistsError: A credential is already present (left untouched)
        PermissionDeniedError: Owner-only permissions could not be enforced
        EngineFailure: Key generation or export failed
    """
    if not layout.keychain_exists(name):
        raise KeychainNotFoundError(name, layout.list_keychains())

    with keychain_lock(layout.lock_path(name), name):
        if layout.credential_files(name):
            raise CredentialExistsError(name)
        credential = _commit(_generate(layout, name, engine, config), layout)

    logger.info(f"Created credential {credential.identity} for keychain '{name}'")
    return credential


def replace(layout: StorageLayout, name: str, engine: GPGEngine,
            config: Dict[str, Any]) -> Credential:
    """
    Swap a keychain's credential for a freshly generated one.

    The previous private key stays in the engine keyring so that refresh can
    still decrypt keys sealed to it; only the credential file is replaced.
    """
    if not layout.keychain_exists(name):
        raise KeychainNotFoundError(name, layout.list_keychains())

    with keychain_lock(layout.lock_path(name), name):
        previous = layout.credential_files(name)
        staged = _generate(layout, name, engine, config)
        for path in previous:
            path.unlink()
        credential = _commit(staged, layout)

    old = ", ".join(p.stem for p in previous) or "none"
    logger.info(f"Replaced credential of keychain '{name}' ({old} -> {credential.identity})")
    return credential


def lookup_credential(layout: StorageLayout, name: str) -> Credential:
    """
    Find the single credential file of a keychain.

    Raises:
        KeychainNotFoundError: Keychain doesn't exist
        NoCredentialError: Zero or several credential files, or an unparseable name
    """
    if not layout.keychain_exists(name):
        raise KeychainNotFoundError(name, layout.list_keychains())

    files = layout.credential_files(name)
    if len(files) != 1:
        raise NoCredentialError(name, len(files))

    path = files[0]
    try:
        identity = RecipientIdentity.parse(path.stem)
    except ValueError:
        raise NoCredentialError(
            name, 1, detail=f"credential file name '{path.name}' is not a fingerprint"
        )
    return Credential(name, identity, path)


def lookup(layout: StorageLayout, name: str) -> RecipientIdentity:
    """Recipient identity of a keychain's current credential."""
    return lookup_credential(layout, name).identity


def list_keychains(layout: StorageLayout) -> List[str]:
    return layout.list_keychains()


def create_keychain(layout: StorageLayout, name: str, engine: GPGEngine,
                    config: Dict[str, Any]) -> Credential:
    """
    Create a keychain directory with its keys/ folder and a fresh credential.

    A failed credential generation removes the half-created directory again.
    """
    if layout.keychain_exists(name) or layout.keychain_dir(name).exists():
        raise KeychainExistsError(name)

    layout.root.mkdir(parents=True, exist_ok=True)
    directory = layout.keychain_dir(name)
    directory.mkdir(mode=PRIVATE_DIR_MODE)
    try:
        _restrict(directory, PRIVATE_DIR_MODE)
        layout.keys_dir(name).mkdir(mode=PRIVATE_DIR_MODE)
        credential = create(layout, name, engine, config)
    except Exception:
        shutil.rmtree(directory, ignore_errors=True)
        raise

    logger.info(f"Created keychain '{name}' in {directory}")
    return credential


def remove_keychain(layout: StorageLayout, name: str,
                    confirm: Optional[Callable[[str], bool]] = None) -> bool:
    """
    Destroy a keychain's credential and all of its keys.

    Args:
        confirm: Called with the keychain name; returning False aborts.
            None removes without asking.

    Returns:
        True if the keychain was removed, False if the caller declined
    """
    if not layout.keychain_exists(name):
        raise KeychainNotFoundError(name, layout.list_keychains())

    if confirm is not None and not confirm(name):
        logger.info(f"Removal of keychain '{name}' cancelled")
        return False

    if layout.read_pointer() == name:
        clear_default(layout)
    shutil.rmtree(layout.keychain_dir(name))
    logger.info(f"Removed keychain '{name}'")
    return True


def rename_keychain(layout: StorageLayout, old: str, new: str) -> None:
    """Rename a keychain, carrying the Default Pointer along if it targeted it."""
    if not layout.keychain_exists(old):
        raise KeychainNotFoundError(old, layout.list_keychains())
    if layout.keychain_dir(new).exists() or layout.keychain_dir(new).is_symlink():
        raise KeychainExistsError(new)

    was_default = layout.read_pointer() == old
    os.rename(layout.keychain_dir(old), layout.keychain_dir(new))
    if was_default:
        set_default(layout, new)
    logger.info(f"Renamed keychain '{old}' to '{new}'")
