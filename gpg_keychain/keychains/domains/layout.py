"""Filesystem layout of the keychain store.

Maps the on-disk hierarchy to logical entities:

    <root>/
      default -> <root>/<keychain>     symbolic Default Pointer (optional)
      <keychain>/
        <FINGERPRINT>.asc              private credential
        keys/<key>                     ciphertext, one file per key
        backup/<key>                   pre-refresh snapshots
        .lock                          advisory lock

No business logic lives here, only path arithmetic and directory scans.
"""
import logging
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

POINTER_NAME = "default"
CREDENTIAL_SUFFIX = ".asc"
KEYS_DIR = "keys"
BACKUP_DIR = "backup"
LOCK_NAME = ".lock"
STAGING_PREFIX = "."


class StorageLayout:
    """Path resolution for one storage root."""

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()

    def __repr__(self) -> str:
        return f"StorageLayout(root={str(self.root)!r})"

    @property
    def pointer_path(self) -> Path:
        return self.root / POINTER_NAME

    def keychain_dir(self, name: str) -> Path:
        return self.root / name

    def keys_dir(self, name: str) -> Path:
        return self.keychain_dir(name) / KEYS_DIR

    def backup_dir(self, name: str) -> Path:
        return self.keychain_dir(name) / BACKUP_DIR

    def key_path(self, name: str, key: str) -> Path:
        return self.keys_dir(name) / key

    def backup_path(self, name: str, key: str) -> Path:
        return self.backup_dir(name) / key

    def staging_path(self, name: str, key: str) -> Path:
        """Hidden sibling of a key file, renamed over it once fully written."""
        return self.keys_dir(name) / f"{STAGING_PREFIX}{key}.tmp"

    def lock_path(self, name: str) -> Path:
        return self.keychain_dir(name) / LOCK_NAME

    def credential_path(self, name: str, fingerprint: str) -> Path:
        return self.keychain_dir(name) / f"{fingerprint}{CREDENTIAL_SUFFIX}"

    def keychain_exists(self, name: str) -> bool:
        path = self.keychain_dir(name)
        return path.is_dir() and not path.is_symlink() and name != POINTER_NAME

    def list_keychains(self) -> List[str]:
        """All keychain directories under the root, sorted by name."""
        if not self.root.is_dir():
            return []
        names = []
        for entry in self.root.iterdir():
            if entry.name.startswith(".") or entry.is_symlink():
                continue
            if entry.is_dir():
                names.append(entry.name)
        return sorted(names)

    def credential_files(self, name: str) -> List[Path]:
        """Credential candidates in a keychain directory (finished files only)."""
        directory = self.keychain_dir(name)
        if not directory.is_dir():
            return []
        return sorted(
            p for p in directory.iterdir()
            if p.is_file() and p.suffix == CREDENTIAL_SUFFIX and not p.name.startswith(".")
        )

    def list_keys(self, name: str) -> List[str]:
        """Stored key names, excluding in-flight staging files."""
        directory = self.keys_dir(name)
        if not directory.is_dir():
            return []
        return sorted(
            p.name for p in directory.iterdir()
            if p.is_file() and not p.name.startswith(STAGING_PREFIX)
        )

    def read_pointer(self) -> Optional[str]:
        """Name of the keychain the Default Pointer targets, or None if absent."""
        pointer = self.pointer_path
        if not pointer.is_symlink():
            if pointer.exists():
                logger.warning(f"Default pointer {pointer} is not a symlink; ignoring it")
            return None
        return Path(pointer.readlink()).name
