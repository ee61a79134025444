"""Workflow for re-encrypting every key of a keychain under its current credential."""
import logging
import shutil
import signal
import threading
from contextlib import contextmanager, nullcontext
from typing import Optional

from ..domains.errors import KeychainError, KeychainNotFoundError, PartialFailure
from ..domains.gpg_engine import GPGEngine
from ..domains.layout import StorageLayout
from ..domains.locking import keychain_lock
from ..domains.models import ActiveKeychain, RecipientIdentity, RefreshReport
from .credentials import PRIVATE_DIR_MODE, lookup
from .secret_operations import atomic_write, decrypt, encrypt

logger = logging.getLogger(__name__)


@contextmanager
def interrupt_between_items(cancel: threading.Event):
    """
    Turn SIGINT into a cancellation request while the block runs.

    The item being processed finishes; the loop stops before the next one.
    Only installed from the main thread, where signal handlers are allowed.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, frame):
        logger.warning("Interrupt received, stopping after the current key")
        cancel.set()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _refresh_one(layout: StorageLayout, keychain: str, key: str,
                 identity: RecipientIdentity, engine: GPGEngine) -> None:
    """Snapshot, decrypt and re-seal a single key. The canonical file is never absent."""
    source = layout.key_path(keychain, key)
    backup = layout.backup_path(keychain, key)
    shutil.copy2(source, backup)

    plaintext = decrypt(engine, backup.read_bytes())
    ciphertext = encrypt(engine, plaintext, identity)
    atomic_write(source, layout.staging_path(keychain, key), ciphertext)


def refresh(layout: StorageLayout, keychain: ActiveKeychain, engine: GPGEngine,
            cancel: Optional[threading.Event] = None,
            handle_interrupt: bool = False) -> RefreshReport:
    """
    Re-encrypt every key in a keychain to its current recipient identity.

    Args:
        layout: Storage layout of the keychain root
        keychain: Keychain to refresh
        engine: OpenPGP engine used to decrypt and re-encrypt
        cancel: Checked before each key; once set the run stops early
        handle_interrupt: Defer Ctrl-C to the next item boundary

    Returns:
        Report with processed, succeeded and failed keys

    Raises:
        NoCredentialError: No target identity could be determined
        PartialFailure: One or more keys failed; carries the report

    Behavior:
        - Each key is copied to backup/ before anything else touches it
        - Re-encrypted ciphertext is staged and renamed over the original
        - A failing key is recorded and the run carries on with the next one
        - Backups are never deleted
    """
    if not layout.keychain_exists(keychain.name):
        raise KeychainNotFoundError(keychain.name, layout.list_keychains())
    cancel = cancel or threading.Event()

    with keychain_lock(layout.lock_path(keychain.name), keychain.name):
        identity = lookup(layout, keychain.name)
        report = RefreshReport(keychain=keychain.name, identity=identity)
        keys = layout.list_keys(keychain.name)
        layout.backup_dir(keychain.name).mkdir(mode=PRIVATE_DIR_MODE, exist_ok=True)
        logger.info(f"Refreshing {len(keys)} keys in keychain '{keychain.name}' to {identity}")

        guard = interrupt_between_items(cancel) if handle_interrupt else nullcontext()
        with guard:
            for key in keys:
                if cancel.is_set():
                    report.cancelled = True
                    logger.warning(
                        f"Refresh of keychain '{keychain.name}' cancelled after "
                        f"{report.processed} of {len(keys)} keys"
                    )
                    break

                report.processed += 1
                try:
                    _refresh_one(layout, keychain.name, key, identity, engine)
                except (KeychainError, OSError) as e:
                    report.failed[key] = str(e)
                    logger.warning(f"Failed to refresh key '{key}' in keychain '{keychain.name}': {e}")
                    continue
                report.succeeded.append(key)
                logger.debug(f"Refreshed key '{key}'")

    logger.info(
        f"Refresh of keychain '{keychain.name}': {len(report.succeeded)} succeeded, "
        f"{len(report.failed)} failed"
    )
    if report.failed:
        raise PartialFailure(report)
    return report
