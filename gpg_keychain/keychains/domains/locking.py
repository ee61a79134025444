"""Advisory per-keychain lock for mutating operations."""
import fcntl
import logging
import os
from contextlib import contextmanager
from pathlib import Path

from .errors import KeychainLockedError

logger = logging.getLogger(__name__)


@contextmanager
def keychain_lock(lock_path: Path, keychain: str):
    """
    Hold an exclusive, non-blocking flock on the keychain's lock file.

    Raises:
        KeychainLockedError: Another process already holds the lock
    """
    fd = os.open(str(lock_path), os.O_RDWR | os.O_CREAT, 0o600)
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise KeychainLockedError(keychain)
        logger.debug(f"Acquired lock {lock_path}")
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug(f"Released lock {lock_path}")
    finally:
        os.close(fd)
