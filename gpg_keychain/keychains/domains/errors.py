"""Error taxonomy for keychain operations."""
from typing import List, Optional


class KeychainError(Exception):
    """Base class for every user-facing keychain failure."""
    pass


class NotFoundError(KeychainError):
    """A referenced keychain or key does not exist."""
    pass


class KeychainNotFoundError(NotFoundError):
    """Keychain does not exist. Carries the known keychains to aid the caller."""

    def __init__(self, name: str, available: Optional[List[str]] = None):
        self.name = name
        self.available = list(available or [])
        super().__init__(f"Keychain '{name}' not found")


class KeyNotFoundError(NotFoundError):
    """Key has no stored ciphertext."""

    def __init__(self, keychain: str, key: str):
        self.keychain = keychain
        self.key = key
        super().__init__(f"Key '{key}' not found in keychain '{keychain}'")


class NoKeychainsError(NotFoundError):
    """No keychains exist under the storage root."""

    def __init__(self, root):
        self.root = root
        super().__init__(
            f"No keychains found in {root}\n"
            f"Create one with: keychain manage create <name>"
        )


class NoCredentialError(KeychainError):
    """Zero or more than one credential file in a keychain."""

    def __init__(self, keychain: str, count: int, detail: Optional[str] = None):
        self.keychain = keychain
        self.count = count
        if detail is None:
            if count == 0:
                detail = "no credential file present"
            else:
                detail = f"{count} credential files present, expected exactly one"
        super().__init__(f"Keychain '{keychain}' has no usable credential: {detail}")


class CredentialExistsError(KeychainError):
    """Credential store refuses to overwrite an existing credential."""

    def __init__(self, keychain: str):
        self.keychain = keychain
        super().__init__(f"Keychain '{keychain}' already has a credential")


class KeychainExistsError(KeychainError):
    """Target keychain name is already taken."""

    def __init__(self, keychain: str):
        self.keychain = keychain
        super().__init__(f"Keychain '{keychain}' already exists")


class EngineFailure(KeychainError):
    """External OpenPGP operation failed."""
    pass


class EngineTimeout(EngineFailure):
    """External OpenPGP operation did not finish within the configured timeout."""
    pass


class PermissionDeniedError(KeychainError):
    """Filesystem permissions could not be restricted or were refused."""
    pass


class KeychainLockedError(KeychainError):
    """Another process holds the keychain lock."""

    def __init__(self, keychain: str):
        self.keychain = keychain
        super().__init__(
            f"Keychain '{keychain}' is locked by another process; try again once it finishes"
        )


class PartialFailure(KeychainError):
    """Refresh finished with some items failing. Carries the full report."""

    def __init__(self, report):
        self.report = report
        failed = ", ".join(sorted(report.failed))
        super().__init__(
            f"Refresh of keychain '{report.keychain}' failed for "
            f"{len(report.failed)} of {report.processed} keys: {failed}"
        )
