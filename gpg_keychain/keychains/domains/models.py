"""Domain models for keychain management."""
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

_FINGERPRINT_RE = re.compile(r"^[0-9A-F]{16,40}$")


@dataclass(frozen=True)
class RecipientIdentity:
    """OpenPGP fingerprint targeted when encrypting for a credential."""
    fingerprint: str

    def __post_init__(self):
        if not _FINGERPRINT_RE.match(self.fingerprint):
            raise ValueError(f"Not an OpenPGP fingerprint: {self.fingerprint!r}")

    @classmethod
    def parse(cls, value: str) -> "RecipientIdentity":
        """Normalise user or engine output (spaces, lower case) into an identity."""
        return cls(value.replace(" ", "").upper())

    def __str__(self) -> str:
        return self.fingerprint


@dataclass(frozen=True)
class Credential:
    """Private credential file retained for a keychain."""
    keychain: str
    identity: RecipientIdentity
    path: Path


@dataclass(frozen=True)
class ActiveKeychain:
    """Keychain resolved once per command and passed to every operation."""
    name: str
    path: Path
    source: str  # "pointer", "fallback" or "explicit"


@dataclass
class RefreshReport:
    """Outcome of re-encrypting every key in a keychain."""
    keychain: str
    identity: RecipientIdentity
    processed: int = 0
    succeeded: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.failed
