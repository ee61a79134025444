"""GnuPG engine wrapper.

All asymmetric cryptography is delegated to the ``gpg`` binary. This module
owns only the argument mapping: which identity to target and which bytes go
to stdin/stdout. Every invocation is bounded by a timeout.
"""
import logging
import subprocess
from typing import Any, Dict, List, Optional

from .errors import EngineFailure, EngineTimeout
from .models import RecipientIdentity

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60


class GPGEngine:
    """Wrapper around the gpg command line."""

    def __init__(self, binary: str = "gpg", homedir: Optional[str] = None,
                 timeout: float = DEFAULT_TIMEOUT):
        self.binary = binary
        self.homedir = homedir
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "GPGEngine":
        gpg = config["gpg"]
        return cls(binary=gpg["binary"], homedir=gpg.get("homedir"), timeout=gpg["timeout"])

    def _base_args(self) -> List[str]:
        args = [self.binary, "--batch", "--no-tty"]
        if self.homedir:
            args.extend(["--homedir", str(self.homedir)])
        return args

    def _run(self, args: List[str], action: str, stdin: Optional[bytes] = None) -> bytes:
        """
        Run gpg and return its stdout.

        Args:
            args: Arguments after the base options
            action: Human readable operation name used in error messages
            stdin: Bytes piped to gpg (plaintext or ciphertext)

        Raises:
            EngineTimeout: gpg did not exit within self.timeout seconds
            EngineFailure: gpg is missing or exited non-zero
        """
        command = self._base_args() + args
        logger.debug(f"Running: {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                input=stdin,
                capture_output=True,
                timeout=self.timeout,
                check=False,
                # Separate session: a terminal Ctrl-C must not reach gpg
                start_new_session=True,
            )
        except subprocess.TimeoutExpired:
            raise EngineTimeout(f"gpg {action} timed out after {self.timeout}s")
        except FileNotFoundError:
            raise EngineFailure(
                f"gpg binary '{self.binary}' not found. Install GnuPG or set 'gpg.binary' in the config."
            )

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise EngineFailure(f"gpg {action} failed (exit {result.returncode}): {stderr}")
        return result.stdout

    def generate_keypair(self, uid: str, algo: str = "default", usage: str = "default",
                         expire: str = "never") -> RecipientIdentity:
        """
        Generate an unprotected key pair in the engine's keyring.

        The private half stays in the keyring; export_private_credential
        retrieves it for storage.

        Returns:
            Fingerprint of the new key
        """
        output = self._run(
            ["--status-fd", "1", "--pinentry-mode", "loopback", "--passphrase", "",
             "--quick-generate-key", uid, algo, usage, expire],
            action=f"key generation for '{uid}'",
        )
        for line in output.decode("utf-8", errors="replace").splitlines():
            parts = line.split()
            # [GNUPG:] KEY_CREATED <type> <fingerprint> [handle]
            if len(parts) >= 4 and parts[0] == "[GNUPG:]" and parts[1] == "KEY_CREATED":
                identity = RecipientIdentity.parse(parts[3])
                logger.info(f"Generated key {identity} for '{uid}'")
                return identity
        raise EngineFailure(f"gpg key generation for '{uid}' did not report a fingerprint")

    def export_private_credential(self, identity: RecipientIdentity) -> bytes:
        armored = self._run(
            ["--pinentry-mode", "loopback", "--passphrase", "",
             "--armor", "--export-secret-keys", identity.fingerprint],
            action=f"export of {identity}",
        )
        if not armored.strip():
            raise EngineFailure(f"gpg has no secret key for {identity}")
        return armored

    def encrypt(self, plaintext: bytes, identity: RecipientIdentity) -> bytes:
        return self._run(
            ["--yes", "--trust-model", "always", "--armor",
             "--encrypt", "--recipient", identity.fingerprint],
            action=f"encryption to {identity}",
            stdin=plaintext,
        )

    def decrypt(self, ciphertext: bytes) -> bytes:
        """Decrypt with whichever secret key in the keyring matches the ciphertext."""
        return self._run(["--quiet", "--decrypt"], action="decryption", stdin=ciphertext)
