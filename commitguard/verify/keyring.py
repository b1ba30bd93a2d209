"""
CommitGuard Keyring Importer

Imports public key material into the local GnuPG keyring so that
``git show --format=%G?`` can resolve commit signatures to fingerprints.

Key blobs come from collaborators and are individually untrustworthy.
A bad key is logged and reported as a failed import; it never raises.
"""
from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

GPG_BINARY = "gpg"
IMPORT_TIMEOUT = 30  # seconds


class KeyImportError(Exception):
    """Raised internally when gpg rejects a key. Never escapes import_key()."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Key import failed: {reason}")


@dataclass
class KeyImportResult:
    """Outcome of importing one key blob."""
    success: bool
    fingerprints: List[str] = field(default_factory=list)
    error: Optional[str] = None


def parse_colon_fingerprints(colon_output: str) -> List[str]:
    """
    Extract primary key fingerprints from gpg ``--with-colons`` listing output.

    The first ``fpr`` record after each ``pub`` record is that key's primary
    fingerprint (field 10). Subkey fingerprints follow ``sub`` records and are skipped.
    """
    fingerprints = []
    expect_primary = False
    for line in colon_output.splitlines():
        fields = line.split(":")
        if fields[0] == "pub":
            expect_primary = True
        elif fields[0] == "fpr" and expect_primary and len(fields) > 9:
            fpr = fields[9].upper()
            if fpr and fpr not in fingerprints:
                fingerprints.append(fpr)
            expect_primary = False
        elif fields[0] == "sub":
            expect_primary = False
    return fingerprints


def parse_import_status(status_output: str) -> List[str]:
    """
    Extract primary key fingerprints from gpg ``--status-fd`` output.

    Each successfully imported (or already present) key yields a line
    ``[GNUPG:] IMPORT_OK <flags> <fingerprint>``.
    """
    fingerprints = []
    for line in status_output.splitlines():
        parts = line.split()
        if len(parts) >= 4 and parts[0] == "[GNUPG:]" and parts[1] == "IMPORT_OK":
            fpr = parts[3].upper()
            if fpr not in fingerprints:
                fingerprints.append(fpr)
    return fingerprints


class KeyringImporter:
    """Imports armored public keys with the ``gpg`` command line tool."""

    def __init__(
        self,
        gnupg_home: Optional[Path] = None,
        gpg_binary: str = GPG_BINARY,
        timeout: int = IMPORT_TIMEOUT,
    ):
        self.gnupg_home = gnupg_home
        self.gpg_binary = gpg_binary
        self.timeout = timeout

    def _env(self) -> dict:
        env = dict(os.environ)
        if self.gnupg_home is not None:
            env["GNUPGHOME"] = str(self.gnupg_home)
        return env

    def _run_gpg(self, raw_key: str, *args: str) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                [self.gpg_binary, "--batch", "--no-tty", *args],
                input=raw_key,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=self._env(),
            )
        except FileNotFoundError as e:
            raise KeyImportError(f"{self.gpg_binary} not found") from e
        except subprocess.TimeoutExpired as e:
            raise KeyImportError(f"gpg timed out after {self.timeout}s") from e

    def _run_import(self, raw_key: str) -> List[str]:
        proc = self._run_gpg(raw_key, "--status-fd", "1", "--import")
        fingerprints = parse_import_status(proc.stdout)
        if proc.returncode != 0 and not fingerprints:
            last_line = (proc.stderr.strip().splitlines() or ["unknown error"])[-1]
            raise KeyImportError(last_line)
        if not fingerprints:
            raise KeyImportError("no key imported")
        return fingerprints

    def import_key(self, raw_key: Optional[str]) -> KeyImportResult:
        """Import one armored key. Always returns a result, never raises."""
        if not raw_key or not raw_key.strip():
            return KeyImportResult(success=False, error="empty key material")

        try:
            fingerprints = self._run_import(raw_key)
        except KeyImportError as e:
            logger.warning("Skipping key: %s", e.reason)
            return KeyImportResult(success=False, error=e.reason)

        logger.debug("Imported %d key(s) into keyring", len(fingerprints))
        return KeyImportResult(success=True, fingerprints=fingerprints)

    def inspect_key(self, raw_key: Optional[str]) -> List[str]:
        """Primary fingerprints in an armored key, read without importing it.

        Returns an empty list when gpg cannot parse the key.
        """
        if not raw_key or not raw_key.strip():
            return []
        try:
            proc = self._run_gpg(raw_key, "--with-colons", "--show-keys")
        except KeyImportError as e:
            logger.warning("Could not inspect key: %s", e.reason)
            return []
        if proc.returncode != 0:
            return []
        return parse_colon_fingerprints(proc.stdout)
