"""
CommitGuard Verification Models

Shared value types for the signature verification pipeline:

- SignatureStatus: outcome of git/gpg checking one commit's signature
- CommitRecord: immutable snapshot of a commit taken at enumeration time
- Verdict: the four possible trust decisions for a commit
- CommitVerification: a commit paired with its verdict
- RunSummary: aggregate counts and overall pass/fail for a run

Fingerprints are compared by identity (exact, or suffix against a full
fingerprint), never by substring containment.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional


# Shortest key identifier accepted for suffix matching (a "long" key ID).
MIN_KEY_ID_LENGTH = 16

_HEX_RE = re.compile(r"^[0-9A-F]+$")


class SignatureStatus(str, Enum):
    """Result of checking a commit signature against the local keyring."""
    GOOD = "good"
    UNTRUSTED = "untrusted"
    NONE = "none"
    BAD = "bad"
    UNKNOWN = "unknown"
    EXPIRED = "expired"
    REVOKED = "revoked"

    @classmethod
    def from_git_format(cls, code: str) -> "SignatureStatus":
        """Map a git ``%G?`` placeholder value to a status."""
        code = (code or "").strip()
        if not code or code == "N":
            return cls.NONE
        return _GIT_STATUS_CODES.get(code, cls.UNKNOWN)

    @property
    def is_usable(self) -> bool:
        """True when the signature cryptographically verifies.

        Local web-of-trust levels are irrelevant here; authorization comes
        from TrustMap membership.
        """
        return self in (SignatureStatus.GOOD, SignatureStatus.UNTRUSTED)


_GIT_STATUS_CODES = {
    "G": SignatureStatus.GOOD,
    "U": SignatureStatus.UNTRUSTED,
    "B": SignatureStatus.BAD,
    "X": SignatureStatus.EXPIRED,  # good signature that has expired
    "Y": SignatureStatus.EXPIRED,  # good signature made by an expired key
    "R": SignatureStatus.REVOKED,
    "E": SignatureStatus.UNKNOWN,  # cannot be checked, e.g. missing key
}


class Verdict(str, Enum):
    """Trust decision for a single commit."""
    TRUSTED_VERIFIED = "trusted_verified"
    EXTERNAL_ALLOWED = "external_allowed"
    IMPERSONATION_ATTEMPT = "impersonation_attempt"
    KEY_MISMATCH = "key_mismatch"

    @property
    def is_failure(self) -> bool:
        return self in (Verdict.IMPERSONATION_ATTEMPT, Verdict.KEY_MISMATCH)


def normalize_fingerprint(value: Optional[str]) -> str:
    """Uppercase a fingerprint or key ID and strip spaces and a 0x prefix."""
    if not value:
        return ""
    cleaned = value.strip().replace(" ", "").upper()
    if cleaned.startswith("0X"):
        cleaned = cleaned[2:]
    return cleaned


def fingerprints_match(signer: Optional[str], allowed: Optional[str]) -> bool:
    """
    Decide whether two key identifiers name the same key.

    Exact equality after normalisation always matches. A long key ID
    (at least 16 hex characters) also matches a full fingerprint that
    ends with it. Anything else, including one value merely appearing
    somewhere inside the other, does not match.
    """
    a = normalize_fingerprint(signer)
    b = normalize_fingerprint(allowed)
    if not a or not b:
        return False
    if a == b:
        return True

    short, full = (a, b) if len(a) < len(b) else (b, a)
    if len(short) < MIN_KEY_ID_LENGTH:
        return False
    if not (_HEX_RE.match(short) and _HEX_RE.match(full)):
        return False
    return full.endswith(short)


def fingerprint_in(signer: Optional[str], allowed: Iterable[str]) -> bool:
    """True if ``signer`` matches any fingerprint in ``allowed``."""
    return any(fingerprints_match(signer, fp) for fp in allowed)


def display_fingerprint(value: Optional[str], width: int = MIN_KEY_ID_LENGTH) -> str:
    """Truncate a fingerprint to its trailing ``width`` characters for display only."""
    fp = normalize_fingerprint(value)
    if len(fp) <= width:
        return fp
    return fp[-width:]


@dataclass(frozen=True)
class CommitRecord:
    """A commit as read from the repository. Never mutated after enumeration."""
    sha: str
    author_identity: str
    subject: str
    signature_status: SignatureStatus
    signer_fingerprint: str = ""

    @property
    def short_sha(self) -> str:
        return self.sha[:8]


_MESSAGES = {
    Verdict.TRUSTED_VERIFIED: "Trusted identity (signed, verified)",
    Verdict.IMPERSONATION_ATTEMPT: (
        "Impersonation attempt: trusted identity without a valid signature"
    ),
    Verdict.KEY_MISMATCH: "Key mismatch: signed with unapproved key",
}


@dataclass(frozen=True)
class CommitVerification:
    """A commit together with the verdict reached for it."""
    commit: CommitRecord
    verdict: Verdict

    @property
    def failed(self) -> bool:
        return self.verdict.is_failure

    @property
    def message(self) -> str:
        """Privacy-safe description of the verdict (no names or emails)."""
        if self.verdict == Verdict.EXTERNAL_ALLOWED:
            if self.commit.signature_status.is_usable:
                return "External contributor (signed)"
            return "External contributor (unsigned, allowed)"
        return _MESSAGES[self.verdict]


@dataclass(frozen=True)
class RunSummary:
    """Aggregate outcome of a verification run, derived from its results."""
    checked: int = 0
    trusted_verified: int = 0
    external: int = 0
    impersonation_attempts: int = 0
    key_mismatches: int = 0
    fail_on_unsigned: bool = True

    @property
    def failures(self) -> int:
        return self.impersonation_attempts + self.key_mismatches

    @property
    def passed(self) -> bool:
        if self.key_mismatches:
            return False
        if self.impersonation_attempts and self.fail_on_unsigned:
            return False
        return True

    @classmethod
    def from_results(
        cls,
        results: Iterable[CommitVerification],
        fail_on_unsigned: bool = True,
    ) -> "RunSummary":
        counts = {verdict: 0 for verdict in Verdict}
        checked = 0
        for result in results:
            checked += 1
            counts[result.verdict] += 1
        return cls(
            checked=checked,
            trusted_verified=counts[Verdict.TRUSTED_VERIFIED],
            external=counts[Verdict.EXTERNAL_ALLOWED],
            impersonation_attempts=counts[Verdict.IMPERSONATION_ATTEMPT],
            key_mismatches=counts[Verdict.KEY_MISMATCH],
            fail_on_unsigned=fail_on_unsigned,
        )

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "trusted_verified": self.trusted_verified,
            "external": self.external,
            "impersonation_attempts": self.impersonation_attempts,
            "key_mismatches": self.key_mismatches,
            "failures": self.failures,
            "passed": self.passed,
        }
