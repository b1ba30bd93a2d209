"""Trust map construction and commit signature verification."""

from commitguard.verify.engine import VerificationEngine, VerificationRun, decide
from commitguard.verify.enumerator import (
    CommitEnumerator,
    CommitRangeError,
    GitCommandError,
    GitRunner,
    MergeBaseError,
)
from commitguard.verify.keyring import KeyImportResult, KeyringImporter
from commitguard.verify.models import (
    CommitRecord,
    CommitVerification,
    RunSummary,
    SignatureStatus,
    Verdict,
    fingerprints_match,
)
from commitguard.verify.trust_map import TrustMap, TrustMapBuilder

__all__ = [
    "CommitEnumerator",
    "CommitRangeError",
    "CommitRecord",
    "CommitVerification",
    "GitCommandError",
    "GitRunner",
    "KeyImportResult",
    "KeyringImporter",
    "MergeBaseError",
    "RunSummary",
    "SignatureStatus",
    "TrustMap",
    "TrustMapBuilder",
    "Verdict",
    "VerificationEngine",
    "VerificationRun",
    "decide",
    "fingerprints_match",
]
