"""
CommitGuard Verification Engine

Decides, for every commit, whether a claimed trusted identity is backed by
a signature from one of that identity's authorized keys.

    author not in trust map           -> EXTERNAL_ALLOWED (signed or not)
    trusted, signature not usable     -> IMPERSONATION_ATTEMPT
    trusted, signer not authorized    -> KEY_MISMATCH
    trusted, signer authorized        -> TRUSTED_VERIFIED

Findings are ordinary results: every commit is evaluated, and all findings
are reported together.

Identity lookup is an exact, case-sensitive string match. An author email
that differs from a trusted one only in case (``Alice@X.com`` against
``alice@x.com``) is not in the trust map and is treated as external.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List

from commitguard.verify.models import (
    CommitRecord,
    CommitVerification,
    RunSummary,
    Verdict,
)
from commitguard.verify.trust_map import TrustMap

logger = logging.getLogger(__name__)


def decide(commit: CommitRecord, trust_map: TrustMap) -> Verdict:
    """Pure per-commit decision. Depends on nothing but its two arguments."""
    if commit.author_identity not in trust_map:
        return Verdict.EXTERNAL_ALLOWED

    if not commit.signature_status.is_usable:
        return Verdict.IMPERSONATION_ATTEMPT

    if not trust_map.is_authorized(commit.author_identity, commit.signer_fingerprint):
        return Verdict.KEY_MISMATCH

    return Verdict.TRUSTED_VERIFIED


@dataclass(frozen=True)
class VerificationRun:
    """Ordered per-commit results plus the derived summary."""
    results: List[CommitVerification] = field(default_factory=list)
    summary: RunSummary = field(default_factory=RunSummary)

    @property
    def passed(self) -> bool:
        return self.summary.passed

    @property
    def findings(self) -> List[CommitVerification]:
        return [r for r in self.results if r.failed]


class VerificationEngine:
    """Applies the trust decision to a sequence of commits."""

    def __init__(self, trust_map: TrustMap, fail_on_unsigned: bool = True):
        self.trust_map = trust_map
        self.fail_on_unsigned = fail_on_unsigned

    def verify_commit(self, commit: CommitRecord) -> CommitVerification:
        return CommitVerification(commit=commit, verdict=decide(commit, self.trust_map))

    def verify(self, commits: Iterable[CommitRecord]) -> VerificationRun:
        results = [self.verify_commit(commit) for commit in commits]
        summary = RunSummary.from_results(results, fail_on_unsigned=self.fail_on_unsigned)

        if summary.failures:
            logger.warning(
                "%d impersonation attempt(s), %d key mismatch(es) in %d commit(s)",
                summary.impersonation_attempts,
                summary.key_mismatches,
                summary.checked,
            )
        else:
            logger.info("Verified %d commit(s), no findings", summary.checked)

        return VerificationRun(results=results, summary=summary)
