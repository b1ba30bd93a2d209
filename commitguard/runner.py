"""
CommitGuard verification pipeline.

Wires the pieces together for one run:

    config -> repository -> trust map (+ key import) -> commits -> verdicts

Keys are imported before commits are read, since git can only resolve a
signature to a fingerprint once the signer's key is in the keyring.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from commitguard.config.models import CommitGuardConfig
from commitguard.github.client import GitHubClient
from commitguard.repository import Repository
from commitguard.verify.engine import VerificationEngine, VerificationRun
from commitguard.verify.enumerator import CommitEnumerator, GitRunner
from commitguard.verify.keyring import KeyringImporter
from commitguard.verify.trust_map import BuildStats, TrustMap, TrustMapBuilder

logger = logging.getLogger(__name__)


@dataclass
class RunOutcome:
    trust_map: TrustMap
    build_stats: BuildStats
    run: VerificationRun


def _gnupg_home(config: CommitGuardConfig) -> Optional[Path]:
    home = config.verification.gnupg_home
    return Path(home) if home else None


def make_builder(config: CommitGuardConfig, token: Optional[str]) -> TrustMapBuilder:
    client = GitHubClient(
        token=token,
        api_url=config.github.api_url,
        timeout=config.github.timeout_seconds,
    )
    return TrustMapBuilder(
        source=client,
        importer=KeyringImporter(gnupg_home=_gnupg_home(config)),
        noreply_domain=config.github.noreply_domain,
        max_workers=config.github.max_workers,
        fail_open=config.verification.fail_open_on_identity_error,
        import_platform_key=config.verification.import_platform_key,
    )


def run_verification(
    config: CommitGuardConfig,
    repository: Repository,
    base: str,
    head: str,
    token: Optional[str] = None,
    repo_dir: Optional[Path] = None,
    builder: Optional[TrustMapBuilder] = None,
    enumerator: Optional[CommitEnumerator] = None,
) -> RunOutcome:
    """
    Execute one verification run.

    Raises:
        IdentitySourceError: Collaborators unavailable and fail-closed configured.
        CommitRangeError: The range base..head cannot be established.
        GitCommandError: git failed while reading commits.
    """
    if not token:
        logger.warning("No GitHub token provided; API rate limits and visibility are reduced")

    builder = builder or make_builder(config, token)
    logger.info("Building trust map for %s", repository.slug)
    trust_map = builder.build(repository.owner, repository.name)

    enumerator = enumerator or CommitEnumerator(
        GitRunner(repo_dir, gnupg_home=_gnupg_home(config))
    )
    if config.verification.fetch:
        enumerator.fetch(depth=config.verification.fetch_depth)
    commits = enumerator.enumerate(base, head)

    engine = VerificationEngine(trust_map, fail_on_unsigned=config.verification.fail_on_unsigned)
    return RunOutcome(trust_map=trust_map, build_stats=builder.stats, run=engine.verify(commits))
