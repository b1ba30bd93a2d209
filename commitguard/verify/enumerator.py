"""
CommitGuard Commit Enumerator

Walks the non-merge commits in ``(merge_base(base, head), head]`` and reads,
for each, the author email, subject and signature metadata git reports.

Failing to establish the range (unresolvable ref, no merge base) is a
structural error: the run must abort rather than verify zero commits.
"""
from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from commitguard.verify.models import CommitRecord, SignatureStatus

logger = logging.getLogger(__name__)

GIT_BINARY = "git"
GIT_TIMEOUT = 120  # seconds

# %G? status, %GP primary key fingerprint, %GF signing key fingerprint,
# %GK key id, %ae author email, %s subject. Subject last: it may contain anything.
SHOW_FORMAT = "%G?%x00%GP%x00%GF%x00%GK%x00%ae%x00%s"
_SHOW_FIELDS = 6


class GitCommandError(Exception):
    """Raised when a git command fails unexpectedly."""

    def __init__(self, args: Sequence[str], reason: str):
        self.git_args = list(args)
        self.reason = reason
        super().__init__(f"git {' '.join(self.git_args)}: {reason}")


class CommitRangeError(Exception):
    """The commit range to verify could not be established."""

    def __init__(self, base: str, head: str, reason: str):
        self.base = base
        self.head = head
        self.reason = reason
        super().__init__(f"Could not establish commit range {base}..{head}: {reason}")


class MergeBaseError(CommitRangeError):
    """No merge base exists between base and head (shallow or unrelated history)."""

    def __init__(self, base: str, head: str):
        super().__init__(base, head, "no merge base (shallow clone or unrelated history?)")


class GitRunner:
    """Runs git commands in a repository working directory."""

    def __init__(self, repo_dir: Optional[Path] = None, git_binary: str = GIT_BINARY,
                 timeout: int = GIT_TIMEOUT, gnupg_home: Optional[Path] = None):
        self.repo_dir = repo_dir
        self.git_binary = git_binary
        self.timeout = timeout
        # Must be the keyring collaborator keys were imported into, or %G? reports E.
        self.gnupg_home = gnupg_home

    def run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        env = dict(os.environ)
        # Never let a pager or prompt block a CI run.
        env.setdefault("GIT_TERMINAL_PROMPT", "0")
        env["GIT_PAGER"] = "cat"
        if self.gnupg_home is not None:
            env["GNUPGHOME"] = str(self.gnupg_home)
        try:
            proc = subprocess.run(
                [self.git_binary, *args],
                cwd=str(self.repo_dir) if self.repo_dir else None,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
                env=env,
            )
        except FileNotFoundError as e:
            raise GitCommandError(args, f"{self.git_binary} not found") from e
        except subprocess.TimeoutExpired as e:
            raise GitCommandError(args, f"timed out after {self.timeout}s") from e

        if check and proc.returncode != 0:
            raise GitCommandError(args, proc.stderr.strip() or f"exit code {proc.returncode}")
        return proc

    def remote_url(self, remote: str = "origin") -> Optional[str]:
        try:
            proc = self.run("remote", "get-url", remote, check=False)
        except GitCommandError:
            return None
        if proc.returncode != 0:
            return None
        return proc.stdout.strip() or None


def parse_show_output(sha: str, output: str) -> CommitRecord:
    """Build a CommitRecord from ``git show -s --format=SHOW_FORMAT`` output."""
    fields = output.rstrip("\n").split("\x00", _SHOW_FIELDS - 1)
    fields += [""] * (_SHOW_FIELDS - len(fields))
    status_code, primary_fpr, signing_fpr, key_id, email, subject = fields

    status = SignatureStatus.from_git_format(status_code)
    if status == SignatureStatus.NONE:
        signer = ""
    else:
        signer = (primary_fpr or signing_fpr or key_id).strip()

    return CommitRecord(
        sha=sha,
        author_identity=email.strip(),
        subject=subject.strip(),
        signature_status=status,
        signer_fingerprint=signer,
    )


class CommitEnumerator:
    """Lists the commits a verification run must check."""

    def __init__(self, git: Optional[GitRunner] = None):
        self.git = git or GitRunner()

    def fetch(self, depth: int = 200, remote: str = "origin") -> bool:
        """Deepen remote-tracking refs so the merge base is reachable.

        Returns False (with a warning) when the fetch fails.
        """
        try:
            self.git.run(
                "fetch", "--no-tags", f"--depth={depth}", remote,
                f"+refs/heads/*:refs/remotes/{remote}/*",
            )
        except GitCommandError as e:
            logger.warning("git fetch failed, continuing with local history: %s", e.reason)
            return False
        return True

    def resolve(self, ref: str, base: str, head: str) -> str:
        proc = self.git.run("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}", check=False)
        sha = proc.stdout.strip()
        if proc.returncode != 0 or not sha:
            raise CommitRangeError(base, head, f"cannot resolve ref '{ref}'")
        return sha

    def merge_base(self, base: str, head: str) -> str:
        base_sha = self.resolve(base, base, head)
        head_sha = self.resolve(head, base, head)
        proc = self.git.run("merge-base", base_sha, head_sha, check=False)
        merge_base = proc.stdout.strip()
        if proc.returncode != 0 or not merge_base:
            raise MergeBaseError(base, head)
        return merge_base

    def list_shas(self, merge_base: str, head: str) -> List[str]:
        proc = self.git.run("rev-list", "--no-merges", f"{merge_base}..{head}")
        return [line.strip() for line in proc.stdout.splitlines() if line.strip()]

    def read_commit(self, sha: str) -> CommitRecord:
        proc = self.git.run("show", "-s", "--no-show-signature", f"--format={SHOW_FORMAT}", sha)
        return parse_show_output(sha, proc.stdout)

    def enumerate(self, base: str, head: str) -> List[CommitRecord]:
        """
        Return the non-merge commits in (merge_base, head], newest first.

        Raises:
            CommitRangeError: If a ref cannot be resolved.
            MergeBaseError: If base and head share no history.
            GitCommandError: If git fails while reading commits.
        """
        merge_base = self.merge_base(base, head)
        logger.info("Checking commit range %s..%s", merge_base[:8], head)

        shas = self.list_shas(merge_base, head)
        if not shas:
            logger.info("No new commits to verify")
            return []

        logger.info("Found %d commit(s) to verify", len(shas))
        return [self.read_commit(sha) for sha in shas]
