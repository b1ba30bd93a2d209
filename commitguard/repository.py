"""
Repository and commit range detection.

Works out which GitHub repository and which commit range to verify from,
in order: explicit values, CI environment variables, the origin remote.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Mapping, Optional

GITHUB_REMOTE_RE = re.compile(r"github\.com[:/]([^/]+)/([^/]+?)(?:\.git)?/?$")

DEFAULT_BASE_REF = "origin/main"
DEFAULT_HEAD_REF = "HEAD"


class RepositoryDetectionError(Exception):
    """Raised when the repository owner/name cannot be determined."""

    def __init__(self):
        super().__init__("Could not determine repository owner/name")


@dataclass(frozen=True)
class Repository:
    owner: str
    name: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"


def parse_remote_url(url: Optional[str]) -> Optional[Repository]:
    """Parse an https or ssh GitHub remote URL."""
    if not url:
        return None
    match = GITHUB_REMOTE_RE.search(url.strip())
    if not match:
        return None
    return Repository(owner=match.group(1), name=match.group(2))


def detect_repository(
    owner: Optional[str] = None,
    name: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    remote_url: Optional[str] = None,
) -> Repository:
    """
    Determine the repository to read collaborators from.

    Raises:
        RepositoryDetectionError: If no source yields both owner and name.
    """
    env = env or {}
    if owner and name:
        return Repository(owner=owner, name=name)

    ci_owner = env.get("CIRCLE_PROJECT_USERNAME")
    ci_name = env.get("CIRCLE_PROJECT_REPONAME")
    if ci_owner and ci_name:
        return Repository(owner=owner or ci_owner, name=name or ci_name)

    slug = env.get("GITHUB_REPOSITORY", "")
    if slug.count("/") == 1:
        gh_owner, gh_name = slug.split("/")
        if gh_owner and gh_name:
            return Repository(owner=owner or gh_owner, name=name or gh_name)

    parsed = parse_remote_url(remote_url)
    if parsed:
        return Repository(owner=owner or parsed.owner, name=name or parsed.name)

    raise RepositoryDetectionError()


def default_base_ref(env: Mapping[str, str]) -> str:
    return env.get("CIRCLE_BRANCH_BASE") or DEFAULT_BASE_REF


def default_head_ref(env: Mapping[str, str]) -> str:
    return env.get("CIRCLE_SHA1") or DEFAULT_HEAD_REF
