"""GitHub identity source: collaborators, their GPG keys, and account ids."""

from commitguard.github.client import (
    Collaborator,
    GitHubClient,
    GitHubUser,
    GpgKey,
    GpgKeyEmail,
    IdentitySourceError,
)

__all__ = [
    "Collaborator",
    "GitHubClient",
    "GitHubUser",
    "GpgKey",
    "GpgKeyEmail",
    "IdentitySourceError",
]
