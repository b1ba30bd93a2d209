"""
CommitGuard - Anti-impersonation commit signature verification.

CommitGuard checks that commits claiming the identity of a repository
collaborator with write access are signed by one of that collaborator's
registered GPG keys.

CommitGuard provides:
- Dynamic trust map built from GitHub collaborators and their GPG keys
- Per-commit verdicts: trusted, external, impersonation, key mismatch
- Privacy-preserving text and JSON reports
"""

__version__ = "0.3.0"
