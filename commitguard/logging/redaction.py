"""
CommitGuard Redaction

Keeps contributor-identifying data (emails, names) and credentials out of
logs and reports unless the operator explicitly asks to see identities.
Commit subjects are attacker-controlled, so they are also sanitized against
log injection before being printed.
"""
from __future__ import annotations

import hashlib
import re
from typing import List, Optional, Pattern, Tuple


def sanitize_for_log(text: Optional[str]) -> Optional[str]:
    """Escape control characters that could break log or terminal output.

    Replaces newlines, carriage returns, tabs, null bytes, and ANSI escapes.
    """
    if text is None:
        return None
    return (
        text
        .replace("\x00", "\\x00")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("\x1b", "\\x1b")
    )


def identity_digest(identity: str) -> str:
    """Stable short digest of an identity, for correlating without disclosing."""
    return hashlib.sha256(identity.encode("utf-8")).hexdigest()[:12]


def redact_identity(identity: Optional[str]) -> str:
    """Replace an identity with an opaque, stable placeholder."""
    if not identity:
        return "<none>"
    return f"<identity:{identity_digest(identity)}>"


class TextRedactor:
    """Pattern-based redaction of free text (commit subjects, error messages)."""

    REDACTION_PATTERNS: List[Tuple[str, Pattern, str]] = [
        # GitHub tokens
        ("github", re.compile(
            r'(gh[pousr]_[A-Za-z0-9_]{36,}|github_pat_[A-Za-z0-9_]{22,})'
        ), '***GITHUB_TOKEN_REDACTED***'),

        # Bearer tokens
        ("bearer", re.compile(
            r'(?i)(bearer|token)\s+([A-Za-z0-9_.-]{20,})'
        ), r'\1 ***REDACTED***'),

        # Email addresses
        ("email", re.compile(
            r'([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})'
        ), '***EMAIL_REDACTED***'),
    ]

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def redact(self, text: Optional[str]) -> str:
        if not text:
            return text or ""
        result = sanitize_for_log(text)
        if not self.enabled:
            return result
        for _name, pattern, replacement in self.REDACTION_PATTERNS:
            result = pattern.sub(replacement, result)
        return result
