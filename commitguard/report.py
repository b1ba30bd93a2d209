"""
CommitGuard Report Generator

Renders verification results without contributor-identifying data:
by default only SHA, subject and verdict per commit plus aggregate
counts. Author emails and signer fingerprints appear in text output only
when the operator asks for identities. Structured output (json, jsonl)
never carries identity fields.
"""
from __future__ import annotations

import json
from enum import IntEnum
from typing import IO, Any, Dict, Iterator, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from commitguard.config.models import OutputFormat
from commitguard.logging.redaction import TextRedactor
from commitguard.verify.engine import VerificationRun
from commitguard.verify.models import CommitVerification, Verdict, display_fingerprint
from commitguard.verify.trust_map import TrustMap


class ExitCode(IntEnum):
    """Process exit status."""
    OK = 0
    VERIFICATION_FAILED = 1
    RANGE_ERROR = 2
    CONFIG_ERROR = 3


def exit_code_for(run: VerificationRun) -> ExitCode:
    return ExitCode.OK if run.passed else ExitCode.VERIFICATION_FAILED


_VERDICT_LABELS = {
    Verdict.TRUSTED_VERIFIED: "[green]✓ OK[/green]  ",
    Verdict.EXTERNAL_ALLOWED: "[green]✓ OK[/green]  ",
    Verdict.IMPERSONATION_ATTEMPT: "[red bold]✗ FAIL[/red bold]",
    Verdict.KEY_MISMATCH: "[red bold]✗ FAIL[/red bold]",
}


class ReportGenerator:
    """Formats a VerificationRun as text, JSON, or JSON lines."""

    def __init__(
        self,
        console: Optional[Console] = None,
        show_identities: bool = False,
        fail_on_unsigned: bool = True,
    ):
        self.console = console or Console()
        self.show_identities = show_identities
        self.fail_on_unsigned = fail_on_unsigned
        self._subject_redactor = TextRedactor(enabled=not show_identities)
        self._structured_redactor = TextRedactor(enabled=True)

    # --- structured output ---

    def commit_record(self, result: CommitVerification) -> Dict[str, Any]:
        """Machine-readable record for one commit. No identity fields."""
        commit = result.commit
        return {
            "sha": commit.sha,
            "short_sha": commit.short_sha,
            "subject": self._structured_redactor.redact(commit.subject),
            "signature_status": commit.signature_status.value,
            "verdict": result.verdict.value,
            "message": result.message,
            "failed": result.failed,
        }

    def to_dict(self, run: VerificationRun) -> Dict[str, Any]:
        return {
            "summary": run.summary.to_dict(),
            "commits": [self.commit_record(r) for r in run.results],
        }

    def iter_json_lines(self, run: VerificationRun) -> Iterator[str]:
        for result in run.results:
            yield json.dumps({"type": "commit", **self.commit_record(result)}, sort_keys=True)
        yield json.dumps({"type": "summary", **run.summary.to_dict()}, sort_keys=True)

    def write_structured(self, run: VerificationRun, fmt: OutputFormat, stream: IO[str]) -> None:
        if fmt == OutputFormat.JSONL:
            for line in self.iter_json_lines(run):
                stream.write(line + "\n")
        else:
            stream.write(json.dumps(self.to_dict(run), indent=2, sort_keys=True) + "\n")

    # --- human output ---

    def _label(self, result: CommitVerification) -> str:
        if result.verdict == Verdict.IMPERSONATION_ATTEMPT and not self.fail_on_unsigned:
            return "[yellow bold]⚠ WARN[/yellow bold]"
        return _VERDICT_LABELS[result.verdict]

    def _detail_lines(self, result: CommitVerification) -> List[str]:
        commit = result.commit
        lines = []
        if result.verdict == Verdict.IMPERSONATION_ATTEMPT:
            lines.append(
                "[red]Security violation[/red]: author claims a trusted identity "
                f"but signature status is '{commit.signature_status.value}'"
            )
            lines.append("[red]Possible impersonation attempt![/red]")
        elif result.verdict == Verdict.KEY_MISMATCH:
            lines.append("[red]Key mismatch[/red]: signed with a key not approved for this identity")
        elif result.verdict == Verdict.TRUSTED_VERIFIED:
            lines.append(f"[green]Verified[/green]: {result.message}")
        else:
            lines.append(f"[yellow]External[/yellow]: {result.message}")

        if self.show_identities:
            lines.append(f"Author: {escape(commit.author_identity)}")
            if commit.signer_fingerprint:
                lines.append(f"Signed by key: {display_fingerprint(commit.signer_fingerprint)}")
        return lines

    def render_commit(self, result: CommitVerification) -> None:
        subject = escape(self._subject_redactor.redact(result.commit.subject))
        self.console.print(f"{self._label(result)} {result.commit.short_sha} {subject}")
        for line in self._detail_lines(result):
            self.console.print(f"    {line}")

    def render_summary(self, run: VerificationRun) -> None:
        summary = run.summary
        table = Table(title="Verification Summary", show_header=False, title_justify="left")
        table.add_column("Metric", style="bold")
        table.add_column("Count", justify="right")
        table.add_row("Commits checked", str(summary.checked))
        table.add_row("Trusted verified", f"[green]{summary.trusted_verified}[/green]")
        table.add_row("External contributors", f"[green]{summary.external}[/green]")
        if summary.impersonation_attempts:
            style = "red" if summary.fail_on_unsigned else "yellow"
            table.add_row(
                "Impersonation attempts",
                f"[{style}]{summary.impersonation_attempts}[/{style}]",
            )
        if summary.key_mismatches:
            table.add_row("Key mismatches", f"[red]{summary.key_mismatches}[/red]")
        self.console.print()
        self.console.print(table)
        self.console.print()

        if summary.passed:
            self.console.print("[green]✓ All signature checks passed![/green]")
            if summary.checked:
                self.console.print("No impersonation attempts detected.")
            return

        self.console.print("[red bold]✗ Signature verification FAILED![/red bold]")
        self.console.print()
        self.console.print("Action required:")
        self.console.print("  - Review failed commits immediately")
        self.console.print("  - Verify the committer's identity")
        self.console.print("  - Do NOT merge if impersonation is suspected")

    def render_text(self, run: VerificationRun) -> None:
        if not run.results:
            self.console.print("[green]✓[/green] No new commits to verify")
        for result in run.results:
            self.render_commit(result)
            self.console.print()
        self.render_summary(run)

    def render_trust_map(self, trust_map: TrustMap) -> None:
        """List trusted identities. Identities are shown only on request."""
        count = len(trust_map)
        if count == 0:
            self.console.print("[yellow]⚠[/yellow]  No trusted identities configured")
            self.console.print("  This means ALL commits will be allowed (unsigned commits OK)")
            self.console.print("  Consider setting GITHUB_TOKEN to fetch collaborator keys")
            return

        self.console.print(
            f"[blue]ℹ[/blue]  {count} trusted identit{'y' if count == 1 else 'ies'}, "
            f"{len(trust_map.all_fingerprints)} authorized key(s)"
        )
        if trust_map.platform_keys:
            self.console.print("[blue]ℹ[/blue]  GitHub web-flow key available for merge commits")
        if not self.show_identities:
            return
        for identity, fingerprints in trust_map.describe():
            self.console.print(f"    {escape(identity)} (keys: {', '.join(fingerprints)})")
