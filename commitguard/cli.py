#!/usr/bin/env python3
"""
CommitGuard CLI - anti-impersonation commit signature verification.

Usage:
    commitguard verify [--base REF] [--head REF] [--format text|json|jsonl]
    commitguard trust-map [--show-identities]
"""

import os
import sys
from pathlib import Path
from typing import Optional

import click

from commitguard import __version__
from commitguard.cli_helpers import (
    configure_logging,
    console,
    err_console,
    print_error,
    print_warning,
    spinner,
)
from commitguard.config.loader import ConfigError, load_config
from commitguard.config.models import CommitGuardConfig, OutputFormat
from commitguard.github.client import IdentitySourceError
from commitguard.report import ExitCode, ReportGenerator, exit_code_for
from commitguard.repository import (
    RepositoryDetectionError,
    default_base_ref,
    default_head_ref,
    detect_repository,
)
from commitguard.runner import make_builder, run_verification
from commitguard.verify.enumerator import CommitRangeError, GitCommandError, GitRunner


def _load(repo_dir: Path, config_file: Optional[Path], overrides: dict) -> CommitGuardConfig:
    paths = None
    if config_file is not None:
        paths = [config_file]
    return load_config(project_dir=repo_dir, overrides=overrides, paths=paths)


def _resolve_repository(config: CommitGuardConfig, repo_dir: Path):
    remote = GitRunner(repo_dir).remote_url()
    return detect_repository(
        owner=config.repo_owner,
        name=config.repo_name,
        env=os.environ,
        remote_url=remote,
    )


def _token(config: CommitGuardConfig, token: Optional[str]) -> Optional[str]:
    return token or os.environ.get(config.github.token_env) or None


repo_options = [
    click.option("--repo-owner", default=None, help="Repository owner (auto-detected if omitted)"),
    click.option("--repo-name", default=None, help="Repository name (auto-detected if omitted)"),
    click.option("--repo-dir", type=click.Path(file_okay=False, path_type=Path),
                 default=".", show_default=True, help="Local git repository"),
    click.option("--config", "config_file", type=click.Path(dir_okay=False, path_type=Path),
                 default=None, help="Use this config file instead of the default hierarchy"),
    click.option("--token", default=None,
                 help="GitHub token (defaults to the GITHUB_TOKEN environment variable)"),
    click.option("--show-identities", is_flag=True, default=False,
                 help="Include author emails and key IDs in text output"),
    click.option("--no-platform-key", is_flag=True, default=False,
                 help="Do not import GitHub's web-flow signing key"),
    click.option("--fail-closed", is_flag=True, default=False,
                 help="Abort when collaborators cannot be fetched instead of trusting nobody"),
]


def with_repo_options(func):
    for option in reversed(repo_options):
        func = option(func)
    return func


@click.group()
@click.version_option(version=__version__, prog_name="commitguard")
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v, -vv)")
def main(verbose: int):
    """CommitGuard - catch commits that impersonate trusted collaborators."""
    configure_logging(verbose)


@main.command()
@click.option("--base", default=None, help="Base ref (default: $CIRCLE_BRANCH_BASE or origin/main)")
@click.option("--head", default=None, help="Head ref (default: $CIRCLE_SHA1 or HEAD)")
@click.option("--fetch-depth", type=int, default=None, help="Depth for the pre-verification git fetch")
@click.option("--no-fetch", is_flag=True, default=False, help="Skip the pre-verification git fetch")
@click.option("--fail-on-unsigned/--no-fail-on-unsigned", default=None,
              help="Fail when a trusted identity has an unsigned commit (default: fail)")
@click.option("--format", "output_format", type=click.Choice([f.value for f in OutputFormat]),
              default=None, help="Report format")
@with_repo_options
def verify(base, head, fetch_depth, no_fetch, fail_on_unsigned, output_format,
           repo_owner, repo_name, repo_dir, config_file, token, show_identities,
           no_platform_key, fail_closed):
    """Verify commit signatures in base..head against collaborator keys."""
    overrides = {
        "repo_owner": repo_owner,
        "repo_name": repo_name,
        "verification": {
            "fail_on_unsigned": fail_on_unsigned,
            "fetch_depth": fetch_depth,
            "fetch": False if no_fetch else None,
            "import_platform_key": False if no_platform_key else None,
            "fail_open_on_identity_error": False if fail_closed else None,
        },
        "report": {"format": output_format, "show_identities": True if show_identities else None},
    }

    try:
        config = _load(repo_dir, config_file, overrides)
        repository = _resolve_repository(config, repo_dir)
    except ConfigError as e:
        print_error(str(e), "Check your .commitguard/config.yaml")
        sys.exit(int(ExitCode.CONFIG_ERROR))
    except RepositoryDetectionError as e:
        print_error(str(e), "Pass --repo-owner and --repo-name")
        sys.exit(int(ExitCode.CONFIG_ERROR))

    fmt = config.report.format
    structured = fmt != OutputFormat.TEXT
    out = err_console if structured else console
    base = base or default_base_ref(os.environ)
    head = head or default_head_ref(os.environ)

    out.print("[blue]=== Commit Signature Verification ===[/blue]")
    out.print(f"Repository: {repository.slug}")

    try:
        with spinner("Fetching trusted identities and verifying commits", out=out):
            outcome = run_verification(
                config,
                repository,
                base,
                head,
                token=_token(config, token),
                repo_dir=repo_dir,
            )
    except IdentitySourceError as e:
        print_error(f"Could not fetch trusted identities: {e.reason}",
                    "Set GITHUB_TOKEN or drop --fail-closed")
        sys.exit(int(ExitCode.CONFIG_ERROR))
    except CommitRangeError as e:
        print_error(f"Could not establish commit range {e.base}..{e.head}: {e.reason}",
                    "Fetch more history or check the base ref")
        sys.exit(int(ExitCode.RANGE_ERROR))
    except GitCommandError as e:
        print_error(f"Could not establish commit range: {e}")
        sys.exit(int(ExitCode.RANGE_ERROR))

    if not outcome.build_stats.identity_source_available:
        print_warning("Could not fetch collaborators; every commit is treated as external", out=out)

    report = ReportGenerator(
        console=out,
        show_identities=config.report.show_identities,
        fail_on_unsigned=config.verification.fail_on_unsigned,
    )
    report.render_trust_map(outcome.trust_map)
    out.print()

    if structured:
        report.write_structured(outcome.run, fmt, sys.stdout)
        sys.stdout.flush()
    else:
        report.render_text(outcome.run)

    sys.exit(int(exit_code_for(outcome.run)))


@main.command("trust-map")
@with_repo_options
def trust_map(repo_owner, repo_name, repo_dir, config_file, token, show_identities,
              no_platform_key, fail_closed):
    """Build and summarize the trust map without checking commits."""
    overrides = {
        "repo_owner": repo_owner,
        "repo_name": repo_name,
        "verification": {
            "import_platform_key": False if no_platform_key else None,
            "fail_open_on_identity_error": False if fail_closed else None,
        },
        "report": {"show_identities": True if show_identities else None},
    }
    try:
        config = _load(repo_dir, config_file, overrides)
        repository = _resolve_repository(config, repo_dir)
    except (ConfigError, RepositoryDetectionError) as e:
        print_error(str(e))
        sys.exit(int(ExitCode.CONFIG_ERROR))

    builder = make_builder(config, _token(config, token))
    try:
        with spinner(f"Fetching trusted identities for {repository.slug}"):
            result = builder.build(repository.owner, repository.name)
    except IdentitySourceError as e:
        print_error(f"Could not fetch trusted identities: {e.reason}")
        sys.exit(int(ExitCode.CONFIG_ERROR))

    stats = builder.stats
    console.print(
        f"[blue]ℹ[/blue]  {stats.collaborators} collaborator(s) with write access, "
        f"{stats.keys_imported} key(s) imported, {stats.keys_failed} failed"
    )
    ReportGenerator(console=console, show_identities=config.report.show_identities) \
        .render_trust_map(result)


if __name__ == "__main__":
    main()
