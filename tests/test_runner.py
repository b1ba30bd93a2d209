#!/usr/bin/env python3
"""Tests for the end-to-end verification pipeline in commitguard.runner."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from commitguard.config.models import CommitGuardConfig
from commitguard.github.client import IdentitySourceError
from commitguard.repository import Repository
from commitguard.runner import run_verification
from commitguard.verify.enumerator import MergeBaseError
from commitguard.verify.models import SignatureStatus, Verdict
from commitguard.verify.trust_map import TrustMapBuilder

pytestmark = pytest.mark.security

REPO = Repository("acme", "widgets")


@pytest.fixture
def builder(fake_source, fake_importer, make_writer, make_key, fpr1, web_flow_fpr):
    def _make(fail_collaborators=False, fail_open=True):
        source = fake_source(
            writers=[make_writer("alice", 101)],
            keys={"alice": [make_key("alice-key", fpr1[-16:], [("alice@x.com", True)])]},
            fail_collaborators=fail_collaborators,
        )
        importer = fake_importer({"alice-key": [fpr1], "web-flow-armored": [web_flow_fpr]})
        return TrustMapBuilder(source, importer, fail_open=fail_open)
    return _make


@pytest.fixture
def enumerator():
    def _make(commits):
        mock = MagicMock()
        mock.enumerate.return_value = list(commits)
        return mock
    return _make


class TestRunVerification:
    def test_impersonation_detected(self, builder, enumerator, make_commit, fpr1):
        commits = [
            make_commit("alice@x.com", SignatureStatus.GOOD, fpr1, sha="a" * 40),
            make_commit("alice@x.com", SignatureStatus.NONE, sha="b" * 40),
            make_commit("101+alice@users.noreply.github.com", SignatureStatus.BAD,
                        fpr1, sha="c" * 40),
            make_commit("stranger@y.org", SignatureStatus.NONE, sha="d" * 40),
        ]
        enum = enumerator(commits)
        outcome = run_verification(CommitGuardConfig(), REPO, "origin/main", "HEAD",
                                   token="t", builder=builder(), enumerator=enum)

        verdicts = [r.verdict for r in outcome.run.results]
        assert verdicts == [
            Verdict.TRUSTED_VERIFIED,
            Verdict.IMPERSONATION_ATTEMPT,
            Verdict.IMPERSONATION_ATTEMPT,
            Verdict.EXTERNAL_ALLOWED,
        ]
        assert not outcome.run.passed
        enum.enumerate.assert_called_once_with("origin/main", "HEAD")
        enum.fetch.assert_called_once_with(depth=200)
        assert outcome.build_stats.keys_imported == 1

    def test_fetch_skipped_when_disabled(self, builder, enumerator):
        config = CommitGuardConfig.model_validate({"verification": {"fetch": False}})
        enum = enumerator([])
        outcome = run_verification(config, REPO, "b", "h", builder=builder(), enumerator=enum)
        enum.fetch.assert_not_called()
        assert outcome.run.passed

    def test_fail_open_treats_everyone_as_external(self, builder, enumerator, make_commit):
        commits = [make_commit("alice@x.com", SignatureStatus.NONE)]
        outcome = run_verification(CommitGuardConfig(), REPO, "b", "h",
                                   builder=builder(fail_collaborators=True),
                                   enumerator=enumerator(commits))
        assert outcome.build_stats.identity_source_available is False
        assert outcome.run.results[0].verdict == Verdict.EXTERNAL_ALLOWED
        assert outcome.run.passed

    def test_fail_closed_propagates(self, builder, enumerator):
        enum = enumerator([])
        with pytest.raises(IdentitySourceError):
            run_verification(CommitGuardConfig(), REPO, "b", "h",
                             builder=builder(fail_collaborators=True, fail_open=False),
                             enumerator=enum)
        enum.enumerate.assert_not_called()

    def test_range_error_propagates(self, builder, enumerator):
        enum = enumerator([])
        enum.enumerate.side_effect = MergeBaseError("b", "h")
        with pytest.raises(MergeBaseError):
            run_verification(CommitGuardConfig(), REPO, "b", "h",
                             builder=builder(), enumerator=enum)

    def test_unsigned_tolerated_when_configured(self, builder, enumerator, make_commit):
        config = CommitGuardConfig.model_validate({"verification": {"fail_on_unsigned": False}})
        commits = [make_commit("alice@x.com", SignatureStatus.NONE)]
        outcome = run_verification(config, REPO, "b", "h",
                                   builder=builder(), enumerator=enumerator(commits))
        assert outcome.run.summary.impersonation_attempts == 1
        assert outcome.run.passed


class TestIsolatedKeyring:
    def test_git_reads_signatures_from_configured_keyring(self, builder, tmp_path, fpr1):
        gnupg_home = tmp_path / "gnupg"
        config = CommitGuardConfig.model_validate(
            {"verification": {"gnupg_home": str(gnupg_home)}}
        )
        homes = []

        def fake_git(cmd, **kwargs):
            homes.append(kwargs["env"].get("GNUPGHOME"))
            sub = cmd[1]
            if sub == "rev-parse":
                out = "1" * 40
            elif sub == "merge-base":
                out = "2" * 40
            elif sub == "rev-list":
                out = "3" * 40 + "\n"
            elif sub == "show":
                out = "\x00".join(["G", fpr1, fpr1, fpr1[-16:], "alice@x.com", "Signed change"])
            else:
                out = ""
            return subprocess.CompletedProcess(cmd, 0, stdout=out, stderr="")

        with patch("commitguard.verify.enumerator.subprocess.run", side_effect=fake_git):
            outcome = run_verification(config, REPO, "origin/main", "HEAD",
                                       token="t", repo_dir=tmp_path, builder=builder())

        assert len(homes) == 6
        assert all(home == str(gnupg_home) for home in homes)
        assert outcome.run.results[0].verdict == Verdict.TRUSTED_VERIFIED
