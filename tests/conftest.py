"""Pytest configuration and fixtures for CommitGuard tests."""

from typing import Dict, List, Optional
from unittest.mock import patch

import pytest

from commitguard.github.client import Collaborator, GpgKey, IdentitySourceError
from commitguard.verify.keyring import KeyImportResult
from commitguard.verify.models import CommitRecord, SignatureStatus
from commitguard.verify.trust_map import TrustMap

FPR1 = "AAAAAAAAAAAAAAAAAAAAAAAA1111111111111111"
FPR2 = "BBBBBBBBBBBBBBBBBBBBBBBB2222222222222222"
WEB_FLOW = "968479A1AFF927E37D1A566BB5690EEEBB952194"


@pytest.fixture(autouse=True)
def _isolate_user_config(tmp_path):
    """Never read the real ~/.commitguard/config.yaml during tests."""
    with patch("commitguard.config.loader.USER_CONFIG_PATH", tmp_path / "no-user-config.yaml"):
        yield


@pytest.fixture
def fpr1():
    return FPR1


@pytest.fixture
def fpr2():
    return FPR2


@pytest.fixture
def web_flow_fpr():
    return WEB_FLOW


@pytest.fixture
def make_commit():
    """Factory for CommitRecord snapshots."""
    def _make(
        identity: str = "a@x.com",
        status: SignatureStatus = SignatureStatus.GOOD,
        fingerprint: str = "",
        sha: str = "0123456789abcdef0123456789abcdef01234567",
        subject: str = "Add feature",
    ) -> CommitRecord:
        return CommitRecord(
            sha=sha,
            author_identity=identity,
            subject=subject,
            signature_status=status,
            signer_fingerprint="" if status == SignatureStatus.NONE else fingerprint,
        )
    return _make


@pytest.fixture
def trust_map():
    return TrustMap({"a@x.com": {"FPR1"}})


class FakeIdentitySource:
    """In-memory stand-in for GitHubClient."""

    def __init__(
        self,
        writers: Optional[List[Collaborator]] = None,
        keys: Optional[Dict[str, List[GpgKey]]] = None,
        user_ids: Optional[Dict[str, int]] = None,
        web_flow_key: Optional[str] = "web-flow-armored",
        fail_collaborators: bool = False,
        fail_keys_for: tuple = (),
    ):
        self.writers = writers or []
        self.keys = keys or {}
        self.user_ids = user_ids or {}
        self.web_flow_key = web_flow_key
        self.fail_collaborators = fail_collaborators
        self.fail_keys_for = fail_keys_for
        self.user_id_lookups: List[str] = []

    def list_writers(self, owner, repo):
        if self.fail_collaborators:
            raise IdentitySourceError("HTTP 503: Service Unavailable")
        return list(self.writers)

    def list_gpg_keys(self, login):
        if login in self.fail_keys_for:
            raise IdentitySourceError("HTTP 500: Internal Server Error")
        return list(self.keys.get(login, []))

    def get_user_id(self, login):
        self.user_id_lookups.append(login)
        if login not in self.user_ids:
            raise IdentitySourceError("HTTP 404: Not Found")
        return self.user_ids[login]

    def get_web_flow_key(self):
        if self.web_flow_key is None:
            raise IdentitySourceError("URL error: offline")
        return self.web_flow_key


class FakeImporter:
    """Maps raw key text to the fingerprints a gpg import would report."""

    def __init__(self, fingerprints: Optional[Dict[str, List[str]]] = None):
        self.fingerprints = fingerprints or {}
        self.imported: List[str] = []
        self.inspected: List[str] = []

    def import_key(self, raw_key):
        self.imported.append(raw_key)
        fprs = self.fingerprints.get(raw_key)
        if not fprs:
            return KeyImportResult(success=False, error="invalid key")
        return KeyImportResult(success=True, fingerprints=list(fprs))

    def inspect_key(self, raw_key):
        self.inspected.append(raw_key)
        return list(self.fingerprints.get(raw_key, []))


@pytest.fixture
def fake_source():
    return FakeIdentitySource


@pytest.fixture
def fake_importer():
    return FakeImporter


@pytest.fixture
def make_writer():
    def _make(login: str, account_id: Optional[int] = None, push: bool = True,
              admin: bool = False) -> Collaborator:
        return Collaborator.model_validate({
            "login": login,
            "id": account_id,
            "permissions": {"push": push, "admin": admin},
        })
    return _make


@pytest.fixture
def make_key():
    def _make(raw: str, key_id: str, emails=()) -> GpgKey:
        """emails: iterable of (address, verified) pairs."""
        return GpgKey.model_validate({
            "key_id": key_id,
            "raw_key": raw,
            "emails": [{"email": e, "verified": v} for e, v in emails],
        })
    return _make
