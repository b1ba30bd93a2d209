"""
CommitGuard Trust Map

The trust map binds each trusted identity (an author email) to the set of
key fingerprints authorized to sign for it. It is rebuilt from the identity
source on every run and is read-only once built.

Identities come from three places per collaborator with push/admin access:
- verified emails attached to each of their registered GPG keys
- {login}@users.noreply.github.com
- {id}+{login}@users.noreply.github.com

The platform's own merge-commit key is imported for signature checking and
kept in ``platform_keys``; it is never bound to an identity.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import (
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Optional,
    Protocol,
    Set,
    Tuple,
)

from commitguard.config.signing_keys import (
    GITHUB_NOREPLY_DOMAIN,
    WEB_FLOW_KEY_FINGERPRINT,
)
from commitguard.github.client import Collaborator, GpgKey, IdentitySourceError
from commitguard.logging.redaction import redact_identity
from commitguard.verify.keyring import KeyImportResult
from commitguard.verify.models import (
    display_fingerprint,
    fingerprint_in,
    fingerprints_match,
    normalize_fingerprint,
)

logger = logging.getLogger(__name__)


class TrustMap(Mapping):
    """Immutable mapping of identity -> frozenset of key fingerprints."""

    def __init__(
        self,
        entries: Optional[Mapping[str, Iterable[str]]] = None,
        platform_keys: Iterable[str] = (),
    ):
        frozen: Dict[str, FrozenSet[str]] = {}
        for identity, fingerprints in (entries or {}).items():
            fps = frozenset(
                normalize_fingerprint(fp) for fp in fingerprints if normalize_fingerprint(fp)
            )
            if identity and fps:
                frozen[identity] = fps
        self._entries = MappingProxyType(frozen)
        self._platform_keys = frozenset(
            normalize_fingerprint(fp) for fp in platform_keys if normalize_fingerprint(fp)
        )

    def __getitem__(self, identity: str) -> FrozenSet[str]:
        return self._entries[identity]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TrustMap):
            return NotImplemented
        return (
            dict(self._entries) == dict(other._entries)
            and self._platform_keys == other._platform_keys
        )

    def __hash__(self) -> int:
        return hash((frozenset(self._entries.items()), self._platform_keys))

    def __repr__(self) -> str:
        return (
            f"TrustMap(identities={len(self)}, keys={len(self.all_fingerprints)}, "
            f"platform_keys={len(self._platform_keys)})"
        )

    @property
    def platform_keys(self) -> FrozenSet[str]:
        """Identity-agnostic keys imported only for signature validity."""
        return self._platform_keys

    @property
    def all_fingerprints(self) -> FrozenSet[str]:
        result: Set[str] = set()
        for fps in self._entries.values():
            result.update(fps)
        return frozenset(result)

    def is_authorized(self, identity: str, fingerprint: Optional[str]) -> bool:
        """True if ``fingerprint`` is one of the keys bound to ``identity``."""
        allowed = self._entries.get(identity)
        if not allowed:
            return False
        return fingerprint_in(fingerprint, allowed)

    def union(self, other: "TrustMap") -> "TrustMap":
        """Merge two maps. Commutative and associative."""
        merged: Dict[str, Set[str]] = {k: set(v) for k, v in self._entries.items()}
        for identity, fps in other.items():
            merged.setdefault(identity, set()).update(fps)
        return TrustMap(merged, self._platform_keys | other.platform_keys)

    @classmethod
    def merge(cls, maps: Iterable["TrustMap"]) -> "TrustMap":
        result = cls()
        for trust_map in maps:
            result = result.union(trust_map)
        return result

    def describe(self) -> List[Tuple[str, List[str]]]:
        """Sorted (identity, display fingerprints) pairs for listings."""
        return [
            (identity, sorted(display_fingerprint(fp) for fp in self._entries[identity]))
            for identity in sorted(self._entries)
        ]


class IdentitySource(Protocol):
    """What the builder needs from GitHub (or a test double)."""

    def list_writers(self, owner: str, repo: str) -> List[Collaborator]: ...

    def list_gpg_keys(self, login: str) -> List[GpgKey]: ...

    def get_user_id(self, login: str) -> int: ...

    def get_web_flow_key(self) -> str: ...


class KeyImporter(Protocol):
    def import_key(self, raw_key: Optional[str]) -> KeyImportResult: ...

    def inspect_key(self, raw_key: Optional[str]) -> List[str]: ...

@dataclass
class AccountKeys:
    """Key material fetched for one collaborator."""
    login: str
    account_id: Optional[int] = None
    keys: List[GpgKey] = field(default_factory=list)


@dataclass
class BuildStats:
    """Aggregate counters for a build, safe to log."""
    collaborators: int = 0
    accounts_without_keys: int = 0
    keys_imported: int = 0
    keys_failed: int = 0
    identity_source_available: bool = True
    platform_key_imported: bool = False


class TrustMapBuilder:
    """
    Builds a TrustMap from an identity source and imports keys as it goes.

    Network reads are fanned out per collaborator on a thread pool. Keys are
    imported sequentially since gpg serializes keyring writes anyway.
    """

    def __init__(
        self,
        source: IdentitySource,
        importer: KeyImporter,
        noreply_domain: str = GITHUB_NOREPLY_DOMAIN,
        max_workers: int = 8,
        fail_open: bool = True,
        import_platform_key: bool = True,
        platform_key_fingerprint: str = WEB_FLOW_KEY_FINGERPRINT,
    ):
        self.source = source
        self.importer = importer
        self.noreply_domain = noreply_domain
        self.max_workers = max_workers
        self.fail_open = fail_open
        self.import_platform_key = import_platform_key
        self.platform_key_fingerprint = normalize_fingerprint(platform_key_fingerprint)
        self.stats = BuildStats()

    def build(self, owner: str, repo: str) -> TrustMap:
        """
        Build the trust map for ``owner/repo``.

        Raises:
            IdentitySourceError: Only when the collaborator list is unavailable
                and the builder is configured to fail closed.
        """
        self.stats = BuildStats()
        platform = self._import_platform_key() if self.import_platform_key else TrustMap()

        try:
            collaborators = self.source.list_writers(owner, repo)
        except IdentitySourceError as e:
            self.stats.identity_source_available = False
            if not self.fail_open:
                raise
            logger.warning(
                "Could not fetch collaborators (%s); no identities will be trusted "
                "and every commit is treated as external",
                e.reason,
            )
            return platform

        self.stats.collaborators = len(collaborators)
        logger.info("Found %d collaborator(s) with write access", len(collaborators))

        accounts = self._fetch_accounts(collaborators)
        partials = [self._account_trust(account) for account in accounts]
        trust_map = TrustMap.merge([platform, *partials])

        logger.info(
            "Imported %d key(s), %d failed; trust map has %d identit%s",
            self.stats.keys_imported,
            self.stats.keys_failed,
            len(trust_map),
            "y" if len(trust_map) == 1 else "ies",
        )
        return trust_map

    # --- network fan-out ---

    def _fetch_account(self, collaborator: Collaborator) -> Optional[AccountKeys]:
        try:
            keys = self.source.list_gpg_keys(collaborator.login)
        except IdentitySourceError as e:
            logger.warning("Could not fetch GPG keys for a collaborator: %s", e.reason)
            return None

        account_id = collaborator.id
        if account_id is None and keys:
            try:
                account_id = self.source.get_user_id(collaborator.login)
            except IdentitySourceError as e:
                logger.debug("Could not resolve account id: %s", e.reason)

        return AccountKeys(login=collaborator.login, account_id=account_id, keys=keys)

    def _fetch_accounts(self, collaborators: List[Collaborator]) -> List[AccountKeys]:
        if not collaborators:
            return []
        workers = max(1, min(self.max_workers, len(collaborators)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="trust-fetch") as pool:
            results = list(pool.map(self._fetch_account, collaborators))
        return [r for r in results if r is not None]

    # --- per-account mapping ---

    def noreply_identities(self, login: str, account_id: Optional[int]) -> List[str]:
        """Identities GitHub itself uses when authoring on the account's behalf."""
        identities = [f"{login}@{self.noreply_domain}"]
        if account_id is not None:
            identities.append(f"{account_id}+{login}@{self.noreply_domain}")
        return identities

    def _account_trust(self, account: AccountKeys) -> TrustMap:
        if not account.keys:
            self.stats.accounts_without_keys += 1
            logger.debug("No GPG keys registered for a collaborator")
            return TrustMap()

        entries: Dict[str, Set[str]] = {}
        account_fingerprints: Set[str] = set()

        for key in account.keys:
            result = self.importer.import_key(key.raw_key)
            if not result.success:
                self.stats.keys_failed += 1
                continue
            self.stats.keys_imported += 1

            fingerprints = set(result.fingerprints) or {normalize_fingerprint(key.key_id)}
            fingerprints.discard("")
            if not fingerprints:
                continue
            account_fingerprints.update(fingerprints)

            for email in key.verified_emails:
                entries.setdefault(email, set()).update(fingerprints)
                logger.debug(
                    "Trusting %s -> %s",
                    redact_identity(email),
                    ", ".join(sorted(display_fingerprint(fp) for fp in fingerprints)),
                )
            unverified = len(key.emails) - len(key.verified_emails)
            if unverified:
                logger.debug("Ignored %d unverified email(s) on a key", unverified)

        if account_fingerprints:
            for identity in self.noreply_identities(account.login, account.account_id):
                entries.setdefault(identity, set()).update(account_fingerprints)

        return TrustMap(entries)

    # --- platform key ---

    def _import_platform_key(self) -> TrustMap:
        """Import GitHub's web-flow key if it is exactly the pinned key.

        The downloaded blob is inspected before import, so a key that fails
        the pin (or a blob bundling extra keys) never reaches the keyring.
        """
        try:
            raw_key = self.source.get_web_flow_key()
        except IdentitySourceError as e:
            logger.warning("Could not download GitHub web-flow key: %s", e.reason)
            return TrustMap()

        offered = self.importer.inspect_key(raw_key)
        if len(offered) != 1 or not fingerprints_match(offered[0], self.platform_key_fingerprint):
            logger.warning(
                "Downloaded web-flow key does not match pinned fingerprint %s; not importing",
                display_fingerprint(self.platform_key_fingerprint),
            )
            return TrustMap()

        result = self.importer.import_key(raw_key)
        if not result.success:
            logger.warning("Could not import GitHub web-flow key: %s", result.error)
            return TrustMap()

        self.stats.platform_key_imported = True
        logger.info("GitHub web-flow key imported")
        return TrustMap(platform_keys=[self.platform_key_fingerprint])
