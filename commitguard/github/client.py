"""
CommitGuard GitHub Client

Minimal REST client for the identity source:

- GET /repos/{owner}/{repo}/collaborators   accounts and their permissions
- GET /users/{login}/gpg_keys               registered GPG keys per account
- GET /users/{login}                        numeric account id
- https://github.com/web-flow.gpg           GitHub's merge-commit signing key

Responses are validated into pydantic models at this boundary so nothing
duck-typed reaches the trust decision code.
"""
from __future__ import annotations

import http.client
import json
import logging
import re
import ssl
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, List, Optional

from pydantic import BaseModel, Field, ValidationError

from commitguard import __version__
from commitguard.config.signing_keys import WEB_FLOW_KEY_URL

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT = 30  # seconds
PER_PAGE = 100
MAX_PAGES = 50
MAX_RESPONSE_BYTES = 5 * 1_048_576  # 5 MB

_NEXT_LINK_RE = re.compile(r'<([^>]+)>;\s*rel="next"')


class IdentitySourceError(Exception):
    """Raised when the identity source cannot be reached or returns garbage."""

    def __init__(self, reason: str, url: str = ""):
        self.reason = reason
        self.url = url
        super().__init__(f"{reason} ({url})" if url else reason)


# ============================================================================
# Response models
# ============================================================================


class CollaboratorPermissions(BaseModel):
    admin: bool = False
    maintain: bool = False
    push: bool = False
    triage: bool = False
    pull: bool = False

    model_config = {"extra": "ignore"}


class Collaborator(BaseModel):
    """A repository collaborator."""
    login: str = Field(min_length=1)
    id: Optional[int] = None
    permissions: Optional[CollaboratorPermissions] = None

    model_config = {"extra": "ignore"}

    @property
    def can_write(self) -> bool:
        if self.permissions is None:
            return False
        return self.permissions.push or self.permissions.admin


class GpgKeyEmail(BaseModel):
    email: Optional[str] = None
    verified: bool = False

    model_config = {"extra": "ignore"}


class GpgSubkey(BaseModel):
    key_id: Optional[str] = None

    model_config = {"extra": "ignore"}


class GpgKey(BaseModel):
    """A GPG key registered on a GitHub account."""
    key_id: str = ""
    raw_key: Optional[str] = None
    emails: List[GpgKeyEmail] = Field(default_factory=list)
    subkeys: List[GpgSubkey] = Field(default_factory=list)

    model_config = {"extra": "ignore"}

    @property
    def verified_emails(self) -> List[str]:
        return [e.email for e in self.emails if e.email and e.verified]


class GitHubUser(BaseModel):
    login: str
    id: int

    model_config = {"extra": "ignore"}


# ============================================================================
# Client
# ============================================================================


def next_page_url(link_header: Optional[str]) -> Optional[str]:
    """Return the rel="next" URL from a Link header, if any."""
    if not link_header:
        return None
    match = _NEXT_LINK_RE.search(link_header)
    return match.group(1) if match else None


class GitHubClient:
    """Read-only GitHub REST client built on urllib."""

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        if not api_url.startswith("https://"):
            raise ValueError(f"Only HTTPS API URLs are supported: {api_url}")
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._ssl_context = ssl.create_default_context()

    def _headers(self, accept: str) -> dict:
        headers = {
            "User-Agent": f"commitguard/{__version__}",
            "Accept": accept,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, url: str, accept: str = "application/vnd.github+json"):
        """Perform a GET and return (body_text, headers)."""
        if not url.startswith("https://"):
            raise IdentitySourceError("Refusing non-HTTPS URL", url)

        req = urllib.request.Request(url, headers=self._headers(accept))
        try:
            with urllib.request.urlopen(
                req, timeout=self.timeout, context=self._ssl_context
            ) as resp:
                raw = resp.read(MAX_RESPONSE_BYTES + 1)
                if len(raw) > MAX_RESPONSE_BYTES:
                    raise IdentitySourceError("Response exceeded size limit", url)
                return raw.decode("utf-8"), resp.headers
        except urllib.error.HTTPError as e:
            raise IdentitySourceError(f"HTTP {e.code}: {e.reason}", url) from e
        except urllib.error.URLError as e:
            raise IdentitySourceError(f"URL error: {e.reason}", url) from e
        except TimeoutError as e:
            raise IdentitySourceError(f"Timed out after {self.timeout}s", url) from e
        except UnicodeDecodeError as e:
            raise IdentitySourceError("Response is not valid UTF-8", url) from e
        except (OSError, http.client.HTTPException) as e:
            # Connection resets and truncated bodies surface from resp.read().
            raise IdentitySourceError(f"Network error: {e}", url) from e

    def _get_json(self, url: str) -> Any:
        body, headers = self._request(url)
        try:
            return json.loads(body), headers
        except json.JSONDecodeError as e:
            raise IdentitySourceError("Invalid JSON response", url) from e

    def _get_paginated(self, path: str) -> List[Any]:
        query = urllib.parse.urlencode({"per_page": PER_PAGE})
        url: Optional[str] = f"{self.api_url}{path}?{query}"
        items: List[Any] = []
        pages = 0
        while url and pages < MAX_PAGES:
            data, headers = self._get_json(url)
            if not isinstance(data, list):
                raise IdentitySourceError("Expected a JSON array", url)
            items.extend(data)
            pages += 1
            url = next_page_url(headers.get("Link"))
        if url:
            logger.warning(
                "Stopped after %d pages; results beyond this point were not fetched", MAX_PAGES
            )
        return items

    # --- identity source operations ---

    def list_collaborators(self, owner: str, repo: str) -> List[Collaborator]:
        """List all collaborators of a repository (any permission)."""
        path = "/repos/{}/{}/collaborators".format(
            urllib.parse.quote(owner, safe=""), urllib.parse.quote(repo, safe="")
        )
        collaborators = []
        for item in self._get_paginated(path):
            try:
                collaborators.append(Collaborator.model_validate(item))
            except ValidationError:
                logger.debug("Ignoring malformed collaborator record")
        return collaborators

    def list_writers(self, owner: str, repo: str) -> List[Collaborator]:
        """List collaborators holding push or admin permission."""
        return [c for c in self.list_collaborators(owner, repo) if c.can_write]

    def list_gpg_keys(self, login: str) -> List[GpgKey]:
        """List the GPG keys registered for an account."""
        path = "/users/{}/gpg_keys".format(urllib.parse.quote(login, safe=""))
        keys = []
        for item in self._get_paginated(path):
            try:
                keys.append(GpgKey.model_validate(item))
            except ValidationError:
                logger.debug("Ignoring malformed GPG key record")
        return keys

    def get_user_id(self, login: str) -> int:
        """Resolve the numeric account id for a login."""
        url = "{}/users/{}".format(self.api_url, urllib.parse.quote(login, safe=""))
        data, _ = self._get_json(url)
        try:
            return GitHubUser.model_validate(data).id
        except ValidationError as e:
            raise IdentitySourceError("Malformed user record", url) from e

    def get_web_flow_key(self) -> str:
        """Download GitHub's armored web-flow signing key."""
        body, _ = self._request(WEB_FLOW_KEY_URL, accept="application/pgp-keys, */*")
        if "BEGIN PGP PUBLIC KEY BLOCK" not in body:
            raise IdentitySourceError("Response is not an armored public key", WEB_FLOW_KEY_URL)
        return body
