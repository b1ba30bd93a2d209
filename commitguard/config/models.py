"""
Pydantic models for CommitGuard configuration validation.

These models define the schema for config.yaml. They provide:
- Type-safe configuration loading with automatic validation
- Human-readable error messages for invalid configuration
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from commitguard.config.signing_keys import GITHUB_NOREPLY_DOMAIN


class OutputFormat(str, Enum):
    """Report output formats."""
    TEXT = "text"
    JSON = "json"
    JSONL = "jsonl"


class GitHubConfig(BaseModel):
    """Identity source settings."""
    api_url: str = "https://api.github.com"
    noreply_domain: str = GITHUB_NOREPLY_DOMAIN
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_workers: int = Field(default=8, ge=1, le=64)
    token_env: str = "GITHUB_TOKEN"

    model_config = {"extra": "forbid"}

    @field_validator("api_url")
    @classmethod
    def require_https(cls, v: str) -> str:
        if not v.startswith("https://"):
            raise ValueError("api_url must use https://")
        return v.rstrip("/")


class VerificationConfig(BaseModel):
    """Trust decision settings."""
    fail_on_unsigned: bool = True
    fail_open_on_identity_error: bool = True
    import_platform_key: bool = True
    fetch: bool = True
    fetch_depth: int = Field(default=200, ge=1)
    gnupg_home: Optional[str] = None

    model_config = {"extra": "forbid"}


class ReportConfig(BaseModel):
    """Report rendering settings."""
    format: OutputFormat = OutputFormat.TEXT
    show_identities: bool = False

    model_config = {"extra": "forbid"}


class CommitGuardConfig(BaseModel):
    """Root configuration model."""
    repo_owner: Optional[str] = None
    repo_name: Optional[str] = None
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)

    model_config = {"extra": "forbid"}
