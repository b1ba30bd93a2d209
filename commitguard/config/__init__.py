"""CommitGuard configuration: pydantic models, YAML loading, pinned keys."""

from commitguard.config.loader import ConfigError, load_config
from commitguard.config.models import (
    CommitGuardConfig,
    GitHubConfig,
    OutputFormat,
    ReportConfig,
    VerificationConfig,
)

__all__ = [
    "CommitGuardConfig",
    "ConfigError",
    "GitHubConfig",
    "OutputFormat",
    "ReportConfig",
    "VerificationConfig",
    "load_config",
]
