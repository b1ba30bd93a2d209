"""
Load CommitGuard configuration.

Config hierarchy (later wins):
    built-in defaults
    ~/.commitguard/config.yaml     User-level settings
    .commitguard/config.yaml       Project-level settings
    CLI overrides
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from commitguard.config.models import CommitGuardConfig

logger = logging.getLogger(__name__)

COMMITGUARD_HOME = Path.home() / ".commitguard"
USER_CONFIG_PATH = COMMITGUARD_HOME / "config.yaml"
PROJECT_CONFIG_DIR = ".commitguard"
CONFIG_FILENAME = "config.yaml"


class ConfigError(Exception):
    """Raised when a configuration file is unreadable or invalid."""

    def __init__(self, reason: str, path: Optional[Path] = None):
        self.reason = reason
        self.path = path
        prefix = f"{path}: " if path else ""
        super().__init__(f"{prefix}{reason}")


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML: {e}", path) from e
    except OSError as e:
        raise ConfigError(f"cannot read file: {e}", path) from e
    if not isinstance(data, dict):
        raise ConfigError("top level must be a mapping", path)
    return data


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def config_paths(project_dir: Optional[Path] = None) -> List[Path]:
    """Config files consulted, lowest precedence first."""
    paths = [USER_CONFIG_PATH]
    if project_dir is not None:
        paths.append(Path(project_dir) / PROJECT_CONFIG_DIR / CONFIG_FILENAME)
    return paths


def load_config(
    project_dir: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
    paths: Optional[List[Path]] = None,
) -> CommitGuardConfig:
    """
    Load and validate the merged configuration.

    Args:
        project_dir: Project root searched for .commitguard/config.yaml.
        overrides: Nested dict applied last (CLI flags). None values are dropped.
        paths: Explicit list of YAML files, replacing the default hierarchy.

    Raises:
        ConfigError: If any file is invalid or the merged result fails validation.
    """
    merged: Dict[str, Any] = {}
    for path in paths if paths is not None else config_paths(project_dir):
        if not path.is_file():
            continue
        logger.debug("Loading config from %s", path)
        merged = _deep_merge(merged, _read_yaml(path))

    if overrides:
        merged = _deep_merge(merged, _drop_none(overrides))

    try:
        return CommitGuardConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(_format_validation_error(e)) from e


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = {}
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, dict):
            value = _drop_none(value)
            if not value:
                continue
        cleaned[key] = value
    return cleaned


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ()))
        parts.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "invalid configuration: " + "; ".join(parts)
