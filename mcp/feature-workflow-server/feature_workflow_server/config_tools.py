"""
Configuration Tools for Feature Workflow MCP Server

Handles YAML configuration cascade merge:
  1. Global defaults:  ~/.claude/ or ~/.copilot/ or ~/.gemini/feature-workflow.yaml
  2. Project config:   <repo>/.claude/ or .copilot/ or .gemini/feature-workflow.yaml

Each level overrides the previous. Platform directories are checked
in order (.claude first, then .copilot, then .gemini), using whichever exists.

The project root is FEATURE_WORKFLOW_PROJECT_DIR when set, otherwise the
current working directory. Relative paths in the config resolve against it.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger(__name__)


DEFAULT_CONFIG = {
    "features_dir": ".features",
    "database": ".features/workflows.db",
    "templates_dir": None,
    "workflow_type": "feat",
    "checklist_file": "tasks.md",
    "checkpoints": {
        "write_files": True
    },
    "logging": {
        "level": "INFO"
    }
}

PLATFORM_DIRS = [".claude", ".copilot", ".gemini"]
CONFIG_FILENAME = "feature-workflow.yaml"
PROJECT_DIR_ENV = "FEATURE_WORKFLOW_PROJECT_DIR"


def _validate_config(config: dict, defaults: dict, prefix: str = "") -> list[str]:
    """Validate config against defaults, returning warnings for unknown keys."""
    warnings = []
    for key, value in config.items():
        full_key = f"{prefix}.{key}" if prefix else key
        if key not in defaults:
            warnings.append(f"Unknown config key: '{full_key}'")
        elif isinstance(value, dict) and isinstance(defaults.get(key), dict):
            warnings.extend(_validate_config(value, defaults[key], full_key))
        elif value is not None:
            expected_type = type(defaults.get(key))
            if expected_type is not type(None) and not isinstance(value, expected_type):
                warnings.append(
                    f"Invalid type for '{full_key}': expected {expected_type.__name__}, got {type(value).__name__}"
                )
    return warnings


def _deep_merge(base: dict, override: dict) -> dict:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml(path: Path) -> Optional[dict]:
    if not path.exists():
        return None

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Ignoring unreadable config {path}: {e}")
        return None

    if data is not None and not isinstance(data, dict):
        logger.warning(f"Ignoring config {path}: top level must be a mapping")
        return None
    return data


def get_project_root(project_dir: Optional[str] = None) -> Path:
    if project_dir:
        return Path(project_dir).resolve()
    env_dir = os.environ.get(PROJECT_DIR_ENV)
    if env_dir:
        return Path(env_dir).resolve()
    return Path.cwd()


def _get_global_config_path() -> Path:
    """Return global config path, checking multiple platform directories."""
    for platform_dir in PLATFORM_DIRS:
        path = Path.home() / platform_dir / CONFIG_FILENAME
        if path.exists():
            return path
    return Path.home() / ".claude" / CONFIG_FILENAME


def _get_project_config_path(project_dir: Optional[str] = None) -> Path:
    """Return project config path, checking multiple platform directories."""
    base = get_project_root(project_dir)
    for platform_dir in PLATFORM_DIRS:
        path = base / platform_dir / CONFIG_FILENAME
        if path.exists():
            return path
    return base / ".claude" / CONFIG_FILENAME


def config_get_effective(project_dir: Optional[str] = None) -> dict[str, Any]:
    config = copy.deepcopy(DEFAULT_CONFIG)
    warnings = []
    sources = []

    global_path = _get_global_config_path()
    global_config = _load_yaml(global_path)
    if global_config:
        warnings.extend(_validate_config(global_config, DEFAULT_CONFIG))
        config = _deep_merge(config, global_config)
        sources.append(str(global_path))

    project_path = _get_project_config_path(project_dir)
    project_config = _load_yaml(project_path)
    if project_config:
        warnings.extend(_validate_config(project_config, DEFAULT_CONFIG))
        config = _deep_merge(config, project_config)
        sources.append(str(project_path))

    for warning in warnings:
        logger.warning(warning)

    return {
        "config": config,
        "project_root": str(get_project_root(project_dir)),
        "sources": sources,
        "warnings": warnings,
        "has_global": global_config is not None,
        "has_project": project_config is not None
    }


def resolve_path(value: Optional[str], project_root: Path) -> Optional[Path]:
    if not value:
        return None
    path = Path(value).expanduser()
    return path if path.is_absolute() else project_root / path


def config_get_paths(config: dict, project_root: Path) -> dict[str, Optional[Path]]:
    """Absolute features, database and templates paths for an effective config."""
    return {
        "features_dir": resolve_path(config.get("features_dir"), project_root),
        "database": resolve_path(config.get("database"), project_root),
        "templates_dir": resolve_path(config.get("templates_dir"), project_root),
    }
