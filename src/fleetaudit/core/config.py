"""3-layer configuration system for fleetaudit.

Loads and merges configuration from:
1. Default settings (built-in)
2. Project config (.fleetaudit/config.yaml)
3. CLI parameters (override)
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Optional

import yaml

CONFIG_DIR = ".fleetaudit"

DEFAULT_CONFIG: dict = {
    "project": {
        "name": "",
    },
    "inventory": {
        "path": f"{CONFIG_DIR}/inventory.yaml",
    },
    "rules": {
        "response_time_high_ms": 3000,
        "response_time_medium_ms": 1500,
        "uptime_sla_percent": 99.0,
        "max_privileged_sessions": 3,
        "error_log_window_hours": 24,
        "error_log_high": 25,
        "error_log_critical": 100,
        "readiness_high_below": 50,
        "readiness_medium_below": 80,
    },
    "remediation": {
        "strict_handlers": False,
        "publish": False,
    },
    "publish": {
        "provider": "github",
        "retry_attempts": 3,
        "retry_delay_seconds": 2,
        "commit_message": "fleetaudit: apply remediation run {run_id}",
        "github": {
            "api_url": "https://api.github.com",
            "token_env": "GITHUB_TOKEN",
            "default_branch": "main",
            "timeout_seconds": 30,
        },
    },
    "audit": {
        "path": f"{CONFIG_DIR}/audit/remediation-runs.jsonl",
    },
    "output": {
        "format": "markdown",
    },
}


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Arrays are replaced, not merged."""
    result = {}
    for key in base:
        result[key] = base[key]
    for key, value in override.items():
        base_value = result.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            result[key] = deep_merge(base_value, value)
        else:
            result[key] = value
    return result


def load_project_config(project_path: Path) -> dict:
    """Load project configuration from .fleetaudit/config.yaml."""
    config_path = project_path / CONFIG_DIR / "config.yaml"
    if not config_path.exists():
        return {}
    try:
        content = config_path.read_text(encoding="utf-8-sig")  # utf-8-sig strips BOM
        return yaml.safe_load(content) or {}
    except (OSError, yaml.YAMLError):
        return {}


def resolve_project_path(project_path: Path, configured: str) -> Path:
    """Resolve a configured path relative to the project root."""
    path = Path(configured)
    if path.is_absolute():
        return path
    return project_path / path


def get_effective_config(
    project_path: Path,
    cli_overrides: Optional[dict] = None,
) -> dict:
    """Get the fully resolved configuration for a project."""
    config = copy.deepcopy(DEFAULT_CONFIG)

    project_config = load_project_config(project_path)
    if project_config:
        config = deep_merge(config, project_config)

    if cli_overrides:
        config = deep_merge(config, cli_overrides)

    config["_project_path"] = str(project_path)

    return config
