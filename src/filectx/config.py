"""Configuration loading and management."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from filectx.context.attribution import DEFAULT_TTL_SECONDS as DEFAULT_ATTRIBUTION_TTL_SECONDS
from filectx.context.watch_registry import DEFAULT_DEBOUNCE_SECONDS
from filectx.errors import ConfigurationError

# Load .env files
load_dotenv()

PROJECT_DIR = ".filectx"
USER_DIR_NAME = ".filectx"
CONFIG_FILENAME = "config.yaml"


@dataclass(slots=True)
class FileContextConfig:
    """Merged configuration from all sources.

    Priority: CLI args > env vars > project config > user config > defaults
    """

    working_directory: str = ""
    data_dir: str = ""
    tasks_dir: str = ""
    state_db: str = ""

    # Watching
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    attribution_ttl_seconds: float = DEFAULT_ATTRIBUTION_TTL_SECONDS

    debug: bool = False


def find_project_root(start: Path | None = None) -> Path | None:
    """Find the project root by looking for .filectx/ or .git/."""
    current = start or Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / PROJECT_DIR).exists():
            return parent
        if (parent / ".git").exists():
            return parent
    return None


def get_user_config_dir() -> Path:
    """Get the user-level config directory (~/.filectx/)."""
    return Path.home() / USER_DIR_NAME


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load a YAML config file, returning empty dict if not found."""
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        return data if isinstance(data, dict) else {}
    except (yaml.YAMLError, OSError):
        return {}


def load_config(
    *,
    cli_args: dict[str, Any] | None = None,
    working_dir: str | None = None,
) -> FileContextConfig:
    """Load configuration from all sources with proper priority.

    Raises ``ConfigurationError`` for values of the wrong type.
    """
    config = FileContextConfig()
    cli_args = cli_args or {}
    config.working_directory = working_dir or os.getcwd()

    # 1. User-level config (~/.filectx/config.yaml)
    _apply_dict(config, load_yaml_config(get_user_config_dir() / CONFIG_FILENAME))

    # 2. Project-level config (.filectx/config.yaml)
    project_root = find_project_root(Path(config.working_directory))
    if project_root:
        _apply_dict(config, load_yaml_config(project_root / PROJECT_DIR / CONFIG_FILENAME))

    # 3. Environment variables
    env_map = {
        "FILECTX_DATA_DIR": "data_dir",
        "FILECTX_DEBOUNCE": "debounce_seconds",
        "FILECTX_ATTRIBUTION_TTL": "attribution_ttl_seconds",
        "FILECTX_DEBUG": "debug",
    }
    _apply_dict(config, {
        attr: os.environ[var] for var, attr in env_map.items() if os.environ.get(var)
    })

    # 4. CLI args (highest priority)
    _apply_dict(config, cli_args)

    if not config.data_dir:
        config.data_dir = str(get_user_config_dir())
    if not config.tasks_dir:
        config.tasks_dir = str(Path(config.data_dir) / "tasks")
    if not config.state_db:
        config.state_db = str(Path(config.data_dir) / "state.db")
    return config


def _as_float(name: str, value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e
    if result < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value!r}")
    return result


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() in ("1", "true", "yes")
    return bool(value)


def _apply_dict(config: FileContextConfig, data: dict[str, Any]) -> None:
    """Apply dictionary values to config, only for known fields."""
    field_map = {
        "working_directory": "working_directory",
        "data_dir": "data_dir",
        "tasks_dir": "tasks_dir",
        "state_db": "state_db",
        "debounce_seconds": "debounce_seconds",
        "attribution_ttl_seconds": "attribution_ttl_seconds",
        "debug": "debug",
        # Aliases from YAML config
        "dataDir": "data_dir",
        "tasksDir": "tasks_dir",
        "stateDb": "state_db",
        "debounce": "debounce_seconds",
        "attributionTtl": "attribution_ttl_seconds",
    }
    for key, attr in field_map.items():
        if key not in data or data[key] is None:
            continue
        value = data[key]
        if attr in ("debounce_seconds", "attribution_ttl_seconds"):
            value = _as_float(key, value)
        elif attr == "debug":
            value = _as_bool(value)
        else:
            value = str(value)
        setattr(config, attr, value)
