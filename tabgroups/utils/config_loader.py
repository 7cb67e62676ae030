"""Persisted state loader."""

import os
from pathlib import Path
from typing import Any

import yaml

from tabgroups.state import TabGroupState
from tabgroups.utils.logging import get_logger

logger = get_logger("utils.config_loader")

STATE_FILE_ENV = "TAB_GROUPS_STATE_FILE"
DEFAULT_STATE_FILE = "tabgroups-state.yml"


class ConfigLoaderError(Exception):
    """Error raised when state loading or saving fails."""

    pass


def default_state_path() -> Path:
    """Return the state file named by TAB_GROUPS_STATE_FILE, or the default file name."""
    return Path(os.environ.get(STATE_FILE_ENV) or DEFAULT_STATE_FILE)


def load_state(path: Path) -> TabGroupState:
    """Load settings, rules and group colors from a YAML state file.

    If the file does not exist or is empty, returns default state.

    Args:
        path: Path to the state file.

    Returns:
        TabGroupState instance.

    Raises:
        ConfigLoaderError: If the file exists but is invalid.
    """
    if not path.is_file():
        logger.debug("No state file found, using defaults", extra={"path": str(path)})
        return TabGroupState()

    try:
        raw_state = _load_yaml_file(path)
    except yaml.YAMLError as e:
        raise ConfigLoaderError(f"Failed to parse state file {path}: {e}") from e
    except OSError as e:
        raise ConfigLoaderError(f"Failed to read state file {path}: {e}") from e

    if not raw_state:
        logger.debug("State file is empty, using defaults", extra={"file": str(path)})
        return TabGroupState()

    if not isinstance(raw_state, dict):
        raise ConfigLoaderError(f"Invalid state in {path}: expected a mapping")

    try:
        state = TabGroupState.from_dict(raw_state)
    except ValueError as e:
        raise ConfigLoaderError(f"Invalid state in {path}: {e}") from e

    logger.info(
        "Loaded state",
        extra={
            "file": str(path),
            "rule_count": len(state.rules),
            "group_by_mode": state.settings.group_by_mode.value,
        },
    )
    return state


def save_state(state: TabGroupState, path: Path) -> None:
    """Write state to a YAML file.

    Raises:
        ConfigLoaderError: If the file cannot be written.
    """
    content = yaml.safe_dump(state.to_dict(), sort_keys=False, allow_unicode=True)
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise ConfigLoaderError(f"Failed to write state file {path}: {e}") from e

    logger.debug("Saved state", extra={"file": str(path), "rule_count": len(state.rules)})


def _load_yaml_file(filepath: Path) -> dict[str, Any] | None:
    """Load a YAML file.

    Args:
        filepath: Path to the YAML file.

    Returns:
        Parsed YAML content, or None if empty.

    Raises:
        yaml.YAMLError: If YAML is invalid.
        OSError: If file cannot be read.
    """
    content = filepath.read_text(encoding="utf-8")

    if not content.strip():
        return None

    result: dict[str, Any] | None = yaml.safe_load(content)
    return result
