"""
HOD - Project Configuration
===========================
hod.config.yml, searched upward from the working directory:

    tasksDir: ./tasks
    fields:
      Title: {name: title, required: true}
      Description: {name: description}
      Status: {name: status, default: pending}
    doneStatus: completed
"""

import logging
from pathlib import Path
from typing import Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from .errors import ConfigError, ConfigNotFoundError
from .schema import HodConfig

logger = logging.getLogger("hod.config")

CONFIG_FILE_NAME = "hod.config.yml"

DEFAULT_CONFIG = {
    "tasksDir": "./tasks",
    "fields": {
        "Title": {"name": "title", "required": True},
        "Description": {"name": "description"},
        "Status": {"name": "status", "default": "pending"},
    },
    "doneStatus": "completed",
}


def find_config(start: Union[str, Path, None] = None) -> Optional[Path]:
    """Walk up from `start` until a hod.config.yml turns up"""
    current = Path(start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILE_NAME
        try:
            if candidate.is_file():
                return candidate
        except OSError as e:
            raise ConfigError(f"Cannot access config at {candidate}: {e}") from e
        if current.parent == current:
            return None
        current = current.parent


def _format_issues(error: ValidationError) -> str:
    issues = []
    for issue in error.errors():
        location = ".".join(str(part) for part in issue.get("loc", ()))
        message = str(issue.get("msg", "")).replace("Value error, ", "")
        issues.append(f"{location}: {message}" if location else message)
    return "; ".join(issues)


def parse_config(raw: object) -> HodConfig:
    """Validate an already-parsed YAML document"""
    if not isinstance(raw, dict) or not raw:
        raise ConfigError("Configuration file is empty or invalid")
    try:
        return HodConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {_format_issues(e)}") from e


def load_config(path: Union[str, Path, None] = None, start: Union[str, Path, None] = None) -> HodConfig:
    """
    Load and validate the project config.

    An explicit `path` must exist; otherwise the file is searched upward
    from `start` (default: cwd). tasksDir comes back absolute, resolved
    against the config file's directory.
    """
    if path is not None:
        config_path = Path(path).resolve()
        if not config_path.is_file():
            raise ConfigNotFoundError(f"Config not found: {config_path}")
    else:
        found = find_config(start)
        if found is None:
            raise ConfigNotFoundError()
        config_path = found

    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config {config_path}: {e}") from e

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    config = parse_config(raw)
    config.tasks_dir = str((config_path.parent / config.tasks_dir).resolve())
    logger.debug(f"Loaded config {config_path} (tasksDir={config.tasks_dir})")
    return config


def create_default_config(
    directory: Union[str, Path, None] = None,
    tasks_dir: str = "./tasks",
) -> Tuple[bool, str]:
    """Write a default hod.config.yml and create the tasks directory"""
    root = Path(directory or Path.cwd())
    config_path = root / CONFIG_FILE_NAME
    if config_path.exists():
        return False, f"Configuration already exists ({CONFIG_FILE_NAME})"

    data = dict(DEFAULT_CONFIG, tasksDir=tasks_dir)
    try:
        (root / tasks_dir).mkdir(parents=True, exist_ok=True)
        config_path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot initialize project in {root}: {e}") from e

    logger.info(f"Created {config_path}")
    return True, "HOD project initialized"
