"""
Configuration management for interpose.

Supports multiple configuration sources in order of priority:
1. Environment variables (highest priority)
2. Project .env file (.interpose/.env under the working directory)
3. Global config file (~/.interpose/config.yml)
4. Default values (lowest priority)
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from interpose.rules.models import Rule
from interpose.rules.validation import RuleValidationError, parse_rule

logger = logging.getLogger(__name__)

ENV_KEYS = (
    "INTERPOSE_ENABLED",
    "INTERPOSE_RULES_FILE",
    "INTERPOSE_REAPPLY_DELAY_MS",
    "INTERPOSE_MAX_LOGS",
    "INTERPOSE_DEBUG",
)

DEFAULT_REAPPLY_DELAY_MS = 100
DEFAULT_MAX_LOGS = 1000

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def load_env_file(env_path: Path) -> dict[str, str]:
    """Read ``KEY=value`` pairs; comments, blank and malformed lines are skipped."""
    if not env_path.is_file():
        return {}
    values: dict[str, str] = {}
    for raw in env_path.read_text().splitlines():
        line = raw.strip()
        if line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if sep and key.strip():
            values[key.strip()] = value.strip().strip("\"'")
    return values


def get_global_config_path() -> Path:
    return Path.home() / ".interpose" / "config.yml"


def get_project_env_path(project_dir: Path | None = None) -> Path:
    return (project_dir or Path.cwd()) / ".interpose" / ".env"


def _read_global_config() -> dict[str, Any]:
    path = get_global_config_path()
    if not path.is_file():
        return {}
    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: expected a mapping of settings", path)
        return {}
    return data


def get_config(key: str, project_dir: Path | None = None, default: Any = None) -> Any:
    """Look ``key`` up in the environment, the project .env, then the global YAML."""
    if os.environ.get(key):
        return os.environ[key]
    for source in (load_env_file(get_project_env_path(project_dir)), _read_global_config()):
        if key in source:
            return source[key]
    return default


def get_bool(key: str, project_dir: Path | None = None, default: bool = False) -> bool:
    """Read a boolean setting; unrecognised values fall back to ``default``."""
    value = get_config(key, project_dir)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    logger.warning("Ignoring non-boolean value for %s: %r", key, value)
    return default


def get_int(key: str, project_dir: Path | None = None, default: int = 0) -> int:
    """Read a non-negative integer setting."""
    value = get_config(key, project_dir)
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-integer value for %s: %r", key, value)
        return default
    if number < 0:
        logger.warning("Ignoring negative value for %s: %r", key, value)
        return default
    return number


@dataclass(frozen=True)
class EngineSettings:
    """Typed view of the engine configuration."""

    enabled: bool = True
    rules_file: Path | None = None
    reapply_delay_ms: int = DEFAULT_REAPPLY_DELAY_MS
    max_logs: int = DEFAULT_MAX_LOGS
    debug: bool = False

    @classmethod
    def load(cls, project_dir: Path | None = None) -> "EngineSettings":
        rules_file = get_config("INTERPOSE_RULES_FILE", project_dir)
        return cls(
            enabled=get_bool("INTERPOSE_ENABLED", project_dir, default=True),
            rules_file=Path(rules_file).expanduser() if rules_file else None,
            reapply_delay_ms=get_int(
                "INTERPOSE_REAPPLY_DELAY_MS", project_dir, default=DEFAULT_REAPPLY_DELAY_MS
            ),
            max_logs=get_int("INTERPOSE_MAX_LOGS", project_dir, default=DEFAULT_MAX_LOGS),
            debug=get_bool("INTERPOSE_DEBUG", project_dir),
        )


@dataclass(frozen=True)
class RuleFile:
    """Contents of a rules file."""

    rules: list[Rule]
    enabled: bool = True


def read_rules_data(path: Path) -> Any:
    """Parse a YAML or JSON rules file without validating it."""
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


def load_rules_file(path: Path) -> RuleFile:
    """Load and validate a rules file.

    The file holds either a list of rules or a mapping with ``rules`` and an
    optional ``enabled`` flag.  Raises ``RuleValidationError`` naming the
    first invalid rule.
    """
    try:
        data = read_rules_data(path)
    except (ValueError, yaml.YAMLError) as exc:
        raise RuleValidationError(f"Could not parse {path}: {exc}") from exc

    enabled = True
    if isinstance(data, dict):
        enabled = data.get("enabled", True)
        if not isinstance(enabled, bool):
            raise RuleValidationError("enabled must be a boolean")
        data = data.get("rules", [])
    if data is None:
        data = []
    if not isinstance(data, list):
        raise RuleValidationError("Rules file must contain a list of rules")

    rules = []
    for index, item in enumerate(data, start=1):
        try:
            rules.append(parse_rule(item))
        except RuleValidationError as exc:
            raise RuleValidationError(f"Invalid rule #{index}: {exc}") from exc
    logger.debug("Loaded %d rules from %s", len(rules), path)
    return RuleFile(rules=rules, enabled=enabled)
