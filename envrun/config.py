"""
Configuration for EnvRun.

Settings come from the environment first and from the ``[envrun]`` section
of ``envrun.toml`` (in the project root) second:

    ENVRUN_DATABASE      / database      path of the database file
    ENVRUN_LOCK_TIMEOUT  / lock_timeout  seconds to wait for a locked database
    ENVRUN_LOG_LEVEL     / log_level     logging level (default WARNING)
    ENVRUN_STRICT        / strict        require an explicit database path

Without an explicit database path, ``envrun.db`` in the working directory
is used, unless strict mode is on.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import logging
import os
from pathlib import Path
import re
import tomllib
from typing import Any

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "envrun.toml"
DATABASE_ENV = "ENVRUN_DATABASE"
DEFAULT_DATABASE_NAME = "envrun.db"
DEFAULT_LOG_LEVEL = "WARNING"

_TRUE_VALUES = {"1", "true", "yes", "on"}

_VAR_PATTERN = re.compile(r"\$\{(\w+)\}|\$(\w+)|%(\w+)%")


def find_project_root(start: Path | None = None) -> Path:
    """Find the nearest directory holding envrun.toml or .git."""
    current = (start or Path.cwd()).resolve()
    for ancestor in [current, *current.parents]:
        if (ancestor / CONFIG_FILE_NAME).is_file() or (ancestor / ".git").exists():
            return ancestor
    return current


def load_config(root: Path | None = None) -> dict[str, Any]:
    """Load the [envrun] section of envrun.toml."""
    path = (root or find_project_root()) / CONFIG_FILE_NAME
    if not path.is_file():
        return {}
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(f"Reading {path} failed: {e}") from e
    section = data.get("envrun", {})
    if not isinstance(section, dict):
        raise ConfigurationError(f"[envrun] in {path} must be a table")
    return section


@dataclass
class EnvRunConfig:
    """Resolved EnvRun settings."""

    database_path: Path
    lock_timeout: float = 0.0
    log_level: str = DEFAULT_LOG_LEVEL
    strict: bool = False


def get_envrun_config(
    environ: Mapping[str, str] | None = None,
    cwd: Path | None = None,
) -> EnvRunConfig:
    """Resolve settings from the environment and envrun.toml.

    Raises:
        ConfigurationError: strict mode without a database path, or an
            invalid value
    """
    env = os.environ if environ is None else environ
    cwd = cwd or Path.cwd()
    root = find_project_root(cwd)
    section = load_config(root)

    strict = _as_bool(env.get("ENVRUN_STRICT", section.get("strict", False)))
    lock_timeout = _as_timeout(env.get("ENVRUN_LOCK_TIMEOUT", section.get("lock_timeout", 0)))
    log_level = str(env.get("ENVRUN_LOG_LEVEL") or section.get("log_level", DEFAULT_LOG_LEVEL))

    # relative paths from the environment follow the working directory,
    # those from envrun.toml follow the directory holding it
    raw_path = (env.get(DATABASE_ENV) or "").strip()
    base = cwd
    if not raw_path:
        raw_path = str(section.get("database", "")).strip()
        base = root
    if not raw_path:
        if strict:
            raise ConfigurationError(f"The {DATABASE_ENV} environment variable is not set.")
        database_path = cwd / DEFAULT_DATABASE_NAME
        logger.info("%s is not set, using %s", DATABASE_ENV, database_path)
    else:
        database_path = Path(os.path.expanduser(_expand_vars(raw_path, env)))
        if not database_path.is_absolute():
            database_path = base / database_path

    return EnvRunConfig(
        database_path=Path(os.path.normpath(database_path)),
        lock_timeout=lock_timeout,
        log_level=log_level.upper(),
        strict=strict,
    )


def _expand_vars(value: str, env: Mapping[str, str]) -> str:
    """Expand $NAME, ${NAME} and %NAME% references; unknown ones are kept."""

    def _lookup(match: re.Match[str]) -> str:
        name = match.group(1) or match.group(2) or match.group(3)
        return env.get(name, match.group(0))

    return _VAR_PATTERN.sub(_lookup, value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE_VALUES


def _as_timeout(value: Any) -> float:
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid lock timeout: {value!r}") from None
    if timeout < 0:
        raise ConfigurationError(f"Invalid lock timeout: {value!r}")
    return timeout
