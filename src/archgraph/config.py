"""Configuration loading and management for archgraph.

Configuration sources are merged in priority order:
    1. Defaults (defined in ArchGraphConfig)
    2. Global config (~/.archgraph.toml)
    3. Project config (./archgraph.toml)
    4. Explicit config file
    5. Environment variables (ARCHGRAPH_* prefix)
    6. Overrides passed as kwargs (typically CLI flags)

Example:
    >>> config = load_config(db_path="/tmp/archive.db")
    >>> config.db_path
    '/tmp/archive.db'

A project config that declares an extra singleton type::

    [singletons.queue]
    attribute = "broker"
    conflict_type = "queue_plurality"
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional, get_type_hints

from .exceptions import ConfigurationError, InvalidConfigError
from .merge.conflicts import SingletonRegistry

Verbosity = Literal["quiet", "normal", "verbose"]


def _default_singletons() -> dict[str, dict[str, str]]:
    return {
        "database": {"attribute": "engine", "conflict_type": "database_plurality"},
        "gateway": {"attribute": "provider", "conflict_type": "gateway_plurality"},
    }


@dataclass(frozen=True)
class ArchGraphConfig:
    """Settings for the merge engine and its archive.

    Attributes:
        Storage:
            db_path: SQLite archive file (created on first use)
            busy_timeout_seconds: How long a writer waits for the write lock

        Merge policy:
            default_author: Author recorded when the caller gives none
            block_on_low_confidence: Flag low-confidence modules for review
            singletons: Singleton-by-type rules,
                {node_type: {"attribute": ..., "conflict_type": ...}}

        Output control:
            history_limit: Default number of versions listed by the CLI
            verbosity: Logging verbosity level
            log_file: Optional file that also receives log records
    """

    # Storage
    db_path: str = ".archgraph/archive.db"
    busy_timeout_seconds: float = 30.0

    # Merge policy
    default_author: str = "system"
    block_on_low_confidence: bool = True
    singletons: dict[str, dict[str, str]] = field(default_factory=_default_singletons)

    # Output control
    history_limit: int = 50
    verbosity: Verbosity = "normal"
    log_file: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if not self.db_path:
            raise InvalidConfigError("db_path", self.db_path, "must not be empty")
        if self.db_path == ":memory:":
            raise InvalidConfigError(
                "db_path", self.db_path, "each operation opens its own connection; use a file"
            )
        if self.busy_timeout_seconds <= 0:
            raise InvalidConfigError(
                "busy_timeout_seconds", self.busy_timeout_seconds, "must be positive"
            )
        if not self.default_author:
            raise InvalidConfigError("default_author", self.default_author, "must not be empty")
        if self.history_limit < 1:
            raise InvalidConfigError("history_limit", self.history_limit, "must be at least 1")
        if self.verbosity not in ("quiet", "normal", "verbose"):
            raise InvalidConfigError("verbosity", self.verbosity, "expected quiet/normal/verbose")

        for node_type, rule in self.singletons.items():
            if not isinstance(rule, dict) or not rule.get("attribute"):
                raise InvalidConfigError(
                    f"singletons.{node_type}", rule, "needs an 'attribute' key"
                )

    def registry(self) -> SingletonRegistry:
        """Singleton rules as a registry for the conflict detector."""
        return SingletonRegistry.from_mapping(self.singletons)


def load_config(config_file: Optional[Path] = None, **overrides) -> ArchGraphConfig:
    """Load configuration with auto-discovery and merging.

    Args:
        config_file: Optional explicit config file path
        **overrides: Direct overrides (typically from CLI flags)

    Returns:
        Validated ArchGraphConfig instance

    Raises:
        ConfigurationError: If a config file is invalid or missing
        InvalidConfigError: If a value fails validation
    """
    merged: dict[str, Any] = {}

    global_config = Path.home() / ".archgraph.toml"
    if global_config.exists():
        merged.update(_load_toml_checked(global_config, "global config"))

    project_config = Path.cwd() / "archgraph.toml"
    if project_config.exists():
        merged.update(_load_toml_checked(project_config, "project config"))

    if config_file is not None:
        if not config_file.exists():
            raise ConfigurationError(f"Config file not found: {config_file}")
        merged.update(_load_toml_checked(config_file, "config file"))

    merged.update(_load_env_vars())

    # Convert verbosity boolean flags to string
    if "verbose" in overrides:
        if overrides["verbose"]:
            overrides["verbosity"] = "verbose"
        del overrides["verbose"]
    if "quiet" in overrides:
        if overrides["quiet"]:
            overrides["verbosity"] = "quiet"
        del overrides["quiet"]

    merged.update({k: v for k, v in overrides.items() if v is not None})

    singletons = merged.get("singletons")
    if singletons is not None and not isinstance(singletons, dict):
        raise InvalidConfigError("singletons", singletons, "expected a table of tables")

    try:
        return ArchGraphConfig(**merged)
    except TypeError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def _load_toml_checked(path: Path, what: str) -> dict:
    try:
        return _load_toml_file(path)
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(f"Invalid {what} '{path}': {e}")


def _load_env_vars() -> dict[str, Any]:
    """Load configuration from ARCHGRAPH_* environment variables.

    Supported environment variables:
        ARCHGRAPH_DB_PATH: str
        ARCHGRAPH_BUSY_TIMEOUT_SECONDS: float
        ARCHGRAPH_DEFAULT_AUTHOR: str
        ARCHGRAPH_BLOCK_ON_LOW_CONFIDENCE: bool (true/false/1/0)
        ARCHGRAPH_HISTORY_LIMIT: int
        ARCHGRAPH_VERBOSITY: quiet/normal/verbose
        ARCHGRAPH_LOG_FILE: str

    Returns:
        Dict of field_name -> parsed_value for any ARCHGRAPH_* vars found.
    """
    type_hints = get_type_hints(ArchGraphConfig)

    result: dict[str, Any] = {}

    for field_name in ArchGraphConfig.__dataclass_fields__:
        env_key = f"ARCHGRAPH_{field_name.upper()}"
        env_value = os.environ.get(env_key)

        if env_value is None:
            continue

        type_hint = type_hints.get(field_name)
        if type_hint is None:
            continue

        try:
            parsed = _parse_env_value(env_value, type_hint)
            if parsed is not None:
                result[field_name] = parsed
        except ValueError as e:
            raise InvalidConfigError(env_key, env_value, str(e))

    return result


def _parse_env_value(value: str, type_hint: Any) -> Any:
    """Parse environment variable string to the correct type.

    Returns ``None`` for types that cannot come from an env var (tables).

    Raises:
        ValueError: If value can't be parsed to expected type
    """
    origin = getattr(type_hint, "__origin__", None)

    # Optional[X] is Union[X, None]
    args = getattr(type_hint, "__args__", ())
    if type(None) in args:
        non_none_types = [t for t in args if t is not type(None)]
        if non_none_types:
            type_hint = non_none_types[0]
            origin = getattr(type_hint, "__origin__", None)

    if origin is dict or type_hint is dict:
        return None

    if type_hint is bool:
        lower = value.lower()
        if lower in ("true", "1", "yes", "on"):
            return True
        elif lower in ("false", "0", "no", "off"):
            return False
        else:
            raise ValueError(f"expected true/false, got '{value}'")

    if type_hint is int:
        return int(value)

    if type_hint is float:
        return float(value)

    if type_hint is str or origin is Literal:
        return value

    return None


def _load_toml_file(path: Path) -> dict:
    """Load TOML file and return parsed dict."""
    try:
        import tomllib
    except ModuleNotFoundError:
        # Python < 3.11
        import tomli as tomllib  # type: ignore

    with open(path, "rb") as f:
        return tomllib.load(f)
