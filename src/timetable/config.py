"""Timetable configuration loading and validation.

Reads ``timetable.toml`` from a config directory, resolves ``${VAR}``
references from the environment, and returns a validated TimetableConfig
dataclass. Every section is optional; defaults reproduce the documented
scheduling rules.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

CONFIG_FILENAME = "timetable.toml"
DEFAULT_EVENT_TITLE = "Group lesson"

# Matches ${VAR_NAME} with alphanumeric and underscore names.
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_DB_SCHEMA_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ConfigError(Exception):
    """Raised when timetable configuration is missing, malformed, or invalid."""


@dataclass
class LoggingConfig:
    """Logging configuration from [timetable.logging]."""

    level: str = "INFO"
    format: str = "text"  # "text" or "json"
    log_root: str | None = None


@dataclass
class DatabaseConfig:
    """Database target from [timetable.db]; connection params come from env."""

    name: str = "timetable"
    schema: str | None = None
    min_pool_size: int = 1
    max_pool_size: int = 10


@dataclass
class ApiConfig:
    """HTTP server settings from [timetable.api]."""

    host: str = "127.0.0.1"
    port: int = 40300


@dataclass(frozen=True)
class RecurrenceRules:
    """Validation bounds for schedule generation from [schedule].

    ``max_range_days`` bounds ``valid_to - valid_from``; template durations
    must fall within ``[min_duration_minutes, max_duration_minutes]``.
    """

    min_duration_minutes: int = 30
    max_duration_minutes: int = 240
    max_range_days: int = 365
    default_title: str = DEFAULT_EVENT_TITLE


@dataclass(frozen=True)
class QueryConfig:
    """Listing pagination defaults from [query]."""

    default_page_size: int = 20
    max_page_size: int = 100


@dataclass(frozen=True)
class SyncConfig:
    """Status mutation retry policy from [sync].

    A failed write is retried after ``base_delay_seconds * 2**attempt``
    (attempt is zero-based) until ``max_attempts`` writes have been made.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 1.0


@dataclass
class TimetableConfig:
    """Parsed and validated timetable configuration."""

    name: str = "timetable"
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    db: DatabaseConfig = field(default_factory=DatabaseConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    rules: RecurrenceRules = field(default_factory=RecurrenceRules)
    query: QueryConfig = field(default_factory=QueryConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)


def resolve_env_vars(value: Any) -> Any:
    """Recursively resolve ``${VAR_NAME}`` references in config values.

    Walks dicts, lists, and strings.  Non-string leaf values (int, bool,
    float, None) are returned unchanged.

    Raises
    ------
    ConfigError
        If a referenced environment variable is not set.
    """
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}

    if isinstance(value, list):
        return [resolve_env_vars(item) for item in value]

    if isinstance(value, str):
        return _resolve_string(value)

    return value


def _resolve_string(s: str) -> str:
    """Replace all ``${VAR_NAME}`` occurrences in *s* with env var values.

    Collects all missing variable names and reports them in a single error.
    """
    missing: list[str] = []

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            missing.append(var_name)
            return match.group(0)
        return env_value

    result = _ENV_VAR_PATTERN.sub(_replace, s)

    if missing:
        vars_str = ", ".join(missing)
        raise ConfigError(
            f"Unresolved environment variable(s) in config value: {vars_str} (original: {s!r})"
        )

    return result


def _table(data: dict[str, Any], key: str, path: str) -> dict[str, Any]:
    section = data.get(key, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{path}] must be a TOML table")
    return section


def _positive_int(section: dict[str, Any], key: str, default: int, path: str) -> int:
    raw = section.get(key, default)
    if isinstance(raw, bool):
        raise ConfigError(f"Invalid {path}.{key}: {raw!r}. Must be a positive integer.")
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {path}.{key}: {raw!r}. Must be a positive integer.") from exc
    if value <= 0:
        raise ConfigError(f"Invalid {path}.{key}: {value!r}. Must be a positive integer.")
    return value


def _parse_logging(section: dict[str, Any]) -> LoggingConfig:
    log_level = str(section.get("level", "INFO")).upper()
    log_format = str(section.get("format", "text")).lower()
    if log_format not in ("text", "json"):
        raise ConfigError(
            f"Invalid timetable.logging.format: {log_format!r}. Expected 'text' or 'json'."
        )
    return LoggingConfig(level=log_level, format=log_format, log_root=section.get("log_root"))


def _parse_db(section: dict[str, Any]) -> DatabaseConfig:
    db_name = str(section.get("name", "timetable")).strip()
    if not db_name:
        raise ConfigError("timetable.db.name must be a non-empty string")

    schema_raw = section.get("schema")
    schema: str | None = None
    if schema_raw is not None:
        if not isinstance(schema_raw, str) or not schema_raw.strip():
            raise ConfigError("timetable.db.schema must be a non-empty string when set")
        schema = schema_raw.strip()
        if _DB_SCHEMA_PATTERN.fullmatch(schema) is None:
            raise ConfigError(
                f"Invalid timetable.db.schema: {schema_raw!r}. "
                "Expected a valid SQL identifier-style value."
            )

    min_pool = _positive_int(section, "min_pool_size", 1, "timetable.db")
    max_pool = _positive_int(section, "max_pool_size", 10, "timetable.db")
    if min_pool > max_pool:
        raise ConfigError("timetable.db.min_pool_size must not exceed max_pool_size")
    return DatabaseConfig(
        name=db_name, schema=schema, min_pool_size=min_pool, max_pool_size=max_pool
    )


def _parse_rules(section: dict[str, Any]) -> RecurrenceRules:
    min_minutes = _positive_int(section, "min_duration_minutes", 30, "schedule")
    max_minutes = _positive_int(section, "max_duration_minutes", 240, "schedule")
    if min_minutes > max_minutes:
        raise ConfigError(
            "schedule.min_duration_minutes must not exceed schedule.max_duration_minutes"
        )
    max_range_days = _positive_int(section, "max_range_days", 365, "schedule")

    default_title = section.get("default_title", DEFAULT_EVENT_TITLE)
    if not isinstance(default_title, str) or not default_title.strip():
        raise ConfigError("schedule.default_title must be a non-empty string")

    return RecurrenceRules(
        min_duration_minutes=min_minutes,
        max_duration_minutes=max_minutes,
        max_range_days=max_range_days,
        default_title=default_title.strip(),
    )


def _parse_query(section: dict[str, Any]) -> QueryConfig:
    default_size = _positive_int(section, "default_page_size", 20, "query")
    max_size = _positive_int(section, "max_page_size", 100, "query")
    if default_size > max_size:
        raise ConfigError("query.default_page_size must not exceed query.max_page_size")
    return QueryConfig(default_page_size=default_size, max_page_size=max_size)


def _parse_sync(section: dict[str, Any]) -> SyncConfig:
    max_attempts = _positive_int(section, "max_attempts", 3, "sync")
    raw_delay = section.get("base_delay_seconds", 1.0)
    try:
        base_delay = float(raw_delay)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid sync.base_delay_seconds: {raw_delay!r}") from exc
    if base_delay < 0:
        raise ConfigError(f"Invalid sync.base_delay_seconds: {base_delay!r}. Must be >= 0.")
    return SyncConfig(max_attempts=max_attempts, base_delay_seconds=base_delay)


def parse_config(data: dict[str, Any]) -> TimetableConfig:
    """Validate an already-decoded TOML document into a TimetableConfig."""
    data = resolve_env_vars(data)

    timetable_section = _table(data, "timetable", "timetable")
    name = str(timetable_section.get("name", "timetable")).strip()
    if not name:
        raise ConfigError("timetable.name must be a non-empty string")

    api_section = _table(timetable_section, "api", "timetable.api")
    api = ApiConfig(
        host=str(api_section.get("host", "127.0.0.1")),
        port=_positive_int(api_section, "port", 40300, "timetable.api"),
    )

    return TimetableConfig(
        name=name,
        logging=_parse_logging(_table(timetable_section, "logging", "timetable.logging")),
        db=_parse_db(_table(timetable_section, "db", "timetable.db")),
        api=api,
        rules=_parse_rules(_table(data, "schedule", "schedule")),
        query=_parse_query(_table(data, "query", "query")),
        sync=_parse_sync(_table(data, "sync", "sync")),
    )


def load_config(config_dir: Path) -> TimetableConfig:
    """Load and validate ``timetable.toml`` from *config_dir*.

    Raises
    ------
    ConfigError
        If the file is missing, contains invalid TOML, or holds invalid values.
    """
    toml_path = config_dir / CONFIG_FILENAME

    if not toml_path.exists():
        raise ConfigError(f"Config file not found: {toml_path}")

    raw_bytes = toml_path.read_bytes()
    try:
        data = tomllib.loads(raw_bytes.decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {toml_path}: {exc}") from exc

    return parse_config(data)
