"""Tests for timetable configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from timetable.config import (
    DEFAULT_EVENT_TITLE,
    ConfigError,
    TimetableConfig,
    load_config,
    parse_config,
    resolve_env_vars,
)

pytestmark = pytest.mark.unit

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

FULL_TOML = """\
[timetable]
name = "school"

[timetable.api]
host = "0.0.0.0"
port = 8080

[timetable.db]
name = "school_db"
schema = "timetable"
max_pool_size = 4

[timetable.logging]
level = "debug"
format = "JSON"
log_root = "/var/log/school"

[schedule]
min_duration_minutes = 45
max_duration_minutes = 180
max_range_days = 200
default_title = "  Seminar "

[query]
default_page_size = 10
max_page_size = 50

[sync]
max_attempts = 5
base_delay_seconds = 0.5
"""


def _write_toml(tmp_path: Path, content: str) -> Path:
    """Write *content* to ``timetable.toml`` inside *tmp_path* and return the directory."""
    (tmp_path / "timetable.toml").write_text(content)
    return tmp_path


# ---------------------------------------------------------------------------
# Happy-path tests
# ---------------------------------------------------------------------------


class TestLoadConfig:
    def test_full_config(self, tmp_path):
        config = load_config(_write_toml(tmp_path, FULL_TOML))

        assert config.name == "school"
        assert (config.api.host, config.api.port) == ("0.0.0.0", 8080)
        assert (config.db.name, config.db.schema, config.db.max_pool_size) == (
            "school_db",
            "timetable",
            4,
        )
        assert (config.logging.level, config.logging.format) == ("DEBUG", "json")
        assert config.logging.log_root == "/var/log/school"
        assert config.rules.min_duration_minutes == 45
        assert config.rules.max_duration_minutes == 180
        assert config.rules.max_range_days == 200
        assert config.rules.default_title == "Seminar"
        assert (config.query.default_page_size, config.query.max_page_size) == (10, 50)
        assert (config.sync.max_attempts, config.sync.base_delay_seconds) == (5, 0.5)

    def test_empty_file_gives_defaults(self, tmp_path):
        config = load_config(_write_toml(tmp_path, ""))
        assert config == TimetableConfig()
        assert config.rules.max_range_days == 365
        assert (config.rules.min_duration_minutes, config.rules.max_duration_minutes) == (30, 240)
        assert config.rules.default_title == DEFAULT_EVENT_TITLE
        assert config.sync.max_attempts == 3

    def test_env_vars_resolved(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TT_DB", "from_env")
        config = load_config(_write_toml(tmp_path, '[timetable.db]\nname = "${TT_DB}"\n'))
        assert config.db.name == "from_env"


# ---------------------------------------------------------------------------
# Error cases
# ---------------------------------------------------------------------------


class TestConfigErrors:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path)

    def test_invalid_toml(self, tmp_path):
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(_write_toml(tmp_path, "[timetable\n"))

    def test_missing_env_var(self, monkeypatch):
        monkeypatch.delenv("TT_MISSING", raising=False)
        with pytest.raises(ConfigError, match="TT_MISSING"):
            resolve_env_vars({"a": ["${TT_MISSING}"]})

    @pytest.mark.parametrize(
        "data",
        [
            {"timetable": {"logging": {"format": "xml"}}},
            {"timetable": {"db": {"schema": "no spaces"}}},
            {"timetable": {"db": {"min_pool_size": 5, "max_pool_size": 2}}},
            {"timetable": {"api": {"port": 0}}},
            {"schedule": {"min_duration_minutes": 300}},
            {"schedule": {"max_range_days": True}},
            {"schedule": {"default_title": "   "}},
            {"query": {"default_page_size": 500}},
            {"sync": {"max_attempts": 0}},
            {"sync": {"base_delay_seconds": -1}},
            {"sync": {"base_delay_seconds": "soon"}},
            {"schedule": "not a table"},
        ],
    )
    def test_invalid_values(self, data):
        with pytest.raises(ConfigError):
            parse_config(data)

    def test_non_string_leaves_untouched(self):
        assert resolve_env_vars({"n": 3, "b": True, "x": None}) == {"n": 3, "b": True, "x": None}
