"""
Configuration resolution tests.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from envrun.config import (
    DEFAULT_DATABASE_NAME,
    find_project_root,
    get_envrun_config,
    load_config,
)
from envrun.errors import ConfigurationError, ExitCode


class TestDatabasePath:
    def test_default_in_working_directory(self, tmp_path: Path):
        cfg = get_envrun_config({}, cwd=tmp_path)
        assert cfg.database_path == tmp_path / DEFAULT_DATABASE_NAME
        assert cfg.lock_timeout == 0
        assert cfg.log_level == "WARNING"

    def test_environment_variable(self, tmp_path: Path):
        target = tmp_path / "db" / "vars.db"
        cfg = get_envrun_config({"ENVRUN_DATABASE": str(target)}, cwd=tmp_path)
        assert cfg.database_path == target

    def test_relative_path_resolved_against_cwd(self, tmp_path: Path):
        cfg = get_envrun_config({"ENVRUN_DATABASE": "out/../vars.db"}, cwd=tmp_path)
        assert cfg.database_path == tmp_path / "vars.db"

    def test_variables_in_path_expanded(self, tmp_path: Path):
        env = {"ENVRUN_DATABASE": "$BASE/%NAME%.db", "BASE": str(tmp_path), "NAME": "ci"}
        cfg = get_envrun_config(env, cwd=tmp_path)
        assert cfg.database_path == tmp_path / "ci.db"

    def test_blank_variable_counts_as_unset(self, tmp_path: Path):
        cfg = get_envrun_config({"ENVRUN_DATABASE": "   "}, cwd=tmp_path)
        assert cfg.database_path == tmp_path / DEFAULT_DATABASE_NAME

    def test_strict_mode_requires_database(self, tmp_path: Path):
        with pytest.raises(ConfigurationError) as excinfo:
            get_envrun_config({"ENVRUN_STRICT": "1"}, cwd=tmp_path)
        assert excinfo.value.exit_code == ExitCode.CONFIGURATION_ERROR
        assert "ENVRUN_DATABASE" in str(excinfo.value)

    def test_strict_mode_with_database(self, tmp_path: Path):
        env = {"ENVRUN_STRICT": "true", "ENVRUN_DATABASE": str(tmp_path / "x.db")}
        assert get_envrun_config(env, cwd=tmp_path).strict is True


class TestConfigFile:
    def test_toml_section(self, tmp_path: Path):
        (tmp_path / "envrun.toml").write_text(
            '[envrun]\ndatabase = "state/envrun.db"\nlock_timeout = 2.5\nlog_level = "debug"\n',
            encoding="utf-8",
        )
        cfg = get_envrun_config({}, cwd=tmp_path)
        assert cfg.database_path == tmp_path.resolve() / "state" / "envrun.db"
        assert cfg.lock_timeout == 2.5
        assert cfg.log_level == "DEBUG"

    def test_environment_overrides_toml(self, tmp_path: Path):
        (tmp_path / "envrun.toml").write_text(
            '[envrun]\ndatabase = "from-toml.db"\nlock_timeout = 5\n', encoding="utf-8"
        )
        env = {"ENVRUN_DATABASE": "from-env.db", "ENVRUN_LOCK_TIMEOUT": "1"}
        cfg = get_envrun_config(env, cwd=tmp_path)
        assert cfg.database_path == tmp_path / "from-env.db"
        assert cfg.lock_timeout == 1.0

    def test_toml_strict(self, tmp_path: Path):
        (tmp_path / "envrun.toml").write_text("[envrun]\nstrict = true\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            get_envrun_config({}, cwd=tmp_path)

    def test_found_in_parent_directory(self, tmp_path: Path):
        (tmp_path / "envrun.toml").write_text("[envrun]\nlock_timeout = 3\n", encoding="utf-8")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_project_root(nested) == tmp_path.resolve()
        assert get_envrun_config({}, cwd=nested).lock_timeout == 3

    def test_toml_database_relative_to_project_root(self, tmp_path: Path):
        (tmp_path / "envrun.toml").write_text(
            '[envrun]\ndatabase = "state/envrun.db"\n', encoding="utf-8"
        )
        nested = tmp_path / "sub"
        nested.mkdir()
        cfg = get_envrun_config({}, cwd=nested)
        assert cfg.database_path == tmp_path.resolve() / "state" / "envrun.db"

        # a relative ENVRUN_DATABASE still follows the working directory
        cfg = get_envrun_config({"ENVRUN_DATABASE": "local.db"}, cwd=nested)
        assert cfg.database_path == nested / "local.db"

    def test_missing_file(self, tmp_path: Path):
        assert load_config(tmp_path) == {}

    def test_invalid_toml(self, tmp_path: Path):
        (tmp_path / "envrun.toml").write_text("[envrun\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            load_config(tmp_path)

    def test_invalid_lock_timeout(self, tmp_path: Path):
        with pytest.raises(ConfigurationError):
            get_envrun_config({"ENVRUN_LOCK_TIMEOUT": "soon"}, cwd=tmp_path)
        with pytest.raises(ConfigurationError):
            get_envrun_config({"ENVRUN_LOCK_TIMEOUT": "-1"}, cwd=tmp_path)
