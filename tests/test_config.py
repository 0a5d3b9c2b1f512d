"""Functional tests for configuration precedence and validation.

Tests exercise real load_config() — no mocks.
"""

import json
import pytest
from pydantic import ValidationError

from gbx_cli.config import find_project_config, load_config, Settings


def test_project_config_overrides_user(tmp_path, monkeypatch):
    """Project .gbx-cli/settings.json overrides user settings for the same key."""
    user_settings = tmp_path / "user" / "settings.json"
    user_settings.parent.mkdir(parents=True)
    user_settings.write_text(json.dumps({"theme": "light", "kill_grace": 5}))

    project_dir = tmp_path / "project" / ".gbx-cli"
    project_dir.mkdir(parents=True)
    (project_dir / "settings.json").write_text(json.dumps({"theme": "dark"}))

    monkeypatch.setattr("gbx_cli.config.SETTINGS_FILE", user_settings)
    monkeypatch.chdir(tmp_path / "project")

    settings = load_config()
    assert settings.theme == "dark"
    assert settings.kill_grace == 5.0


def test_env_overrides_project_config(tmp_path, monkeypatch):
    """Environment variables override project config."""
    project_dir = tmp_path / ".gbx-cli"
    project_dir.mkdir()
    (project_dir / "settings.json").write_text(json.dumps({"theme": "dark", "timeout": 10}))

    monkeypatch.setattr("gbx_cli.config.SETTINGS_FILE", tmp_path / "nonexistent.json")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GBX_CLI_THEME", "light")
    monkeypatch.setenv("GBX_CLI_TIMEOUT", "2.5")

    settings = load_config()
    assert settings.theme == "light"
    assert settings.timeout == 2.5


def test_missing_project_config_uses_defaults(tmp_path, monkeypatch):
    """No project config — load_config() uses user config + defaults."""
    user_settings = tmp_path / "user" / "settings.json"
    user_settings.parent.mkdir(parents=True)
    user_settings.write_text(json.dumps({"theme": "dark"}))

    monkeypatch.setattr("gbx_cli.config.SETTINGS_FILE", user_settings)
    monkeypatch.chdir(tmp_path)

    settings = load_config()
    assert find_project_config() is None
    assert settings.theme == "dark"
    assert settings.timeout is None
    assert settings.kill_grace == 1.0
    assert settings.journal_enabled is True
    assert settings.history_last == 20


def test_malformed_project_config_skipped(tmp_path, monkeypatch, capsys):
    """Malformed project settings.json is skipped gracefully."""
    project_dir = tmp_path / ".gbx-cli"
    project_dir.mkdir()
    (project_dir / "settings.json").write_text("not json{{{")

    monkeypatch.setattr("gbx_cli.config.SETTINGS_FILE", tmp_path / "nonexistent.json")
    monkeypatch.chdir(tmp_path)

    settings = load_config()
    assert settings.theme == "light"
    assert "Error loading project config" in capsys.readouterr().out


def test_malformed_user_config_uses_defaults(tmp_path, monkeypatch, capsys):
    user_settings = tmp_path / "settings.json"
    user_settings.write_text("{")

    monkeypatch.setattr("gbx_cli.config.SETTINGS_FILE", user_settings)
    monkeypatch.chdir(tmp_path)

    assert load_config().theme == "light"
    assert "Error loading settings.json" in capsys.readouterr().out


@pytest.mark.parametrize("value", ["none", "None", "0", 0])
def test_timeout_disabled_spellings(value):
    assert Settings(timeout=value).timeout is None


def test_env_disables_journal(tmp_path, monkeypatch):
    monkeypatch.setattr("gbx_cli.config.SETTINGS_FILE", tmp_path / "nonexistent.json")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GBX_CLI_JOURNAL", "false")

    assert load_config().journal_enabled is False


def test_bounds_validation():
    with pytest.raises(ValidationError, match="timeout"):
        Settings(timeout=-1)
    with pytest.raises(ValidationError, match="kill_grace"):
        Settings(kill_grace=0)
    with pytest.raises(ValidationError, match="history_last"):
        Settings(history_last=0)
    with pytest.raises(ValidationError, match="theme"):
        Settings(theme="neon")
