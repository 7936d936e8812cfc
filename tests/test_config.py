"""Tests for configuration and token resolution."""

from __future__ import annotations

import json
import subprocess

import pytest

from fmail import auth, config
from fmail.errors import AuthenticationError, ConfigError
from fmail.jmap import DEFAULT_SESSION_URL


class TestResolveSettings:
    """Tests for flag > environment > file > default precedence."""

    def test_defaults(self):
        settings = config.resolve_settings()
        assert settings["session_url"] == DEFAULT_SESSION_URL
        assert settings["format"] == "json"
        assert settings["timeout"] == 30.0

    def test_precedence(self, monkeypatch):
        """Test each layer overriding the one below it."""
        config.CONFIG_FILE.write_text(json.dumps({"timeout": 5, "format": "text", "account_id": "file"}))
        monkeypatch.setenv("FMAIL_TIMEOUT", "7")
        monkeypatch.setenv("FMAIL_ACCOUNT_ID", "env")

        settings = config.resolve_settings({"account_id": "flag", "timeout": None})

        assert settings["format"] == "text"
        assert settings["timeout"] == 7.0
        assert settings["account_id"] == "flag"

    def test_invalid_timeout(self, monkeypatch):
        monkeypatch.setenv("FMAIL_TIMEOUT", "soon")
        with pytest.raises(ConfigError, match="timeout"):
            config.resolve_settings()

    def test_non_positive_timeout(self):
        with pytest.raises(ConfigError):
            config.resolve_settings({"timeout": 0})

    def test_invalid_format(self):
        with pytest.raises(ConfigError, match="format"):
            config.resolve_settings({"format": "yaml"})


class TestLoadConfig:
    """Tests for reading the config file."""

    def test_unreadable_default_ignored(self):
        """Test that a broken default file falls back to defaults."""
        config.CONFIG_FILE.write_text("{not json")
        assert config.get_config() == config.DEFAULT_CONFIG

    def test_explicit_missing_file(self, tmp_path):
        """Test that a named file that doesn't exist yet is empty config."""
        assert config.get_config(tmp_path / "missing.json") == config.DEFAULT_CONFIG

    def test_explicit_bad_file(self, tmp_path):
        """Test that a file named on the command line must be valid."""
        path = tmp_path / "bad.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigError, match="JSON object"):
            config.get_config(path)


class TestSetConfigValue:
    """Tests for persisting settings."""

    def test_set_and_read_back(self):
        config.set_config_value("timeout", "12.5")
        config.set_config_value("session_url", "https://jmap.example.com/session")

        saved = json.loads(config.CONFIG_FILE.read_text())
        assert saved == {"timeout": 12.5, "session_url": "https://jmap.example.com/session"}
        assert config.resolve_settings()["timeout"] == 12.5

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        config.set_config_value("format", "TEXT", path=path)
        assert json.loads(path.read_text()) == {"format": "text"}

    def test_unknown_key(self):
        with pytest.raises(ConfigError) as exc_info:
            config.set_config_value("colour", "red")
        assert "session_url" in exc_info.value.hint

    def test_invalid_value_not_saved(self):
        with pytest.raises(ConfigError):
            config.set_config_value("timeout", "-1")
        assert not config.CONFIG_FILE.exists()


class TestGetToken:
    """Tests for API token resolution."""

    def test_environment_wins(self, monkeypatch):
        """Test that the env var is used without running a command."""

        def fail(*args, **kwargs):
            raise AssertionError("credential command should not run")

        monkeypatch.setenv("FMAIL_TOKEN", " fmu1-token \n")
        monkeypatch.setattr(subprocess, "run", fail)
        assert auth.get_token("echo other") == "fmu1-token"

    def test_command(self, monkeypatch):
        """Test that stdout of the credential command is the token."""
        seen = []

        def run(args, **kwargs):
            seen.append(args)
            return subprocess.CompletedProcess(args, 0, stdout="fmu1-secret\n", stderr="")

        monkeypatch.setattr(subprocess, "run", run)
        assert auth.get_token("pass show fastmail") == "fmu1-secret"
        assert seen == [["sh", "-c", "pass show fastmail"]]

    def test_default_command(self, monkeypatch):
        seen = []

        def run(args, **kwargs):
            seen.append(args[-1])
            return subprocess.CompletedProcess(args, 0, stdout="t", stderr="")

        monkeypatch.setattr(subprocess, "run", run)
        auth.get_token()
        assert seen == [auth.default_credential_command()]

    def test_command_fails(self, monkeypatch):
        """Test that a failing command is an authentication error with a hint."""
        monkeypatch.setattr(
            subprocess,
            "run",
            lambda args, **kwargs: subprocess.CompletedProcess(args, 44, stdout="", stderr="item not found"),
        )
        with pytest.raises(AuthenticationError, match="item not found") as exc_info:
            auth.get_token("lookup")
        assert "FMAIL_TOKEN" in exc_info.value.hint

    def test_empty_output(self, monkeypatch):
        monkeypatch.setattr(
            subprocess,
            "run",
            lambda args, **kwargs: subprocess.CompletedProcess(args, 0, stdout="  \n", stderr=""),
        )
        with pytest.raises(AuthenticationError, match="no token"):
            auth.get_token("lookup")
