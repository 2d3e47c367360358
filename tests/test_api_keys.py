"""Tests for API key resolution."""

import json

from securecode import api_keys
from securecode.config import API_KEY_ENV_VAR


class TestResolveApiKey:
    def test_environment_wins(self, monkeypatch, tmp_path):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        monkeypatch.setenv(API_KEY_ENV_VAR, "  env-key ")

        assert api_keys.resolve_api_key() == "env-key"

    def test_falls_back_to_config_file(self, monkeypatch, tmp_path):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        monkeypatch.delenv(API_KEY_ENV_VAR, raising=False)
        monkeypatch.setattr(api_keys.os, "name", "posix")
        cfg_dir = tmp_path / "securecode"
        cfg_dir.mkdir()
        (cfg_dir / "config.json").write_text(json.dumps({API_KEY_ENV_VAR: "file-key"}))

        assert api_keys.resolve_api_key() == "file-key"

    def test_bad_config_file_is_ignored(self, monkeypatch, tmp_path):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        monkeypatch.delenv(API_KEY_ENV_VAR, raising=False)
        monkeypatch.setattr(api_keys.os, "name", "posix")
        cfg_dir = tmp_path / "securecode"
        cfg_dir.mkdir()
        (cfg_dir / "config.json").write_text("{not json")

        assert api_keys.resolve_api_key() == ""

    def test_no_key_anywhere(self, monkeypatch, tmp_path):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        monkeypatch.delenv(API_KEY_ENV_VAR, raising=False)
        monkeypatch.setattr(api_keys.os, "name", "posix")

        assert api_keys.resolve_api_key() == ""
