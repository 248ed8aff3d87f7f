"""Tests for YAML settings loading."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from bruinmarket.config import AppSettings, HubSettings, get_config, load_config, set_config


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_missing_files_use_defaults(self, tmp_path):
        config = load_config(tmp_path / "bruinmarket.settings.yaml")

        assert config.server.port == 8080
        assert config.hub.outbound_queue_size == 256
        assert config.hub.evict_superseded is True
        assert config.hub.notify_sender_on_persist_failure is False
        assert config.auth.token_expire_minutes == 7 * 24 * 60
        assert config.secrets.jwt.algorithm == "HS256"

    def test_settings_and_secrets_are_merged(self, tmp_path):
        settings = _write(tmp_path / "bruinmarket.settings.yaml", """
server:
  port: 9000
hub:
  outbound_queue_size: 16
  evict_superseded: false
  drain_timeout_seconds: 1.5
""")
        _write(tmp_path / "bruinmarket.secrets.yaml", """
jwt:
  secret_key: s3cret
""")

        config = load_config(settings)

        assert config.server.port == 9000
        assert config.hub.outbound_queue_size == 16
        assert config.hub.evict_superseded is False
        assert config.hub.drain_timeout_seconds == 1.5
        assert config.secrets.jwt.secret_key == "s3cret"

    def test_explicit_secrets_path(self, tmp_path):
        settings = _write(tmp_path / "settings.yaml", "{}")
        secrets = _write(tmp_path / "elsewhere.yaml", "jwt:\n  secret_key: other\n")

        assert load_config(settings, secrets).secrets.jwt.secret_key == "other"

    def test_relative_database_path_resolves_next_to_settings(self, tmp_path):
        settings = _write(tmp_path / "bruinmarket.settings.yaml", "database:\n  path: data/chat.duckdb\n")

        config = load_config(settings)
        assert Path(config.database.path) == tmp_path.resolve() / "data" / "chat.duckdb"

    def test_in_memory_database_is_kept(self, tmp_path):
        settings = _write(tmp_path / "bruinmarket.settings.yaml", "database:\n  path: ':memory:'\n")
        assert load_config(settings).database.path == ":memory:"

    def test_invalid_queue_size(self, tmp_path):
        settings = _write(tmp_path / "bruinmarket.settings.yaml", "hub:\n  outbound_queue_size: 0\n")
        with pytest.raises(ValidationError):
            load_config(settings)


class TestHubSettings:
    def test_queue_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            HubSettings(outbound_queue_size=-1)


class TestGlobalConfig:
    def test_set_and_get(self):
        config = AppSettings()
        set_config(config)
        assert get_config() is config
