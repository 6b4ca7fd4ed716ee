"""
Configuration Tests
===================
"""

import pytest
from pydantic import ValidationError

from glm_realtime.config import (
    DEFAULT_INSTRUCTIONS,
    Settings,
    VideoConfig,
    load_config,
)


ENV_VARS = (
    "ZHIPU_REALTIME_URL",
    "ZHIPU_API_KEY",
    "GLM_REALTIME_FLUSH_THRESHOLD",
    "GLM_REALTIME_COMPLETION_URL",
    "GLM_REALTIME_MODEL",
    "GLM_REALTIME_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestSettings:
    """Tests for defaults and validation."""

    def test_defaults(self):
        settings = Settings()

        assert settings.connection.api_key is None
        assert settings.connection.read_timeout_seconds == 15.0
        assert settings.connection.wait_timeout_seconds == 30.0
        assert settings.connection.max_session_seconds is None
        assert settings.video.flush_threshold == 10
        assert settings.video.default_instructions == DEFAULT_INSTRUCTIONS
        assert settings.completion.model == "glm-4.5v"
        assert settings.completion.timeout_seconds == 60.0

    def test_threshold_must_be_positive(self):
        with pytest.raises(ValidationError):
            VideoConfig(flush_threshold=0)


class TestLoadConfig:
    """Tests for YAML and environment loading."""

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "connection:\n"
            "  url: wss://example.test/realtime\n"
            "  read_timeout_seconds: 5\n"
            "video:\n"
            "  flush_threshold: 4\n"
        )

        settings = load_config(str(path))

        assert settings.connection.url == "wss://example.test/realtime"
        assert settings.connection.read_timeout_seconds == 5.0
        assert settings.video.flush_threshold == 4

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("video:\n  flush_threshold: 4\n")
        monkeypatch.setenv("ZHIPU_REALTIME_URL", "wss://env.test/realtime")
        monkeypatch.setenv("ZHIPU_API_KEY", "env-key")
        monkeypatch.setenv("GLM_REALTIME_FLUSH_THRESHOLD", "12")
        monkeypatch.setenv("GLM_REALTIME_MODEL", "glm-4v-plus")
        monkeypatch.setenv("GLM_REALTIME_LOG_LEVEL", "DEBUG")

        settings = load_config(str(path))

        assert settings.connection.url == "wss://env.test/realtime"
        assert settings.connection.api_key == "env-key"
        assert settings.video.flush_threshold == 12
        assert settings.completion.model == "glm-4v-plus"
        assert settings.logging.level == "DEBUG"

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_config(str(tmp_path / "missing.yaml"))
        assert settings == Settings()
