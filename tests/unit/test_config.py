"""
Unit tests for configuration and settings.
"""

import os
from unittest.mock import patch

import pytest


class TestSettings:
    """Test Settings configuration."""

    def test_default_settings(self):
        from claude_conduit.config import Settings

        settings = Settings()

        assert settings.cli.executable == "claude"
        assert settings.cli.default_model is None
        assert settings.transport.max_line_bytes == 10 * 1024 * 1024
        assert settings.interceptors.timeout_ms == 30000
        assert settings.interceptors.max_context_size == 1024 * 1024
        assert settings.logging.level == "INFO"
        assert settings.logging.stderr_enabled is False

    def test_nested_env_override(self):
        from claude_conduit.config import Settings

        with patch.dict(
            os.environ,
            {"CONDUIT_CLI__EXECUTABLE": "claude-beta", "CONDUIT_INTERCEPTORS__TIMEOUT_MS": "500"},
        ):
            settings = Settings()

        assert settings.cli.executable == "claude-beta"
        assert settings.interceptors.timeout_ms == 500

    def test_legacy_env_vars(self):
        """
        Given: Flat legacy environment variables
        When: Settings load
        Then: They land in the nested sections
        """
        from claude_conduit.config import Settings

        with patch.dict(
            os.environ,
            {"CLAUDE_CLI_PATH": "/opt/claude", "CLAUDE_MODEL": "opus", "CONDUIT_LOG_LEVEL": "debug"},
        ):
            settings = Settings()

        assert settings.cli.executable == "/opt/claude"
        assert settings.cli.default_model == "opus"
        assert settings.logging.level == "DEBUG"

    def test_nested_env_wins_over_legacy(self):
        from claude_conduit.config import Settings

        with patch.dict(
            os.environ,
            {"CLAUDE_MODEL": "opus", "CONDUIT_CLI__DEFAULT_MODEL": "sonnet"},
        ):
            settings = Settings()

        assert settings.cli.default_model == "sonnet"

    def test_yaml_file(self, tmp_path):
        """
        Given: A YAML config file named by CONDUIT_CONFIG_FILE
        When: Settings load
        Then: Its values apply and env still overrides them
        """
        from claude_conduit.config import Settings

        config_file = tmp_path / "conduit.yaml"
        config_file.write_text(
            "cli:\n"
            "  default_model: haiku\n"
            "  terminate_grace_seconds: 2\n"
            "interceptors:\n"
            "  debug: true\n"
            "logging:\n"
        )

        with patch.dict(
            os.environ,
            {"CONDUIT_CONFIG_FILE": str(config_file), "CONDUIT_CLI__TERMINATE_GRACE_SECONDS": "3"},
        ):
            settings = Settings()

        assert settings.cli.default_model == "haiku"
        assert settings.cli.terminate_grace_seconds == 3.0
        assert settings.interceptors.debug is True
        assert settings.logging.level == "INFO"

    def test_missing_yaml_file_is_ignored(self, tmp_path):
        from claude_conduit.config import Settings

        with patch.dict(os.environ, {"CONDUIT_CONFIG_FILE": str(tmp_path / "nope.yaml")}):
            settings = Settings()

        assert settings.cli.executable == "claude"

    def test_invalid_log_level(self):
        from pydantic import ValidationError

        from claude_conduit.config import Settings

        with patch.dict(os.environ, {"CONDUIT_LOG_LEVEL": "LOUD"}):
            with pytest.raises(ValidationError):
                Settings()

    def test_get_settings_is_cached(self):
        from claude_conduit.config import get_settings

        assert get_settings() is get_settings()

    def test_interceptor_config_from_settings(self):
        from claude_conduit.config import InterceptorsConfig, Settings
        from claude_conduit.interceptors import InterceptorConfig

        settings = Settings(interceptors=InterceptorsConfig(timeout_ms=1234, debug=True))

        async def noop(request, context, next):
            return await next(request, context)

        config = InterceptorConfig.from_settings(settings, [noop])

        assert config.timeout == 1234
        assert config.debug is True
        assert config.interceptors == [noop]
