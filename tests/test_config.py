"""
Tests for configuration module.
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from compacting_agent.config import Settings


def test_settings_default_values():
    """Test that settings have sensible defaults."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings(_env_file=None)

        assert settings.app_name == "Compacting-Agent"
        assert settings.default_provider == "anthropic"
        assert settings.context_window_tokens == 200_000
        assert settings.compaction_threshold == 0.75
        assert settings.keep_recent_messages == 6
        assert settings.emergency_keep_recent_messages == 4
        assert settings.max_attempts == 2
        assert settings.sandbox_image == "node:20-alpine"
        assert settings.exit_command == "exit"


def test_proactive_threshold_tokens():
    """The default threshold is 75% of a 200k window."""
    with patch.dict(os.environ, {}, clear=True):
        assert Settings(_env_file=None).proactive_threshold_tokens == 150_000

    env = {"CONTEXT_WINDOW_TOKENS": "100000", "COMPACTION_THRESHOLD": "0.5"}
    with patch.dict(os.environ, env, clear=True):
        assert Settings(_env_file=None).proactive_threshold_tokens == 50_000


def test_settings_from_env():
    """Test loading settings from environment variables."""
    env = {
        "ANTHROPIC_API_KEY": "test_anthropic_key",
        "DEFAULT_MODEL": "claude-opus-4",
        "KEEP_RECENT_MESSAGES": "10",
        "SANDBOX_IMAGE": "python:3.12-slim",
    }

    with patch.dict(os.environ, env, clear=True):
        settings = Settings(_env_file=None)

        assert settings.anthropic_api_key == "test_anthropic_key"
        assert settings.default_model == "claude-opus-4"
        assert settings.keep_recent_messages == 10
        assert settings.sandbox_image == "python:3.12-slim"


@pytest.mark.parametrize("threshold", ["0", "1.5", "-0.1"])
def test_invalid_threshold_rejected(threshold):
    """The compaction ratio must be a fraction of the window."""
    with patch.dict(os.environ, {"COMPACTION_THRESHOLD": threshold}, clear=True):
        with pytest.raises(ValidationError):
            Settings(_env_file=None)


def test_invalid_max_attempts_rejected():
    with patch.dict(os.environ, {"MAX_ATTEMPTS": "0"}, clear=True):
        with pytest.raises(ValidationError):
            Settings(_env_file=None)


def test_get_llm_config():
    """Test getting LLM configuration."""
    env = {
        "ANTHROPIC_API_KEY": "test_key",
        "DEFAULT_PROVIDER": "anthropic",
    }

    with patch.dict(os.environ, env, clear=True):
        settings = Settings(_env_file=None)
        config = settings.get_llm_config()

        assert config.provider == "anthropic"
        assert config.api_key == "test_key"
        assert "claude" in config.model.lower()
        assert settings.has_llm_key()


def test_get_llm_config_openai():
    """Test getting OpenAI LLM configuration."""
    env = {
        "OPENAI_API_KEY": "test_openai_key",
    }

    with patch.dict(os.environ, env, clear=True):
        settings = Settings(_env_file=None)
        config = settings.get_llm_config("openai")

        assert config.provider == "openai"
        assert config.api_key == "test_openai_key"
        assert "gpt" in config.model.lower()
        assert not settings.has_llm_key()
        assert settings.has_llm_key("openai")


def test_get_llm_config_openrouter_base_url():
    """OpenRouter goes through its OpenAI-compatible endpoint."""
    with patch.dict(os.environ, {"OPENROUTER_API_KEY": "k"}, clear=True):
        config = Settings(_env_file=None).get_llm_config("openrouter")

        assert config.base_url == "https://openrouter.ai/api/v1"
