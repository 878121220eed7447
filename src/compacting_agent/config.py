"""
Configuration management for Compacting-Agent

Uses pydantic-settings for environment variable parsing and validation.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

Provider = Literal["anthropic", "openai", "openrouter"]


class LLMConfig(BaseSettings):
    """Configuration for a single LLM provider."""

    model_config = SettingsConfigDict(extra="ignore")

    provider: Provider = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    api_key: str = ""
    base_url: str | None = None
    max_tokens: int = 8096
    temperature: float = 0.7


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "Compacting-Agent"
    debug: bool = False
    log_level: str = "WARNING"

    # LLM Providers (API Keys)
    anthropic_api_key: str = Field(default="", description="Anthropic API key for Claude")
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")

    # Default model settings
    default_provider: Provider = "anthropic"
    default_model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 8096
    temperature: float = 0.7

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./sessions.db",
        description="Database connection URL"
    )

    # Context budget
    context_window_tokens: int = Field(default=200_000, description="Documented model context capacity")
    compaction_threshold: float = Field(default=0.75, description="Fraction of the window that triggers compaction")
    keep_recent_messages: int = Field(default=6, description="Turns kept verbatim by ordinary compaction")
    emergency_keep_recent_messages: int = Field(default=4, description="Turns kept verbatim after an overflow")
    summary_max_tokens: int = Field(default=4096, description="Output cap for the summarization request")
    tokens_per_char: float = Field(default=0.25, description="Token estimate per character")
    max_attempts: int = Field(default=2, description="Request attempts per user turn")
    max_tool_iterations: int = Field(default=25, description="Model round-trips per attempt")

    # Sandbox
    sandbox_image: str = Field(default="node:20-alpine", description="Docker image for the command sandbox")
    sandbox_name_prefix: str = Field(default="coding-agent", description="Container name prefix")
    sandbox_workdir: str = Field(default="/workspace", description="Working directory inside the container")
    command_timeout_seconds: int = Field(default=120, description="Timeout for a sandboxed command")

    # Tools
    workspace_dir: str = Field(default=".", description="Root directory for the file tools")

    # Interactive session
    exit_command: str = Field(default="exit", description="Input that ends the interactive session")

    @field_validator("compaction_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("compaction_threshold must be in (0, 1]")
        return v

    @field_validator("max_attempts", "max_tool_iterations")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @property
    def proactive_threshold_tokens(self) -> int:
        """Token count above which the conversation is compacted."""
        return int(self.context_window_tokens * self.compaction_threshold)

    def has_llm_key(self, provider: str | None = None) -> bool:
        """Check whether the selected provider has an API key."""
        return bool(self.get_llm_config(provider).api_key)

    def get_llm_config(self, provider: str | None = None) -> LLMConfig:
        """Get LLM configuration for a provider."""
        provider = provider or self.default_provider

        api_key_map = {
            "anthropic": self.anthropic_api_key,
            "openai": self.openai_api_key,
            "openrouter": self.openrouter_api_key,
        }

        model_map = {
            "anthropic": "claude-sonnet-4-20250514",
            "openai": "gpt-4o",
            "openrouter": "anthropic/claude-sonnet-4",
        }

        base_url_map = {
            "anthropic": None,
            "openai": None,
            "openrouter": "https://openrouter.ai/api/v1",
        }

        # The configured default model only applies to the default provider
        if provider == self.default_provider:
            model = self.default_model
        else:
            model = model_map.get(provider, self.default_model)

        return LLMConfig(
            provider=provider,  # type: ignore
            model=model,
            api_key=api_key_map.get(provider, ""),
            base_url=base_url_map.get(provider),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
