"""
LLM factory: build the provider client selected in configuration.
"""

from ..config import LLMConfig, Settings
from .anthropic import AnthropicLLM
from .base import BaseLLM
from .openai import OpenAILLM

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

# provider -> (client class, default base URL)
PROVIDERS: dict[str, tuple[type[BaseLLM], str | None]] = {
    "anthropic": (AnthropicLLM, None),
    "openai": (OpenAILLM, None),
    # OpenRouter speaks the OpenAI protocol
    "openrouter": (OpenAILLM, OPENROUTER_BASE_URL),
}


def create_llm(config: LLMConfig | None = None, settings: Settings | None = None) -> BaseLLM:
    """Create the client for ``config``, or for the default provider in settings."""
    if config is None:
        if settings is None:
            from ..config import get_settings
            settings = get_settings()
        config = settings.get_llm_config()

    try:
        llm_class, default_base_url = PROVIDERS[config.provider]
    except KeyError:
        raise ValueError(f"Unknown LLM provider: {config.provider}") from None

    return llm_class(
        api_key=config.api_key,
        model=config.model,
        base_url=config.base_url or default_base_url,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
    )
