"""
Reasoning engine plugins.
"""
from typing import Optional

from loguru import logger

from config.settings import Settings, get_settings
from providers.base import BaseLLMProvider
from utils.error_handler import ConfigurationError


def get_llm_provider(settings: Optional[Settings] = None) -> BaseLLMProvider:
    """Build the configured reasoning engine."""
    from providers.llm.openai_provider import OpenAIProvider

    settings = settings or get_settings()
    provider = OpenAIProvider(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        timeout_seconds=settings.call_timeout_seconds,
    )
    if not provider.is_available():
        raise ConfigurationError("OPENAI_API_KEY is not configured")

    logger.info(f"Reasoning engine '{provider.name}' registered (model={provider.model})")
    return provider
