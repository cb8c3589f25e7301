"""Centralized AI model factory for the raced LLM providers.

Each provider id maps to one pydantic-ai model class and its API key from
settings. A provider without a key is not configured; asking for its model
raises `ProviderNotConfigured` so the race reports it as a failed entrant.

Usage:
    from services.ai.model_factory import get_provider_model, configured_providers

    model = get_provider_model("gemini")  # Returns pydantic-ai Model
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, cast

from pydantic_ai.models import Model
from pydantic_ai.models.anthropic import AnthropicModel
from pydantic_ai.models.google import GoogleModel
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.anthropic import AnthropicProvider
from pydantic_ai.providers.google import GoogleProvider
from pydantic_ai.providers.openai import OpenAIProvider

from core.config import get_settings
from core.exceptions import UnknownProviderError
from schemas.generation import ALL_PROVIDERS, ProviderId
from services.ai.exceptions import ProviderNotConfigured


if TYPE_CHECKING:
    from httpx import AsyncClient

logger = logging.getLogger(__name__)


def model_name_for(provider: ProviderId) -> str:
    """Return the configured model name for a provider id."""
    settings = get_settings()
    if provider == "openai":
        return settings.OPENAI_MODEL
    if provider == "claude":
        return settings.ANTHROPIC_MODEL
    if provider == "gemini":
        return settings.GEMINI_MODEL
    raise UnknownProviderError(f"Unknown provider: {provider}")


def is_configured(provider: ProviderId) -> bool:
    return get_settings().provider_api_key(provider) is not None


def configured_providers() -> list[ProviderId]:
    """Provider ids that have an API key set, in roster order."""
    return [p for p in ALL_PROVIDERS if is_configured(p)]


def _create_openai_model(
    model_name: str, api_key: str, http_client: AsyncClient | None = None
) -> Model:
    provider = OpenAIProvider(api_key=api_key, http_client=http_client)
    return OpenAIChatModel(model_name, provider=provider)


def _create_anthropic_model(
    model_name: str, api_key: str, http_client: AsyncClient | None = None
) -> Model:
    provider = AnthropicProvider(api_key=api_key, http_client=http_client)
    return AnthropicModel(model_name, provider=provider)


def _create_gemini_model(
    model_name: str, api_key: str, http_client: AsyncClient | None = None
) -> Model:
    provider = GoogleProvider(api_key=api_key, http_client=http_client)
    return cast(Model, GoogleModel(model_name, provider=provider))


def get_provider_model(
    provider: ProviderId, http_client: AsyncClient | None = None
) -> Model:
    """Get the pydantic-ai model for one raced provider.

    Args:
        provider: Provider id from the request roster.
        http_client: Optional HTTP client for custom retry logic.

    Raises:
        UnknownProviderError: The id is not a known provider.
        ProviderNotConfigured: No API key is set for the provider.
    """
    model_name = model_name_for(provider)
    api_key = get_settings().provider_api_key(provider)
    if api_key is None:
        logger.warning("Provider %s requested but no API key configured", provider)
        raise ProviderNotConfigured()

    logger.info("Using %s model: %s", provider, model_name)
    if provider == "openai":
        return _create_openai_model(model_name, api_key, http_client)
    if provider == "claude":
        return _create_anthropic_model(model_name, api_key, http_client)
    return _create_gemini_model(model_name, api_key, http_client)
