"""
Model Factory - Creates agno model instances for the decision oracle

This factory:
1. Resolves provider credentials from environment variables
2. Validates that the requested provider is configured
3. Creates the provider's agno model with merged generation parameters
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from loguru import logger


@dataclass
class ProviderConfig:
    """Credentials and defaults for one model provider"""

    name: str
    api_key: Optional[str]
    default_model: str
    base_url: Optional[str] = None
    parameters: Dict[str, Any] = field(default_factory=dict)


# provider name -> (api key env var, default model, base url)
PROVIDER_DEFAULTS: Dict[str, tuple] = {
    "google": ("GOOGLE_API_KEY", "gemini-2.5-flash", None),
    "openrouter": (
        "OPENROUTER_API_KEY",
        "google/gemini-2.5-flash",
        "https://openrouter.ai/api/v1",
    ),
    "anthropic": ("ANTHROPIC_API_KEY", "claude-sonnet-4-5", None),
    "openai": ("OPENAI_API_KEY", "gpt-4o-mini", None),
}


def load_provider_config(provider: str) -> ProviderConfig:
    """Build a ProviderConfig from environment variables."""
    if provider not in PROVIDER_DEFAULTS:
        raise ValueError(f"Unsupported provider: {provider}")
    key_env, default_model, base_url = PROVIDER_DEFAULTS[provider]
    return ProviderConfig(
        name=provider,
        api_key=os.getenv(key_env),
        default_model=default_model,
        base_url=os.getenv(f"{provider.upper()}_BASE_URL", base_url),
    )


class ModelProvider(ABC):
    """Abstract base class for model providers"""

    def __init__(self, config: ProviderConfig):
        self.config = config

    @abstractmethod
    def create_model(self, model_id: Optional[str] = None, **kwargs):
        """
        Create a model instance

        Args:
            model_id: Model identifier (uses default if None)
            **kwargs: Additional model parameters

        Returns:
            Model instance
        """
        raise NotImplementedError

    def is_available(self) -> bool:
        return bool(self.config.api_key)


class GoogleProvider(ModelProvider):
    """Google Gemini model provider"""

    def create_model(self, model_id: Optional[str] = None, **kwargs):
        from agno.models.google import Gemini

        model_id = model_id or self.config.default_model
        params = {**self.config.parameters, **kwargs}

        logger.info("Creating Google Gemini model: {}", model_id)

        return Gemini(
            id=model_id,
            api_key=self.config.api_key,
            temperature=params.get("temperature"),
            max_output_tokens=params.get("max_tokens"),
        )


class OpenRouterProvider(ModelProvider):
    """OpenRouter model provider"""

    def create_model(self, model_id: Optional[str] = None, **kwargs):
        from agno.models.openrouter import OpenRouter

        model_id = model_id or self.config.default_model
        params = {**self.config.parameters, **kwargs}

        logger.info("Creating OpenRouter model: {}", model_id)

        return OpenRouter(
            id=model_id,
            api_key=self.config.api_key,
            base_url=self.config.base_url,
            temperature=params.get("temperature"),
            max_tokens=params.get("max_tokens"),
        )


class AnthropicProvider(ModelProvider):
    """Anthropic Claude model provider"""

    def create_model(self, model_id: Optional[str] = None, **kwargs):
        from agno.models.anthropic import Claude

        model_id = model_id or self.config.default_model
        params = {**self.config.parameters, **kwargs}

        logger.info("Creating Anthropic Claude model: {}", model_id)

        kwargs = {"id": model_id, "api_key": self.config.api_key}
        if params.get("temperature") is not None:
            kwargs["temperature"] = params["temperature"]
        if params.get("max_tokens") is not None:
            kwargs["max_tokens"] = params["max_tokens"]
        return Claude(**kwargs)


class OpenAIProvider(ModelProvider):
    """OpenAI chat model provider"""

    def create_model(self, model_id: Optional[str] = None, **kwargs):
        from agno.models.openai import OpenAIChat

        model_id = model_id or self.config.default_model
        params = {**self.config.parameters, **kwargs}

        logger.info("Creating OpenAI model: {}", model_id)

        return OpenAIChat(
            id=model_id,
            api_key=self.config.api_key,
            base_url=self.config.base_url,
            temperature=params.get("temperature"),
            max_tokens=params.get("max_tokens"),
        )


class ModelFactory:
    """Factory for creating model instances with provider abstraction"""

    # Registry of provider classes
    _providers: Dict[str, type[ModelProvider]] = {
        "google": GoogleProvider,
        "openrouter": OpenRouterProvider,
        "anthropic": AnthropicProvider,
        "openai": OpenAIProvider,
    }

    def create_model(
        self,
        model_id: Optional[str] = None,
        provider: str = "google",
        api_key: Optional[str] = None,
        **kwargs,
    ):
        """
        Create a model instance for `provider`

        Args:
            model_id: Specific model ID (optional, uses provider default)
            provider: Provider name
            api_key: Explicit API key (overrides the environment)
            **kwargs: Generation parameters (temperature, max_tokens)

        Raises:
            ValueError: If the provider is unknown or has no credentials
        """
        if provider not in self._providers:
            raise ValueError(f"Unsupported provider: {provider}")

        config = load_provider_config(provider)
        if api_key:
            config.api_key = api_key

        provider_instance = self._providers[provider](config)
        if not provider_instance.is_available():
            key_env = PROVIDER_DEFAULTS[provider][0]
            raise ValueError(
                f"Provider validation failed: {key_env} is not set for provider {provider}"
            )
        return provider_instance.create_model(model_id, **kwargs)


_factory: Optional[ModelFactory] = None


def get_model_factory() -> ModelFactory:
    """Get singleton model factory instance"""
    global _factory
    if _factory is None:
        _factory = ModelFactory()
    return _factory


def create_model_with_provider(provider: str, model_id: Optional[str] = None, **kwargs):
    """
    Create a model from a specific provider.

    Examples:
        >>> model = create_model_with_provider("google", "gemini-2.5-flash")
        >>> model = create_model_with_provider(
        ...     "openrouter", "anthropic/claude-3.5-sonnet", temperature=0.2
        ... )
    """
    return get_model_factory().create_model(model_id=model_id, provider=provider, **kwargs)
