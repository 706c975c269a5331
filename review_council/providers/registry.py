"""Provider construction keyed by SDK name."""

import logging
from collections.abc import Callable

from config.config_loader import AppConfig
from review_council.models import Voice
from review_council.providers.anthropic import AnthropicProvider
from review_council.providers.base import AIProvider, ProviderError
from review_council.providers.gemini import GeminiProvider
from review_council.providers.openai_provider import OpenAIProvider
from review_council.providers.xai import XAIProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
    "xai": XAIProvider,
}

ProviderFactory = Callable[[Voice], AIProvider]


def build_provider(voice: Voice, config: AppConfig) -> AIProvider:
    """Build a fresh provider instance for one voice.

    Raises:
        ProviderError: Unknown provider name, unknown SDK, or missing API key.
    """
    model_cfg = config.models.get(voice.provider)
    if model_cfg is None:
        raise ProviderError(
            voice.provider,
            f"Unknown provider. Configured providers: {', '.join(sorted(config.models))}",
        )
    provider_cls = PROVIDER_CLASSES.get(model_cfg.sdk)
    if provider_cls is None:
        raise ProviderError(voice.provider, f"Unsupported sdk '{model_cfg.sdk}'")
    logger.debug("Building %s provider for %s/%s", model_cfg.sdk, voice.provider, voice.model)
    return provider_cls(model_cfg)


def provider_factory(config: AppConfig) -> ProviderFactory:
    """Bind ``build_provider`` to an AppConfig for injection into the council."""
    def _factory(voice: Voice) -> AIProvider:
        return build_provider(voice, config)

    return _factory
