"""xAI Grok provider using openai SDK (OpenAI-compatible API)."""

from openai import AsyncOpenAI

from review_council.providers.base import ProviderError
from review_council.providers.openai_provider import OpenAIProvider


class XAIProvider(OpenAIProvider):
    """xAI Grok provider via OpenAI-compatible API."""

    token_limit_param = "max_tokens"
    label = "xAI"

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        if not self._config.base_url:
            raise ProviderError(self._config.name, "base_url is required for xAI provider")
        return AsyncOpenAI(api_key=api_key, base_url=self._config.base_url)
