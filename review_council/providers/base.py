"""Abstract base for all AI model providers."""

from abc import ABC, abstractmethod

from review_council.models import ProviderResponse


class ProviderError(Exception):
    """Raised when a provider call fails, times out or returns nothing usable."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the default model identifier string."""
        ...

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        *,
        timeout_sec: float,
        model: str | None = None,
        tier: str | None = None,
    ) -> ProviderResponse:
        """Generate a response for the given prompt.

        Args:
            prompt: The full prompt text to send.
            timeout_sec: Wall-clock limit for the call.
            model: Model id overriding the provider default.
            tier: Resolved capability tier, for providers that map tiers to settings.

        Returns:
            ProviderResponse with the raw text content and metadata.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...
