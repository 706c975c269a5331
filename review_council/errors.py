"""Exception types and the cooperative cancellation signal."""

import asyncio


class ValidationError(Exception):
    """Raised when caller-supplied input is malformed."""


class CouncilConfigError(ValidationError):
    """Raised when a council config fails validation. No run is created."""


class TemplateSyntaxError(ValueError):
    """Raised when a tagged prompt template cannot be parsed."""


class CancellationError(Exception):
    """Raised when a review is cancelled. Always re-raised verbatim."""

    def __init__(self, message: str = "Analysis was cancelled") -> None:
        super().__init__(message)


class CancellationToken:
    """Signal shared between the caller and every step of one review."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "Analysis was cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CancellationError(self.reason or "Analysis was cancelled")
