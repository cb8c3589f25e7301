"""Domain exceptions for provider generation.

Provider failures never escape a race as HTTP errors. The orchestrator turns
them into `provider-failed` stream events; the stable `error_code` is kept on
the outcome for logging and usage tagging.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class ProviderError(Exception):
    """Base class for provider generation errors."""

    message: str
    error_code: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.message


class ProviderNotConfigured(ProviderError):
    def __init__(self, message: str = "provider not configured") -> None:
        super().__init__(message=message, error_code="not_configured")


class ProviderTimeout(ProviderError):
    def __init__(self, message: str = "provider timed out") -> None:
        super().__init__(message=message, error_code="timeout")


class EmptyTrackList(ProviderError):
    def __init__(self, message: str = "provider returned no tracks") -> None:
        super().__init__(message=message, error_code="empty_result")


class GenerationFailure(ProviderError):
    def __init__(self, message: str = "provider generation failed") -> None:
        super().__init__(message=message, error_code="provider_error")
