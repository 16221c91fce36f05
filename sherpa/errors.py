"""Exception types raised by Sherpa."""

from __future__ import annotations

_EXCERPT_CHARS = 200


class SherpaError(Exception):
    """Base class for every error Sherpa raises on purpose."""


class ConfigError(SherpaError, ValueError):
    pass


class ProviderNotConfiguredError(SherpaError):
    pass


class ProviderError(SherpaError):
    """A backend call failed at the HTTP or SDK level."""


class PreconditionError(SherpaError):
    """A required upstream record is missing; raised before any LLM call."""


class OperationCancelled(SherpaError):
    """The pipeline's cancellation token fired while a call was in flight."""


class NoScreenshotDataError(SherpaError):
    def __init__(self, message: str = "No valid screenshot data") -> None:
        super().__init__(message)


class InvalidTransitionError(SherpaError):
    pass


class ResponseValidationError(SherpaError):
    """An LLM response could not be turned into the expected JSON structure."""

    def __init__(self, schema: str, reason: str, raw: str = "") -> None:
        self.schema = schema
        self.reason = reason
        self.excerpt = raw[:_EXCERPT_CHARS]
        super().__init__(f"Failed to parse JSON for {schema}: {reason}")
