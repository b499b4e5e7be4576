"""Error kinds raised by the book generation workflow.

Generation failures share the :class:`BookGenerationError` base so the
outline controller and the chapter orchestrator can treat every failure of a
remote call uniformly while still reporting which kind occurred.
"""

from __future__ import annotations

__all__ = [
    "BookGenerationError",
    "TransportFailure",
    "EmptyResponse",
    "MalformedResponse",
    "ValidationFailure",
    "ConfigurationError",
    "PhaseError",
]


class BookGenerationError(RuntimeError):
    """Base error for failures while talking to the generation service."""


class TransportFailure(BookGenerationError):
    """Raised when the network or the service call itself failed."""


class EmptyResponse(BookGenerationError):
    """Raised when a call succeeded but produced no usable text."""


class MalformedResponse(BookGenerationError):
    """Raised when text was received but could not be parsed into a structure."""

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class ValidationFailure(ValueError):
    """Raised when user inputs violate the minimum constraints."""


class ConfigurationError(RuntimeError):
    """Raised when the application is not configured to reach the service."""


class PhaseError(RuntimeError):
    """Raised when an operation is not legal in the current workflow phase."""
