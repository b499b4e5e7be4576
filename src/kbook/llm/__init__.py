"""LLM tooling for the kbook generation workflow."""

from .providers import LangChainChatProvider, ProviderError, ProviderSettings, build_provider
from .retry import RetryExhausted, RetryPolicy

__all__ = [
    "LangChainChatProvider",
    "ProviderError",
    "ProviderSettings",
    "build_provider",
    "RetryPolicy",
    "RetryExhausted",
]
