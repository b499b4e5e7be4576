"""LangChain chat provider used by the book generation client."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, AsyncIterator, Sequence

from langchain_core.messages import BaseMessage
from langchain_openai import ChatOpenAI

from ..errors import TransportFailure

__all__ = [
    "ProviderError",
    "ProviderSettings",
    "LangChainChatProvider",
    "build_provider",
]

DEFAULT_MODEL = "gpt-4o-mini"


class ProviderError(TransportFailure):
    """Raised when the chat model could not be built or a call to it failed."""


@dataclass(slots=True)
class ProviderSettings:
    """Connection and sampling settings for one chat model."""

    model: str = DEFAULT_MODEL
    base_url: str | None = None
    api_key: str | None = None
    temperature: float = 0.7
    max_tokens: int | None = None
    timeout: float | None = None

    def as_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "temperature": self.temperature,
        }
        if self.base_url:
            kwargs["base_url"] = self.base_url
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.max_tokens is not None:
            kwargs["max_tokens"] = self.max_tokens
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        return kwargs


class LangChainChatProvider:
    """Async wrapper around ``ChatOpenAI``.

    Failures from the underlying client, including those raised part-way
    through a stream, surface as :class:`ProviderError`.
    """

    def __init__(self, settings: ProviderSettings):
        self.settings = settings
        try:
            self._client = ChatOpenAI(**settings.as_kwargs())
        except Exception as exc:
            raise ProviderError(f"Failed to initialise chat model '{settings.model}': {exc}") from exc

    @property
    def model(self) -> str:
        return self.settings.model

    async def ainvoke(self, messages: Sequence[BaseMessage], **kwargs: Any) -> Any:
        try:
            return await self._client.ainvoke(messages, **kwargs)
        except Exception as exc:
            raise ProviderError(f"Invocation failed for model '{self.model}': {exc}") from exc

    async def astream(self, messages: Sequence[BaseMessage], **kwargs: Any) -> AsyncIterator[Any]:
        try:
            async for chunk in self._client.astream(messages, **kwargs):
                yield chunk
        except Exception as exc:
            raise ProviderError(f"Streaming failed for model '{self.model}': {exc}") from exc

    def with_model(self, model: str, **overrides: Any) -> "LangChainChatProvider":
        """Same connection settings, different model (fast vs high-quality mode)."""

        new_settings = replace(self.settings, model=model)
        for key, value in overrides.items():
            if hasattr(new_settings, key):
                setattr(new_settings, key, value)
        return self.__class__(new_settings)


def build_provider(
    *,
    model: str | None = None,
    base_url: str | None = None,
    api_key: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    timeout: float | None = None,
) -> LangChainChatProvider:
    """Build a provider from values already resolved by :class:`~kbook.config.LLMConfig`."""

    settings = ProviderSettings(
        model=model or DEFAULT_MODEL,
        base_url=base_url,
        api_key=api_key,
        temperature=0.7 if temperature is None else temperature,
        max_tokens=max_tokens,
        timeout=timeout,
    )
    return LangChainChatProvider(settings)
