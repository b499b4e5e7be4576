from __future__ import annotations

import asyncio

import pytest
from langchain_core.messages import HumanMessage

from kbook.config import LLMConfig
from kbook.errors import TransportFailure
from kbook.llm.providers import LangChainChatProvider, ProviderError, ProviderSettings, build_provider


def test_build_provider_from_resolved_config(monkeypatch: pytest.MonkeyPatch, dummy_chat_model) -> None:
    monkeypatch.setenv("KBOOK_FAST_MODEL", "env-fast")
    monkeypatch.setenv("OPENAI_BASE_URL", "https://env.example")
    monkeypatch.setenv("KBOOK_TEMPERATURE", "0.25")
    monkeypatch.setenv("KBOOK_MAX_TOKENS", "512")

    provider = build_provider(**LLMConfig().provider_kwargs(api_key="env-key"))

    assert isinstance(provider, LangChainChatProvider)
    assert provider.model == "env-fast"
    settings = provider.settings
    assert settings.base_url == "https://env.example"
    assert settings.api_key == "env-key"
    assert settings.temperature == 0.25
    assert settings.max_tokens == 512

    dummy_instance = provider._client  # type: ignore[attr-defined]
    assert dummy_instance.kwargs["model"] == "env-fast"
    assert dummy_instance.kwargs["max_tokens"] == 512


def test_build_provider_defaults(dummy_chat_model) -> None:
    provider = build_provider()

    assert provider.model == "gpt-4o-mini"
    assert provider.settings.temperature == 0.7
    assert provider._client.kwargs == {"model": "gpt-4o-mini", "temperature": 0.7}  # type: ignore[attr-defined]


def test_provider_settings_as_kwargs_filters_none() -> None:
    settings = ProviderSettings(model="demo", temperature=0.5, max_tokens=None, timeout=None)
    kwargs = settings.as_kwargs()
    assert kwargs == {"model": "demo", "temperature": 0.5}


def test_langchain_chat_provider_async_calls(dummy_chat_model) -> None:
    provider = build_provider(model="demo-model")
    messages = [HumanMessage(content="Write a title")]

    async def scenario() -> tuple[str, list[str]]:
        response = await provider.ainvoke(messages)
        chunks = [chunk.content async for chunk in provider.astream(messages)]
        return response.content, chunks

    response, chunks = asyncio.run(scenario())

    assert response == "reply"
    assert chunks == ["one ", "two"]
    dummy_instance = provider._client  # type: ignore[attr-defined]
    assert [kind for kind, _ in dummy_instance.invocations] == ["ainvoke", "astream"]


def test_langchain_chat_provider_wraps_stream_failures(monkeypatch: pytest.MonkeyPatch, dummy_chat_model) -> None:
    provider = build_provider(model="demo-model")

    async def broken_astream(messages, **kwargs):
        yield "partial"
        raise ConnectionError("socket closed")

    monkeypatch.setattr(provider._client, "astream", broken_astream)  # type: ignore[attr-defined]

    async def consume() -> list:
        received = []
        async for chunk in provider.astream([HumanMessage(content="x")]):
            received.append(chunk)
        return received

    with pytest.raises(ProviderError, match="socket closed") as excinfo:
        asyncio.run(consume())
    assert isinstance(excinfo.value, TransportFailure)


def test_langchain_chat_provider_wraps_invocation_failures(monkeypatch: pytest.MonkeyPatch, dummy_chat_model) -> None:
    provider = build_provider(model="demo-model")

    async def broken_ainvoke(messages, **kwargs):
        raise TimeoutError("read timed out")

    monkeypatch.setattr(provider._client, "ainvoke", broken_ainvoke)  # type: ignore[attr-defined]

    with pytest.raises(ProviderError, match="demo-model"):
        asyncio.run(provider.ainvoke([HumanMessage(content="x")]))


def test_construction_failure_is_reported(monkeypatch: pytest.MonkeyPatch) -> None:
    from kbook.llm import providers

    def refuse(**kwargs):
        raise ValueError("bad base url")

    monkeypatch.setattr(providers, "ChatOpenAI", refuse)

    with pytest.raises(ProviderError, match="bad base url"):
        build_provider(model="demo-model")


def test_with_model_keeps_settings(dummy_chat_model) -> None:
    provider = build_provider(model="fast", temperature=0.4, api_key="key")

    other = provider.with_model("slow")

    assert other.model == "slow"
    assert other.settings.temperature == 0.4
    assert other.settings.api_key == "key"
    assert provider.model == "fast"
