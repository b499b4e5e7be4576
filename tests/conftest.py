"""Shared fixtures for the test suite."""
from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Iterable

import pytest
from langchain_core.messages import AIMessage, AIMessageChunk

from kbook.book.client import GenerationClient
from kbook.book.mock import CHAPTER_TITLE_PATTERN, MockBookProvider
from kbook.config import LLMConfig
from kbook.llm.retry import RetryPolicy

ENV_VARS = {
    "KBOOK_MODEL",
    "OPENAI_MODEL",
    "KBOOK_FAST_MODEL",
    "KBOOK_QUALITY_MODEL",
    "KBOOK_API_KEY",
    "KBOOK_API_KEY_ENV",
    "OPENAI_API_KEY",
    "KBOOK_BASE_URL",
    "OPENAI_BASE_URL",
    "KBOOK_TEMPERATURE",
    "KBOOK_MAX_TOKENS",
    "KBOOK_MAX_ATTEMPTS",
    "KBOOK_RETRY_DELAY",
}


@pytest.fixture(autouse=True)
def _clear_llm_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure LLM-related environment variables do not leak between tests."""

    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def dummy_chat_model(monkeypatch: pytest.MonkeyPatch):
    """Patch the LangChain chat client used by the provider abstraction."""

    from kbook.llm import providers

    class DummyChatModel:
        def __init__(self, **kwargs: Any) -> None:
            self.kwargs = kwargs
            self.invocations: list[tuple[str, tuple[Iterable[Any], dict[str, Any]]]] = []

        async def ainvoke(self, messages: Iterable[Any], **kwargs: Any) -> AIMessage:
            self.invocations.append(("ainvoke", (tuple(messages), dict(kwargs))))
            return AIMessage(content="reply")

        async def astream(self, messages: Iterable[Any], **kwargs: Any) -> AsyncIterator[Any]:
            self.invocations.append(("astream", (tuple(messages), dict(kwargs))))
            for word in ("one ", "two"):
                yield AIMessageChunk(content=word)

    monkeypatch.setattr(providers, "ChatOpenAI", DummyChatModel)
    return DummyChatModel


@pytest.fixture
def recorded_sleeps() -> list[float]:
    return []


@pytest.fixture
def retry_policy(recorded_sleeps: list[float]) -> RetryPolicy:
    """Three attempts with the default delay, recorded instead of slept."""

    async def fake_sleep(delay: float) -> None:
        recorded_sleeps.append(delay)

    return RetryPolicy(max_attempts=3, delay_seconds=2.0, sleep=fake_sleep)


@pytest.fixture
def llm_config() -> LLMConfig:
    return LLMConfig(fast_model="mock-fast", quality_model="mock-quality")


@pytest.fixture
def mock_client(llm_config: LLMConfig, retry_policy: RetryPolicy) -> GenerationClient:
    return GenerationClient(MockBookProvider("mock-fast", seed=7), llm_config=llm_config, retry_policy=retry_policy)


class ScriptedProvider(MockBookProvider):
    """Mock provider whose answers can be scripted per stage.

    Script entries are consumed in order. An entry may be an exception (raised
    before any text), a string (the whole answer) or a list of stream items,
    where an item is a text fragment, an exception raised mid-stream or an
    ``asyncio.Event`` awaited before the stream continues. Empty scripts fall
    back to the deterministic mock answers.
    """

    def __init__(self, model: str = "mock-fast") -> None:
        super().__init__(model, seed=7)
        self.structure_script: list[Any] = []
        self.title_script: list[Any] = []
        self.chapter_script: dict[str, list[Any]] = {}
        self.chapter_prompts: dict[str, list[str]] = {}

    def with_model(self, model: str, **overrides: Any) -> "ScriptedProvider":
        return self

    def _next_entry(self, prompt: str) -> Any:
        if "Respond with JSON only" in prompt:
            script = self.structure_script
        elif "<book_structure>" in prompt:
            script = self.title_script
        else:
            match = CHAPTER_TITLE_PATTERN.search(prompt)
            title = match.group(1).strip() if match else ""
            self.chapter_prompts.setdefault(title, []).append(prompt)
            script = self.chapter_script.get(title, [])
        return script.pop(0) if script else None

    async def ainvoke(self, messages, **kwargs: Any) -> AIMessage:
        prompt = self._prompt_of(messages)
        entry = self._next_entry(prompt)
        if entry is None:
            return AIMessage(content=self._respond(prompt))
        if isinstance(entry, BaseException):
            raise entry
        return AIMessage(content=entry if isinstance(entry, str) else "".join(entry))

    async def astream(self, messages, **kwargs: Any) -> AsyncIterator[AIMessageChunk]:
        prompt = self._prompt_of(messages)
        entry = self._next_entry(prompt)
        if entry is None:
            items: list[Any] = [self._respond(prompt)]
        elif isinstance(entry, BaseException):
            raise entry
        elif isinstance(entry, str):
            items = [entry]
        else:
            items = list(entry)
        for item in items:
            await asyncio.sleep(0)
            if isinstance(item, BaseException):
                raise item
            if isinstance(item, asyncio.Event):
                await item.wait()
                continue
            yield AIMessageChunk(content=item)


@pytest.fixture
def scripted_provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def scripted_client(
    scripted_provider: ScriptedProvider,
    llm_config: LLMConfig,
    retry_policy: RetryPolicy,
) -> GenerationClient:
    return GenerationClient(scripted_provider, llm_config=llm_config, retry_policy=retry_policy)
