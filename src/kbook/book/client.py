"""Generation client adapter around the remote text-generation service.

The adapter exposes the three calls the workflow needs. The structure call
streams fragments and never retries; its caller owns the retry loop because
it must also discard partially accumulated outlines. The title call is a
single-shot request retried as a whole. The chapter call retries only the
opening of its stream: once fragments have been delivered, a failure is
propagated immediately so the partial text stays visible.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, AsyncIterator, Protocol, Sequence

from langchain_core.messages import BaseMessage, HumanMessage

from ..config import LLMConfig
from ..errors import BookGenerationError, EmptyResponse, MalformedResponse, TransportFailure
from ..llm.retry import RetryPolicy
from .models import BookStructure, UserInputs
from .prompts import build_chapter_prompt, build_structure_prompt, build_title_prompt

logger = logging.getLogger(__name__)

__all__ = [
    "ChatProvider",
    "GenerationClient",
    "extract_text",
    "parse_structured_result",
    "strip_code_fence",
]

FENCE_PATTERN = re.compile(r"^```(\w*)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)


class ChatProvider(Protocol):
    """What the adapter expects from a chat model wrapper."""

    @property
    def model(self) -> str:  # pragma: no cover - interface
        ...

    async def ainvoke(self, messages: Sequence[BaseMessage], **kwargs: Any) -> Any:  # pragma: no cover - interface
        ...

    def astream(self, messages: Sequence[BaseMessage], **kwargs: Any) -> AsyncIterator[Any]:  # pragma: no cover - interface
        ...

    def with_model(self, model: str, **overrides: Any) -> "ChatProvider":  # pragma: no cover - interface
        ...


def extract_text(response: Any) -> str:
    """Pull plain text out of a LangChain message, chunk or bare string."""

    if response is None:
        return ""
    if isinstance(response, str):
        return response
    content = getattr(response, "content", response)
    if isinstance(content, list):
        pieces = []
        for segment in content:
            if isinstance(segment, str):
                pieces.append(segment)
            elif isinstance(segment, dict):
                pieces.append(str(segment.get("text", "")))
        return "".join(pieces)
    return str(content or "")


def strip_code_fence(text: str) -> str:
    stripped = text.strip()
    match = FENCE_PATTERN.match(stripped)
    if match and match.group(2):
        return match.group(2).strip()
    return stripped


def parse_structured_result(text: str) -> BookStructure:
    """Parse an outline response, tolerating a surrounding Markdown code fence."""

    payload = strip_code_fence(text)
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse outline response: %s", exc)
        logger.debug("Raw outline response: %s", text)
        raise MalformedResponse(
            "Invalid JSON response from the generation service; the outline was not valid JSON.",
            raw_text=text,
        ) from exc
    try:
        return BookStructure.from_mapping(data)
    except MalformedResponse as exc:
        raise MalformedResponse(str(exc), raw_text=text) from exc


def _messages(prompt: str) -> list[BaseMessage]:
    return [HumanMessage(content=prompt)]


def _transport_failure(exc: Exception, what: str) -> TransportFailure:
    return TransportFailure(f"{what} failed: {exc}")


async def _close_stream(iterator: Any) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as exc:
        logger.debug("Error while closing an abandoned stream: %s", exc)


class GenerationClient:
    """Adapter owning prompt assembly, response parsing and per-call retries."""

    def __init__(
        self,
        provider: ChatProvider,
        *,
        llm_config: LLMConfig | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.provider = provider
        self.llm_config = llm_config or LLMConfig()
        self.retry_policy = retry_policy or RetryPolicy()
        self._providers: dict[str, ChatProvider] = {}

    def model_for(self, inputs: UserInputs) -> str:
        return self.llm_config.model_for_mode(inputs.generation_mode)

    def _provider_for(self, inputs: UserInputs) -> ChatProvider:
        model = self.model_for(inputs)
        cached = self._providers.get(model)
        if cached is None:
            cached = self.provider if self.provider.model == model else self.provider.with_model(model)
            self._providers[model] = cached
        return cached

    async def generate_structured(
        self,
        inputs: UserInputs,
        reference_text: str = "",
    ) -> AsyncIterator[str]:
        """Stream the raw outline text. No retry happens here."""

        provider = self._provider_for(inputs)
        prompt = build_structure_prompt(inputs, reference_text)
        try:
            async for chunk in provider.astream(_messages(prompt)):
                text = extract_text(chunk)
                if text:
                    yield text
        except BookGenerationError:
            raise
        except Exception as exc:
            raise _transport_failure(exc, "Book structure stream") from exc

    async def generate_title(
        self,
        inputs: UserInputs,
        structure: BookStructure,
        reference_text: str = "",
    ) -> str:
        provider = self._provider_for(inputs)
        messages = _messages(build_title_prompt(inputs, structure.to_json(), reference_text))

        async def attempt() -> str:
            try:
                response = await provider.ainvoke(messages)
            except BookGenerationError:
                raise
            except Exception as exc:
                raise _transport_failure(exc, "Book title request") from exc
            title = extract_text(response).strip()
            if not title:
                raise EmptyResponse("Empty book title received from the generation service.")
            return title

        return await self.retry_policy.run(attempt, label="Book title generation")

    async def generate_chapter_stream(
        self,
        inputs: UserInputs,
        *,
        title: str,
        outline: str,
        structure_json: str,
        previous_chapters: str,
        reference_text: str = "",
        rewrite_instructions: str | None = None,
    ) -> AsyncIterator[str]:
        """Open a chapter stream, retrying until the first fragment arrives."""

        provider = self._provider_for(inputs)
        messages = _messages(
            build_chapter_prompt(
                inputs,
                chapter_title=title,
                chapter_outline=outline,
                structure_json=structure_json,
                previous_chapters=previous_chapters,
                reference_text=reference_text,
                rewrite_instructions=rewrite_instructions,
            )
        )

        async def open_stream() -> AsyncIterator[str]:
            return await self._open_stream(provider, messages, title)

        return await self.retry_policy.run(open_stream, label=f'Chapter stream for "{title}"')

    async def _open_stream(
        self,
        provider: ChatProvider,
        messages: Sequence[BaseMessage],
        title: str,
    ) -> AsyncIterator[str]:
        iterator = provider.astream(messages).__aiter__()
        try:
            first = await self._first_fragment(iterator, title)
        except BaseException:
            await _close_stream(iterator)
            raise
        return self._continue_stream(first, iterator, title)

    async def _first_fragment(self, iterator: AsyncIterator[Any], title: str) -> str:
        first = ""
        try:
            while not first:
                first = extract_text(await iterator.__anext__())
        except StopAsyncIteration:
            raise EmptyResponse(f'Chapter stream for "{title}" ended before producing any text.') from None
        except BookGenerationError:
            raise
        except Exception as exc:
            raise _transport_failure(exc, f'Chapter stream for "{title}"') from exc
        return first

    async def _continue_stream(
        self,
        first: str,
        iterator: AsyncIterator[Any],
        title: str,
    ) -> AsyncIterator[str]:
        try:
            yield first
            async for chunk in iterator:
                text = extract_text(chunk)
                if text:
                    yield text
        except BookGenerationError:
            raise
        except Exception as exc:
            raise _transport_failure(exc, f'Chapter stream for "{title}"') from exc
        finally:
            await _close_stream(iterator)
