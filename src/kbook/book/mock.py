"""Deterministic provider used for testing and offline development."""

from __future__ import annotations

import asyncio
import json
import random
import re
import textwrap
from typing import Any, AsyncIterator, Sequence

from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage

__all__ = ["MockBookProvider"]

CHAPTER_COUNT_PATTERN = re.compile(r"exactly (\d+) top-level sections")
SUBJECT_PATTERN = re.compile(r"<subject>(.*?)</subject>", re.DOTALL)
CHAPTER_TITLE_PATTERN = re.compile(r"^Chapter title: (.*)$", re.MULTILINE)
WORD_PATTERN = re.compile(r"\S+\s*")


class MockBookProvider:
    """Answers structure, title and chapter prompts without a network call.

    The stage is recognised from markers in the prompt, so the provider can be
    dropped in wherever a LangChain chat provider is expected.
    """

    def __init__(self, model: str = "mock-latest", *, seed: int | None = None, words_per_chunk: int = 6) -> None:
        self._model = model
        self.seed = seed
        self.words_per_chunk = max(1, words_per_chunk)
        self._rng = random.Random(seed or 0)
        self.prompts: list[str] = []

    @property
    def model(self) -> str:
        return self._model

    def with_model(self, model: str, **overrides: Any) -> "MockBookProvider":
        return self.__class__(model, seed=self.seed, words_per_chunk=self.words_per_chunk)

    async def ainvoke(self, messages: Sequence[BaseMessage], **kwargs: Any) -> AIMessage:
        prompt = self._prompt_of(messages)
        return AIMessage(content=self._respond(prompt))

    async def astream(self, messages: Sequence[BaseMessage], **kwargs: Any) -> AsyncIterator[AIMessageChunk]:
        prompt = self._prompt_of(messages)
        words = WORD_PATTERN.findall(self._respond(prompt))
        for start in range(0, len(words), self.words_per_chunk):
            yield AIMessageChunk(content="".join(words[start:start + self.words_per_chunk]))
            await asyncio.sleep(0)

    def _prompt_of(self, messages: Sequence[BaseMessage]) -> str:
        prompt = str(messages[-1].content) if messages else ""
        self.prompts.append(prompt)
        return prompt

    def _respond(self, prompt: str) -> str:
        if "Respond with JSON only" in prompt:
            return self._build_structure(prompt)
        if "<book_structure>" in prompt:
            return self._build_title(prompt)
        if "<rewrite_instructions>" in prompt:
            return self._build_chapter(prompt)
        return "Unsupported prompt."

    def _subject(self, prompt: str) -> str:
        match = SUBJECT_PATTERN.search(prompt)
        return match.group(1).strip() if match else "an untold story"

    def _build_structure(self, prompt: str) -> str:
        match = CHAPTER_COUNT_PATTERN.search(prompt)
        count = int(match.group(1)) if match else 6
        subject = self._subject(prompt)
        structure: dict[str, Any] = {}
        for index in range(1, count + 1):
            title = f"Part {index}: {self._select_phrase(['Origins', 'Turning Points', 'Hidden Currents', 'New Horizons'])}"
            if index % 3 == 0:
                structure[title] = {
                    f"{title} - Foundations": f"Groundwork for {subject} in part {index}.",
                    f"{title} - Consequences": f"What part {index} changes about {subject}.",
                }
            else:
                structure[title] = f"How {subject} develops in part {index}."
        return "```json\n" + json.dumps(structure, ensure_ascii=False, indent=2) + "\n```"

    def _build_title(self, prompt: str) -> str:
        subject = self._subject(prompt)
        adjective = self._select_phrase(["Luminous", "Quiet", "Unfolding", "Remarkable"])
        return f"The {adjective} and Patient Journey Through the World of {subject}"

    def _build_chapter(self, prompt: str) -> str:
        match = CHAPTER_TITLE_PATTERN.search(prompt)
        title = match.group(1).strip() if match else "Untitled Chapter"
        body_seed = self._select_phrase(
            ["whispers of change", "shared secrets", "flickers of hope", "unanswered letters"]
        )
        return textwrap.dedent(
            f"""
            ## {title}

            {body_seed.capitalize()} ripple through the pages as the subject unfolds one careful step
            at a time. Concrete examples anchor each idea while hinting at what the next chapter holds.
            """
        ).strip()

    def _select_phrase(self, options: list[str]) -> str:
        return options[self._rng.randrange(len(options))]
