"""Outline acquisition: structure then title, retried as one sequence.

Each attempt runs a two-node LangGraph graph. The ``structure`` node streams
the outline, concatenates the fragments and parses them; the ``title`` node
asks for a title given the parsed outline. A failure anywhere discards the
whole attempt, so a retry always regenerates the structure as well.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from langgraph.graph import END, START, StateGraph

from ..errors import BookGenerationError, EmptyResponse
from ..graph.states import OutlineGraphState
from ..llm.retry import RetryPolicy
from .client import GenerationClient, parse_structured_result
from .models import BookStructure, UserInputs, WorkflowPhase
from .tasks import TaskStore
from .workflow import WorkflowState

logger = logging.getLogger(__name__)

__all__ = ["OutlineController", "build_outline_graph"]


def build_outline_graph(client: GenerationClient):
    """Compile the structure -> title graph for one acquisition attempt."""

    async def structure_node(state: OutlineGraphState) -> dict[str, Any]:
        accumulated = ""
        async for fragment in client.generate_structured(state["inputs"], state.get("reference_text", "")):
            accumulated += fragment
        if not accumulated.strip():
            raise EmptyResponse("Empty book structure received from the generation service.")
        structure = parse_structured_result(accumulated)
        logger.debug("Parsed outline with %s top-level sections", len(structure))
        return {"raw_structure": accumulated, "structure": structure}

    async def title_node(state: OutlineGraphState) -> dict[str, Any]:
        title = await client.generate_title(
            state["inputs"],
            state["structure"],
            state.get("reference_text", ""),
        )
        return {"title": title}

    graph = StateGraph(OutlineGraphState)
    graph.add_node("structure", structure_node)
    graph.add_node("title", title_node)
    graph.add_edge(START, "structure")
    graph.add_edge("structure", "title")
    graph.add_edge("title", END)
    return graph.compile()


class OutlineController:
    """Acquire or regenerate the outline and keep the approved result."""

    def __init__(
        self,
        client: GenerationClient,
        workflow: WorkflowState,
        tasks: TaskStore,
        *,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.client = client
        self.workflow = workflow
        self.tasks = tasks
        base_policy = retry_policy or client.retry_policy
        self.retry_policy = replace(base_policy, retry_on=(BookGenerationError,))
        self.structure: BookStructure | None = None
        self.title: str | None = None
        self._graph = build_outline_graph(client)

    @property
    def is_busy(self) -> bool:
        return self.workflow.is_loading_outline or self.workflow.is_regenerating_outline

    def clear(self) -> None:
        self.structure = None
        self.title = None

    async def acquire_outline(
        self,
        inputs: UserInputs,
        reference_text: str = "",
        *,
        is_regeneration: bool = False,
    ) -> bool:
        """Run structure and title generation with whole-sequence retries.

        Returns ``True`` when a new outline was stored. On final failure a
        first-time acquisition falls back to input collection with the
        outline cleared, while a regeneration keeps the previous outline.
        """

        workflow = self.workflow
        if is_regeneration:
            workflow.require(WorkflowPhase.REVIEWING_OUTLINE, action="regenerate the outline")
            if self.is_busy:
                logger.info("Outline regeneration already in progress; ignoring request")
                return False
            workflow.is_regenerating_outline = True
        else:
            workflow.transition(WorkflowPhase.GENERATING_OUTLINE)
            workflow.is_loading_outline = True
            self.clear()
            self.tasks.clear()
        workflow.clear_error()

        def on_failure(attempt: int, exc: BaseException) -> None:
            workflow.set_error(str(exc))

        async def attempt() -> OutlineGraphState:
            return await self._graph.ainvoke({"inputs": inputs, "reference_text": reference_text or ""})

        label = "Outline regeneration" if is_regeneration else "Outline and title generation"
        try:
            result = await self.retry_policy.run(attempt, label=label, on_failure=on_failure)
        except BookGenerationError as exc:
            workflow.set_error(str(exc))
            if not is_regeneration:
                self.clear()
                workflow.transition(WorkflowPhase.COLLECTING_INPUT)
            return False
        finally:
            workflow.is_loading_outline = False
            workflow.is_regenerating_outline = False

        structure = result["structure"]
        if len(structure) != inputs.chapter_count:
            logger.warning(
                "Outline has %s top-level sections but %s were requested",
                len(structure),
                inputs.chapter_count,
            )
        self.structure = structure
        self.title = result["title"]
        self.tasks.clear()
        workflow.transition(WorkflowPhase.REVIEWING_OUTLINE)
        workflow.clear_error()
        logger.info('Outline ready: "%s" with %s sections', self.title, len(structure))
        return True
