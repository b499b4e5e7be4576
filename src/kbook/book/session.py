"""Session facade wiring outline acquisition, chapter generation and export."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Mapping

from ..config import KBookConfig
from ..errors import ConfigurationError, PhaseError
from ..io import ReferenceFile, compile_document, format_reference_texts, write_document
from ..llm.providers import build_provider
from .client import ChatProvider, GenerationClient
from .models import BookStructure, ChapterTask, TaskStatus, UserInputs, WorkflowPhase
from .orchestrator import ChapterOrchestrator, ChapterProgress, GenerationContext, RewriteRequest
from .outline import OutlineController
from .tasks import TaskStore
from .workflow import ErrorBanner, WorkflowState

logger = logging.getLogger(__name__)

__all__ = ["BookSession"]


class BookSession:
    """One user's trip from inputs to a finished book.

    The session owns every piece of mutable state (phase, inputs, reference
    files, outline, tasks) and exposes the user-level actions. Outline and
    chapter operations are delegated to :class:`OutlineController` and
    :class:`ChapterOrchestrator`, which share the same workflow state and task
    store.
    """

    def __init__(self, client: GenerationClient, *, config: KBookConfig | None = None) -> None:
        self.config = config or KBookConfig()
        self.client = client
        self.workflow = WorkflowState()
        self.tasks = TaskStore()
        self.outline = OutlineController(client, self.workflow, self.tasks)
        self.chapters = ChapterOrchestrator(client, self.workflow, self.tasks)
        self.inputs: UserInputs | None = None
        self.reference_files: list[ReferenceFile] = []

    @classmethod
    def from_config(
        cls,
        config: KBookConfig | None = None,
        *,
        provider: ChatProvider | None = None,
        api_key: str | None = None,
    ) -> "BookSession":
        """Build a session, creating a LangChain provider unless one is given."""

        config = config or KBookConfig()
        if provider is None:
            resolved_key = config.llm.resolve_api_key(api_key)
            if not resolved_key:
                names = ", ".join((config.llm.api_key_env, *config.llm.fallback_api_key_envs))
                raise ConfigurationError(f"API key is missing. Set one of: {names}.")
            provider = build_provider(**config.llm.provider_kwargs(api_key=resolved_key))
        client = GenerationClient(provider, llm_config=config.llm, retry_policy=config.retry.policy())
        return cls(client, config=config)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def phase(self) -> WorkflowPhase:
        return self.workflow.phase

    @property
    def structure(self) -> BookStructure | None:
        return self.outline.structure

    @property
    def title(self) -> str | None:
        return self.outline.title

    @property
    def banner(self) -> ErrorBanner | None:
        return self.workflow.banner()

    @property
    def reference_text(self) -> str:
        return format_reference_texts(self.reference_files)

    @property
    def auto_mode(self) -> bool:
        return self.chapters.auto_mode

    @property
    def rewrite_request(self) -> RewriteRequest | None:
        return self.chapters.rewrite_request

    def task_list(self) -> list[ChapterTask]:
        return self.tasks.all()

    def progress(self) -> ChapterProgress:
        return self.chapters.progress()

    # ------------------------------------------------------------------
    # Inputs and outline
    # ------------------------------------------------------------------
    async def submit_inputs(
        self,
        inputs: UserInputs | Mapping[str, Any],
        reference_files: Iterable[ReferenceFile] = (),
    ) -> bool:
        """Store the inputs and acquire the first outline."""

        self.workflow.require(WorkflowPhase.COLLECTING_INPUT, action="submit inputs")
        if not isinstance(inputs, UserInputs):
            inputs = UserInputs.from_form(**dict(inputs))
        self.inputs = inputs
        self.reference_files = list(reference_files)
        return await self.outline.acquire_outline(inputs, self.reference_text)

    async def regenerate_outline(self, feedback: str | None = None) -> bool:
        """Ask for a new outline; the previous one survives a failure."""

        self.workflow.require(WorkflowPhase.REVIEWING_OUTLINE, action="regenerate the outline")
        if self.inputs is None:  # pragma: no cover - unreachable after a successful submit
            raise PhaseError("No inputs have been submitted.")
        self.inputs = self.inputs.with_outline_feedback(feedback)
        return await self.outline.acquire_outline(self.inputs, self.reference_text, is_regeneration=True)

    def back_to_inputs(self) -> None:
        """Discard the outline and return to input collection; inputs are kept."""

        self.workflow.require(WorkflowPhase.REVIEWING_OUTLINE, action="go back to inputs")
        if self.outline.is_busy:
            raise PhaseError("Cannot go back while the outline is being regenerated.")
        self.outline.clear()
        self.tasks.clear()
        self.workflow.clear_error()
        self.workflow.transition(WorkflowPhase.COLLECTING_INPUT)

    # ------------------------------------------------------------------
    # Chapters
    # ------------------------------------------------------------------
    def proceed_to_chapters(self) -> list[ChapterTask]:
        """Approve the outline and derive one pending task per top-level section."""

        self.workflow.require(WorkflowPhase.REVIEWING_OUTLINE, action="start chapter generation")
        if self.outline.is_busy:
            raise PhaseError("Cannot proceed while the outline is being regenerated.")
        if self.inputs is None or self.structure is None:  # pragma: no cover - defensive guard
            raise PhaseError("No approved outline is available.")
        context = GenerationContext(self.inputs, self.structure, self.reference_text)
        derived = self.chapters.prepare(context)
        self.workflow.transition(WorkflowPhase.GENERATING_CHAPTERS)
        self.workflow.clear_error()
        return derived

    def set_auto_mode(self, enabled: bool) -> None:
        self.workflow.require(WorkflowPhase.GENERATING_CHAPTERS, action="change automatic generation")
        self.chapters.set_auto_mode(enabled)

    def toggle_auto_mode(self) -> bool:
        self.workflow.require(WorkflowPhase.GENERATING_CHAPTERS, action="change automatic generation")
        return self.chapters.toggle_auto_mode()

    def request_rewrite(self, task_id: str) -> RewriteRequest:
        return self.chapters.request_rewrite(task_id)

    def close_rewrite(self) -> None:
        self.chapters.close_rewrite()

    def submit_rewrite(self, instructions: str):
        return self.chapters.submit_rewrite(instructions)

    async def wait_until_idle(self) -> None:
        await self.chapters.wait_until_idle()

    def _leave_chapters(self, target: WorkflowPhase) -> None:
        self.workflow.require(WorkflowPhase.GENERATING_CHAPTERS, action=f"move to '{target.value}'")
        if not self.chapters.can_leave:
            raise PhaseError("Pause automatic generation or wait for the current chapter to finish first.")
        self.chapters.halt()
        self.workflow.transition(target)

    def back_to_outline(self) -> None:
        """Stop chapter generation and return to the outline review."""

        self._leave_chapters(WorkflowPhase.REVIEWING_OUTLINE)
        self.tasks.clear()

    def view_result(self) -> str:
        """Move to the finished book and return its compiled text."""

        self._leave_chapters(WorkflowPhase.VIEWING_RESULT)
        return self.document()

    # ------------------------------------------------------------------
    # Result
    # ------------------------------------------------------------------
    def document(self) -> str:
        return compile_document(self.title, (task.content for task in self.tasks if task.status == TaskStatus.DONE))

    def export(self, directory: Path | str | None = None) -> Path:
        target = directory if directory is not None else self.config.output_path
        return write_document(target, self.title, self.document())

    def start_over(self) -> None:
        """Return every piece of state to its initial value."""

        self.chapters.halt()
        self.chapters.context = None
        self.outline.clear()
        self.tasks.clear()
        self.inputs = None
        self.reference_files = []
        self.workflow.reset()
        logger.info("Session reset")
