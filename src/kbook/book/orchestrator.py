"""Chapter generation queue.

The orchestrator owns the per-chapter state machine and the automatic queue.
:meth:`ChapterOrchestrator.try_advance_queue` is the scheduling step: it is
synchronous and idempotent, and it is re-applied after every mutation that can
change eligibility (toggle, rewrite request, stream completion). A unit is
marked active and ``generating`` before its coroutine is scheduled, so a
redundant call can never start a second stream.

All methods that may start a stream must be called with a running event loop.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from ..errors import PhaseError, ValidationFailure
from .client import GenerationClient
from .models import BookStructure, ChapterTask, TaskStatus, UserInputs, WorkflowPhase
from .prompts import CHAPTER_SEPARATOR
from .tasks import TaskStore, flatten_structure
from .workflow import WorkflowState

logger = logging.getLogger(__name__)

__all__ = [
    "ChapterOrchestrator",
    "ChapterProgress",
    "GenerationContext",
    "RewriteRequest",
    "INTERRUPTED_MESSAGE",
]

INTERRUPTED_MESSAGE = "Generation interrupted"
DEFAULT_FAILURE_MESSAGE = "Failed to generate chapter content."

TaskListener = Callable[[ChapterTask], None]


@dataclass(frozen=True, slots=True)
class GenerationContext:
    """Everything a chapter call needs besides the chapter itself."""

    inputs: UserInputs
    structure: BookStructure
    reference_text: str = ""

    @property
    def structure_json(self) -> str:
        return self.structure.to_json()


@dataclass(slots=True)
class RewriteRequest:
    """An open rewrite request; ``instructions`` is set once submitted."""

    task_id: str
    chapter_title: str
    instructions: str | None = None


@dataclass(frozen=True, slots=True)
class ChapterProgress:
    completed: int
    failed: int
    generating: int
    pending: int
    total: int
    auto_mode: bool
    active_title: str | None = None

    @property
    def percentage(self) -> float:
        return (self.completed / self.total) * 100 if self.total else 0.0

    @property
    def all_processed(self) -> bool:
        return self.completed + self.failed == self.total

    @property
    def has_pending(self) -> bool:
        return self.pending > 0

    @property
    def status_label(self) -> str:
        if self.auto_mode and self.active_title:
            return f"Writing: {self.active_title}..."
        if self.auto_mode and self.has_pending:
            return "Preparing next chapter..."
        if self.all_processed and self.completed < self.total:
            return "Generation Halted (Errors)"
        if self.all_processed:
            return "All Chapters Processed"
        return "Progress"


class ChapterOrchestrator:
    """Generate chapters one at a time, in order, with live content updates."""

    def __init__(self, client: GenerationClient, workflow: WorkflowState, tasks: TaskStore) -> None:
        self.client = client
        self.workflow = workflow
        self.tasks = tasks
        self.context: GenerationContext | None = None
        self.auto_mode = False
        self.active_task_id: str | None = None
        self.rewrite_request: RewriteRequest | None = None
        self._listeners: list[TaskListener] = []
        self._running: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Setup and observation
    # ------------------------------------------------------------------
    def prepare(self, context: GenerationContext) -> list[ChapterTask]:
        """Derive a fresh task list from the approved outline."""

        self.context = context
        self.auto_mode = False
        self.active_task_id = None
        self.rewrite_request = None
        derived = flatten_structure(context.structure)
        self.tasks.reset(derived)
        logger.info("Prepared %s chapter tasks", len(derived))
        return derived

    def subscribe(self, listener: TaskListener) -> Callable[[], None]:
        """Register ``listener`` for every task mutation; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, task: ChapterTask | None) -> None:
        if task is None:
            return
        for listener in list(self._listeners):
            listener(task)

    def _update(self, task_id: str, **changes) -> ChapterTask | None:
        # The task list may have been re-derived while a cancelled stream unwinds.
        if task_id not in self.tasks:
            return None
        updated = self.tasks.update(task_id, **changes)
        self._publish(updated)
        return updated

    @property
    def can_leave(self) -> bool:
        """Whether the chapter phase may be left without interrupting the queue."""

        return not (self.auto_mode and self.active_task_id is not None)

    def progress(self) -> ChapterProgress:
        active = self.tasks.get(self.active_task_id) if self.active_task_id else None
        return ChapterProgress(
            completed=self.tasks.count(TaskStatus.DONE),
            failed=self.tasks.count(TaskStatus.ERROR),
            generating=self.tasks.count(TaskStatus.GENERATING),
            pending=self.tasks.count(TaskStatus.PENDING),
            total=len(self.tasks),
            auto_mode=self.auto_mode,
            active_title=active.title if active else None,
        )

    # ------------------------------------------------------------------
    # Automatic mode and the scheduling step
    # ------------------------------------------------------------------
    def set_auto_mode(self, enabled: bool) -> None:
        if enabled == self.auto_mode:
            return
        self.auto_mode = enabled
        if enabled:
            logger.info("Automatic chapter generation on")
            self.workflow.clear_error()
            self.try_advance_queue()
        else:
            # An in-flight stream is left to finish.
            logger.info("Automatic chapter generation paused")

    def toggle_auto_mode(self) -> bool:
        self.set_auto_mode(not self.auto_mode)
        return self.auto_mode

    def try_advance_queue(self) -> asyncio.Task[None] | None:
        """Start the next eligible unit if the queue is allowed to move."""

        if (
            self.workflow.phase != WorkflowPhase.GENERATING_CHAPTERS
            or not self.auto_mode
            or self.active_task_id is not None
            or self.rewrite_request is not None
        ):
            return None

        candidate = self.tasks.first_with_status(TaskStatus.PENDING, TaskStatus.ERROR)
        if candidate is None:
            if not self.tasks.any_with_status(TaskStatus.GENERATING):
                self.auto_mode = False
                logger.info("All chapters processed; automatic generation off")
            return None

        if candidate.status == TaskStatus.ERROR:
            logger.info('Retrying failed chapter "%s"', candidate.title)
            self._update(candidate.id, status=TaskStatus.PENDING, content="", error_message=None)
        return self.run_unit(candidate.id)

    # ------------------------------------------------------------------
    # Running a unit
    # ------------------------------------------------------------------
    def run_unit(self, task_id: str, rewrite_instructions: str | None = None) -> asyncio.Task[None] | None:
        """Mark the unit as generating and schedule its stream.

        A fresh run of a unit that is already done or generating hands over to
        the next eligible unit instead. Returns the scheduled asyncio task, or
        ``None`` when nothing was started.
        """

        self.workflow.require(WorkflowPhase.GENERATING_CHAPTERS, action="generate a chapter")
        task = self._startable(task_id, rewrite_instructions)
        if task is None:
            return None
        is_rewrite = rewrite_instructions is not None
        if not is_rewrite and task.status in (TaskStatus.DONE, TaskStatus.GENERATING):
            return self.try_advance_queue()

        content = "" if is_rewrite or task.status == TaskStatus.PENDING else task.content
        self.active_task_id = task_id
        self._update(task_id, status=TaskStatus.GENERATING, error_message=None, content=content)
        logger.info('Generating chapter "%s"%s', task.title, " (rewrite)" if is_rewrite else "")

        loop = asyncio.get_running_loop()
        running = loop.create_task(self._generate(task_id, rewrite_instructions), name=f"kbook-chapter-{task_id}")
        self._running.add(running)
        running.add_done_callback(self._running.discard)
        return running

    def _startable(self, task_id: str, rewrite_instructions: str | None) -> ChapterTask | None:
        is_rewrite = rewrite_instructions is not None
        task = self.tasks.get(task_id)
        if task is None:
            logger.warning("Ignoring request for unknown chapter task %s", task_id)
            return None
        if self.context is None:
            logger.warning("Ignoring request for %s; no outline has been prepared", task_id)
            return None
        if is_rewrite and self.auto_mode:
            logger.info("Manual rewrite requested; pausing automatic generation")
            self.auto_mode = False
        if not is_rewrite and not self.auto_mode:
            return None
        if self.active_task_id is not None:
            logger.debug("Chapter %s already active; not starting %s", self.active_task_id, task_id)
            return None
        return task

    async def _generate(self, task_id: str, rewrite_instructions: str | None) -> None:
        context = self.context
        task = self.tasks.get(task_id)
        if context is None or task is None:
            # The task list was re-derived or cleared before the stream opened.
            logger.warning("Chapter task %s is gone; not generating", task_id)
            self._finish_unit(task_id, rewrite_instructions is not None)
            return
        accumulated = ""
        try:
            stream = await self.client.generate_chapter_stream(
                context.inputs,
                title=task.title,
                outline=task.outline,
                structure_json=context.structure_json,
                previous_chapters=self.continuity_context(task_id),
                reference_text=context.reference_text,
                rewrite_instructions=rewrite_instructions,
            )
            async for fragment in stream:
                accumulated += fragment
                self._update(task_id, content=accumulated)
            self._update(task_id, status=TaskStatus.DONE, content=accumulated.strip())
            logger.info('Chapter "%s" done (%s characters)', task.title, len(accumulated.strip()))
        except asyncio.CancelledError:
            logger.info('Chapter "%s" interrupted', task.title)
            raise
        except Exception as exc:
            message = str(exc) or DEFAULT_FAILURE_MESSAGE
            logger.error('Chapter "%s" failed: %s', task.title, message)
            self._update(task_id, status=TaskStatus.ERROR, error_message=message, content=accumulated)
            self.workflow.set_error(f"Error in chapter: {task.title}. {message}")
            self.auto_mode = False
        finally:
            self._finish_unit(task_id, rewrite_instructions is not None)

    def _finish_unit(self, task_id: str, was_rewrite: bool) -> None:
        if self.active_task_id == task_id:
            self.active_task_id = None
        request = self.rewrite_request
        if was_rewrite and request is not None and request.task_id == task_id:
            self.rewrite_request = None
            request = None
        if request is not None and request.instructions is not None:
            self._launch_rewrite(request)
            return
        self.try_advance_queue()

    def continuity_context(self, task_id: str) -> str:
        """Completed content of every strictly-earlier chapter, in order."""

        return "".join(
            f"Chapter: {task.title}\n{task.content}\n\n{CHAPTER_SEPARATOR}\n\n"
            for task in self.tasks.before(task_id)
            if task.status == TaskStatus.DONE and task.content
        )

    # ------------------------------------------------------------------
    # Rewrite requests
    # ------------------------------------------------------------------
    def request_rewrite(self, task_id: str) -> RewriteRequest:
        """Open a rewrite request for a chapter, pausing automatic generation."""

        self.workflow.require(WorkflowPhase.GENERATING_CHAPTERS, action="rewrite a chapter")
        task = self.tasks.get(task_id)
        if task is None:
            raise KeyError(task_id)
        if self.rewrite_request is not None and self.rewrite_request.task_id != task_id:
            raise PhaseError(f'A rewrite request for "{self.rewrite_request.chapter_title}" is already open.')
        if self.auto_mode:
            logger.info("Rewrite requested; pausing automatic generation")
            self.auto_mode = False
        if self.rewrite_request is None:
            self.rewrite_request = RewriteRequest(task_id=task.id, chapter_title=task.title)
        return self.rewrite_request

    def close_rewrite(self) -> None:
        """Dismiss an open rewrite request that has not been submitted."""

        request = self.rewrite_request
        if request is None or request.instructions is not None:
            return
        self.rewrite_request = None
        self.try_advance_queue()

    def submit_rewrite(self, instructions: str) -> asyncio.Task[None] | None:
        """Reset the requested chapter and regenerate it with ``instructions``.

        If another chapter is still streaming, the rewrite starts as soon as
        that stream finishes and ``None`` is returned.
        """

        request = self.rewrite_request
        if request is None:
            raise PhaseError("No rewrite request is open.")
        if not instructions or not instructions.strip():
            raise ValidationFailure("Rewrite instructions must not be empty.")
        if request.instructions is not None:
            raise PhaseError(f'A rewrite of "{request.chapter_title}" is already in progress.')
        request.instructions = instructions
        if self.active_task_id is not None:
            if request.task_id != self.active_task_id:
                self._reset_for_rewrite(request.task_id)
            logger.info('Rewrite of "%s" queued until the active chapter finishes', request.chapter_title)
            return None
        return self._launch_rewrite(request)

    def _reset_for_rewrite(self, task_id: str) -> None:
        self._update(task_id, status=TaskStatus.PENDING, content="", error_message=None)

    def _launch_rewrite(self, request: RewriteRequest) -> asyncio.Task[None] | None:
        self._reset_for_rewrite(request.task_id)
        started = self.run_unit(request.task_id, request.instructions)
        if started is None:
            self.rewrite_request = None
        return started

    # ------------------------------------------------------------------
    # Leaving the phase
    # ------------------------------------------------------------------
    def halt(self) -> None:
        """Stop the queue and interrupt any stream still in flight."""

        self.auto_mode = False
        self.rewrite_request = None
        self.active_task_id = None
        for task in self.tasks:
            if task.status == TaskStatus.GENERATING:
                self._update(task.id, status=TaskStatus.ERROR, error_message=INTERRUPTED_MESSAGE)
        for running in list(self._running):
            running.cancel()

    async def wait_until_idle(self) -> None:
        """Wait until no chapter stream is scheduled or running."""

        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)
