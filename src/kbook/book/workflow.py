"""Top-level phase sequencing and the shared error banner."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import PhaseError
from .models import WorkflowPhase

logger = logging.getLogger(__name__)

__all__ = ["ErrorBanner", "WorkflowState", "ALLOWED_TRANSITIONS"]

ALLOWED_TRANSITIONS: dict[WorkflowPhase, frozenset[WorkflowPhase]] = {
    WorkflowPhase.COLLECTING_INPUT: frozenset({WorkflowPhase.GENERATING_OUTLINE}),
    WorkflowPhase.GENERATING_OUTLINE: frozenset(
        {WorkflowPhase.REVIEWING_OUTLINE, WorkflowPhase.COLLECTING_INPUT}
    ),
    WorkflowPhase.REVIEWING_OUTLINE: frozenset(
        {
            WorkflowPhase.REVIEWING_OUTLINE,
            WorkflowPhase.GENERATING_CHAPTERS,
            WorkflowPhase.COLLECTING_INPUT,
        }
    ),
    WorkflowPhase.GENERATING_CHAPTERS: frozenset(
        {WorkflowPhase.VIEWING_RESULT, WorkflowPhase.REVIEWING_OUTLINE}
    ),
    WorkflowPhase.VIEWING_RESULT: frozenset(),
}

OUTLINE_GUIDANCE = (
    "Outline generation failed. You might want to adjust inputs or try again. Retries were attempted."
)
CHAPTER_GUIDANCE = (
    "Chapter generation encountered an issue. Automatic generation may have stopped. "
    "Review completed chapters or try rewriting. Retries were attempted for the failed chapter."
)
INPUT_GUIDANCE = (
    "Please review your inputs or try again. If the problem persists, check your API key or network connection."
)


@dataclass(frozen=True, slots=True)
class ErrorBanner:
    message: str
    guidance: str | None = None


class WorkflowState:
    """Owns the current phase; the only writer of phase transitions.

    Besides the phase it keeps the latest error message shown in the banner
    and the two outline loading flags (first-time generation and the
    regeneration sub-flag of the review phase).
    """

    def __init__(self) -> None:
        self.phase = WorkflowPhase.COLLECTING_INPUT
        self.error: str | None = None
        self.is_loading_outline = False
        self.is_regenerating_outline = False

    def transition(self, target: WorkflowPhase) -> None:
        allowed = ALLOWED_TRANSITIONS[self.phase]
        if target not in allowed:
            raise PhaseError(f"Cannot move from '{self.phase.value}' to '{target.value}'.")
        if target != self.phase:
            logger.info("Workflow phase %s -> %s", self.phase.value, target.value)
        self.phase = target

    def require(self, *phases: WorkflowPhase, action: str) -> None:
        if self.phase not in phases:
            expected = ", ".join(phase.value for phase in phases)
            raise PhaseError(f"Cannot {action} while '{self.phase.value}'; expected {expected}.")

    def set_error(self, message: str) -> None:
        self.error = message

    def clear_error(self) -> None:
        self.error = None

    def banner(self) -> ErrorBanner | None:
        if not self.error:
            return None
        return ErrorBanner(self.error, self._guidance())

    def _guidance(self) -> str | None:
        outline_busy = self.is_loading_outline or self.is_regenerating_outline
        if self.phase in (WorkflowPhase.GENERATING_OUTLINE, WorkflowPhase.REVIEWING_OUTLINE):
            return OUTLINE_GUIDANCE
        if self.phase == WorkflowPhase.GENERATING_CHAPTERS:
            return CHAPTER_GUIDANCE
        if self.phase == WorkflowPhase.COLLECTING_INPUT:
            return OUTLINE_GUIDANCE if outline_busy else INPUT_GUIDANCE
        return None

    def reset(self) -> None:
        logger.info("Workflow reset to '%s'", WorkflowPhase.COLLECTING_INPUT.value)
        self.phase = WorkflowPhase.COLLECTING_INPUT
        self.error = None
        self.is_loading_outline = False
        self.is_regenerating_outline = False
