from __future__ import annotations

import pytest

from kbook.book.models import WorkflowPhase
from kbook.book.workflow import CHAPTER_GUIDANCE, INPUT_GUIDANCE, OUTLINE_GUIDANCE, WorkflowState
from kbook.errors import PhaseError


def test_linear_path_through_phases() -> None:
    workflow = WorkflowState()

    for phase in (
        WorkflowPhase.GENERATING_OUTLINE,
        WorkflowPhase.REVIEWING_OUTLINE,
        WorkflowPhase.GENERATING_CHAPTERS,
        WorkflowPhase.VIEWING_RESULT,
    ):
        workflow.transition(phase)

    assert workflow.phase is WorkflowPhase.VIEWING_RESULT


def test_backward_edges_are_allowed() -> None:
    workflow = WorkflowState()
    workflow.transition(WorkflowPhase.GENERATING_OUTLINE)
    workflow.transition(WorkflowPhase.REVIEWING_OUTLINE)
    workflow.transition(WorkflowPhase.GENERATING_CHAPTERS)

    workflow.transition(WorkflowPhase.REVIEWING_OUTLINE)
    workflow.transition(WorkflowPhase.COLLECTING_INPUT)

    assert workflow.phase is WorkflowPhase.COLLECTING_INPUT


def test_illegal_transition_raises() -> None:
    workflow = WorkflowState()

    with pytest.raises(PhaseError):
        workflow.transition(WorkflowPhase.GENERATING_CHAPTERS)
    with pytest.raises(PhaseError, match="expected reviewing_outline"):
        workflow.require(WorkflowPhase.REVIEWING_OUTLINE, action="regenerate the outline")


def test_banner_guidance_follows_phase() -> None:
    workflow = WorkflowState()
    assert workflow.banner() is None

    workflow.set_error("boom")
    assert workflow.banner().guidance == INPUT_GUIDANCE

    workflow.transition(WorkflowPhase.GENERATING_OUTLINE)
    assert workflow.banner().guidance == OUTLINE_GUIDANCE

    workflow.transition(WorkflowPhase.REVIEWING_OUTLINE)
    workflow.transition(WorkflowPhase.GENERATING_CHAPTERS)
    banner = workflow.banner()
    assert banner.message == "boom"
    assert banner.guidance == CHAPTER_GUIDANCE

    workflow.clear_error()
    assert workflow.banner() is None


def test_reset_returns_to_initial_state() -> None:
    workflow = WorkflowState()
    workflow.transition(WorkflowPhase.GENERATING_OUTLINE)
    workflow.is_loading_outline = True
    workflow.set_error("boom")

    workflow.reset()

    assert workflow.phase is WorkflowPhase.COLLECTING_INPUT
    assert workflow.error is None
    assert not workflow.is_loading_outline
