"""Book generation workflow: outline, chapter tasks and the session facade."""

from .client import GenerationClient, parse_structured_result
from .mock import MockBookProvider
from .models import (
    AVAILABLE_LANGUAGES,
    BookStructure,
    ChapterTask,
    GenerationMode,
    Group,
    Leaf,
    TaskStatus,
    UserInputs,
    WorkflowPhase,
)
from .orchestrator import ChapterOrchestrator, ChapterProgress, GenerationContext, RewriteRequest
from .outline import OutlineController
from .session import BookSession
from .tasks import TaskStore, flatten_structure
from .workflow import ErrorBanner, WorkflowState

__all__ = [
    "AVAILABLE_LANGUAGES",
    "BookSession",
    "BookStructure",
    "ChapterOrchestrator",
    "ChapterProgress",
    "ChapterTask",
    "ErrorBanner",
    "GenerationClient",
    "GenerationContext",
    "GenerationMode",
    "Group",
    "Leaf",
    "MockBookProvider",
    "OutlineController",
    "RewriteRequest",
    "TaskStatus",
    "TaskStore",
    "UserInputs",
    "WorkflowPhase",
    "WorkflowState",
    "flatten_structure",
    "parse_structured_result",
]
