"""kbook: outline-first book generation on top of LangChain chat models."""

from .book import BookSession, GenerationMode, MockBookProvider, UserInputs, WorkflowPhase
from .config import KBookConfig, LLMConfig, RetryConfig
from .errors import (
    BookGenerationError,
    ConfigurationError,
    EmptyResponse,
    MalformedResponse,
    PhaseError,
    TransportFailure,
    ValidationFailure,
)
from .io import ReferenceFile, load_reference_files
from .paths import BookPathConfig, resolve_output_path

__all__ = [
    "BookGenerationError",
    "BookPathConfig",
    "BookSession",
    "ConfigurationError",
    "EmptyResponse",
    "GenerationMode",
    "KBookConfig",
    "LLMConfig",
    "MalformedResponse",
    "MockBookProvider",
    "PhaseError",
    "ReferenceFile",
    "RetryConfig",
    "TransportFailure",
    "UserInputs",
    "ValidationFailure",
    "WorkflowPhase",
    "load_reference_files",
    "resolve_output_path",
]
