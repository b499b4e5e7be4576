"""Data model shared by the outline, task and orchestration components."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import MalformedResponse, ValidationFailure

__all__ = [
    "AVAILABLE_LANGUAGES",
    "READING_LEVEL_LABELS",
    "MIN_CHAPTER_LENGTH",
    "MAX_CHAPTER_LENGTH",
    "MIN_CHAPTERS",
    "MAX_CHAPTERS",
    "GenerationMode",
    "UserInputs",
    "Leaf",
    "Group",
    "Section",
    "BookStructure",
    "TaskStatus",
    "ChapterTask",
    "WorkflowPhase",
    "reading_level_label",
]

AVAILABLE_LANGUAGES: dict[str, str] = {
    "en": "English",
    "es": "Español",
    "fr": "Français",
    "de": "Deutsch",
    "ja": "日本語",
    "zh": "中文",
}

READING_LEVEL_LABELS: dict[int, str] = {
    2: "Kindergarten",
    4: "Middle School",
    5: "Standard",
    6: "Adult",
    7: "High School",
    8: "College",
    10: "Graduate School",
}

MIN_CHAPTER_LENGTH = 200
MAX_CHAPTER_LENGTH = 20000
DEFAULT_CHAPTER_LENGTH = 7000
MIN_CHAPTERS = 6
MAX_CHAPTERS = 20
DEFAULT_CHAPTERS = 12
DEFAULT_READING_LEVEL = 5


def reading_level_label(value: int) -> str:
    """Return the descriptive label for a reading level, approximating when needed."""

    exact = READING_LEVEL_LABELS.get(value)
    if exact is not None:
        return exact
    closest = min(READING_LEVEL_LABELS, key=lambda level: abs(level - value))
    return f"~{READING_LEVEL_LABELS[closest]} (Level {value}/10)"


class GenerationMode(str, Enum):
    """Quality mode selecting the backing model."""

    FAST = "fast"
    HIGH_QUALITY = "high-quality"


class UserInputs(BaseModel):
    """Generation parameters supplied with one form submission."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    subject: str = Field(..., description="What the book is about.")
    language: str = Field(default="en", description="Language code the book is written in.")
    additional_info: str = Field(default="", description="Free-text instructions applied to every call.")
    generation_mode: GenerationMode = Field(default=GenerationMode.FAST)
    chapter_length: int = Field(
        default=DEFAULT_CHAPTER_LENGTH,
        ge=MIN_CHAPTER_LENGTH,
        le=MAX_CHAPTER_LENGTH,
        description="Target word count per chapter body.",
    )
    reading_level: int = Field(default=DEFAULT_READING_LEVEL, ge=1, le=10)
    chapter_count: int = Field(default=DEFAULT_CHAPTERS, ge=MIN_CHAPTERS, le=MAX_CHAPTERS)
    outline_feedback: Optional[str] = Field(
        default=None,
        description="Revision request attached only when regenerating the outline.",
    )

    @field_validator("subject")
    @classmethod
    def _subject_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("subject must not be blank")
        return value

    @field_validator("language")
    @classmethod
    def _language_supported(cls, value: str) -> str:
        if value not in AVAILABLE_LANGUAGES:
            raise ValueError(f"unsupported language '{value}'")
        return value

    @classmethod
    def from_form(cls, **data: Any) -> "UserInputs":
        """Build inputs from raw form values, reporting violations as :class:`ValidationFailure`."""

        try:
            return cls(**data)
        except ValidationError as exc:
            raise ValidationFailure(str(exc)) from exc

    def with_outline_feedback(self, feedback: str | None) -> "UserInputs":
        return self.model_copy(update={"outline_feedback": feedback or None})


@dataclass(frozen=True, slots=True)
class Leaf:
    """Outline section carrying a plain description."""

    title: str
    description: str

    def payload(self) -> str:
        return self.description

    def to_value(self) -> str:
        return self.description


@dataclass(frozen=True, slots=True)
class Group:
    """Outline section split into one level of leaf sub-sections."""

    title: str
    children: tuple[Leaf, ...]

    def payload(self) -> str:
        return _canonical_json(self.to_value())

    def to_value(self) -> dict[str, str]:
        return {child.title: child.description for child in self.children}


Section = Leaf | Group


def _canonical_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2, default=str)


@dataclass(frozen=True, slots=True)
class BookStructure:
    """Ordered outline of the book; at most two levels deep."""

    sections: tuple[Section, ...]

    @classmethod
    def from_mapping(cls, data: Any) -> "BookStructure":
        """Validate a decoded outline payload and convert it into sections."""

        if not isinstance(data, Mapping):
            raise MalformedResponse(
                f"Outline must be a JSON object, got {type(data).__name__}.",
                raw_text=_canonical_json(data),
            )
        sections: list[Section] = []
        for title, value in data.items():
            if isinstance(value, str):
                sections.append(Leaf(str(title), value))
                continue
            if isinstance(value, Mapping):
                children: list[Leaf] = []
                for child_title, child_value in value.items():
                    if isinstance(child_value, Mapping):
                        raise MalformedResponse(
                            f"Section '{title}' nests deeper than one level at '{child_title}'.",
                            raw_text=_canonical_json(data),
                        )
                    if not isinstance(child_value, str):
                        raise MalformedResponse(
                            f"Sub-section '{child_title}' of '{title}' must be a description string.",
                            raw_text=_canonical_json(data),
                        )
                    children.append(Leaf(str(child_title), child_value))
                sections.append(Group(str(title), tuple(children)))
                continue
            raise MalformedResponse(
                f"Section '{title}' must be a description string or an object of sub-sections.",
                raw_text=_canonical_json(data),
            )
        return cls(tuple(sections))

    def to_mapping(self) -> dict[str, Any]:
        return {section.title: section.to_value() for section in self.sections}

    def to_json(self) -> str:
        """Canonical text form used verbatim as generation context."""

        return _canonical_json(self.to_mapping())

    def titles(self) -> list[str]:
        return [section.title for section in self.sections]

    def __iter__(self) -> Iterator[Section]:
        return iter(self.sections)

    def __len__(self) -> int:
        return len(self.sections)


class TaskStatus(str, Enum):
    PENDING = "pending"
    GENERATING = "generating"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ChapterTask:
    """One top-level outline entry and the state of its generation job."""

    id: str
    title: str
    outline: str
    path: tuple[str, ...]
    status: TaskStatus = TaskStatus.PENDING
    content: str = ""
    error_message: str | None = None


class WorkflowPhase(str, Enum):
    COLLECTING_INPUT = "collecting_input"
    GENERATING_OUTLINE = "generating_outline"
    REVIEWING_OUTLINE = "reviewing_outline"
    GENERATING_CHAPTERS = "generating_chapters"
    VIEWING_RESULT = "viewing_result"
