"""Turn an approved outline into chapter tasks and keep them by identifier."""

from __future__ import annotations

import re
import uuid
from collections import OrderedDict
from dataclasses import replace
from typing import Any, Iterator, Sequence

from .models import BookStructure, ChapterTask, TaskStatus

__all__ = [
    "TaskStore",
    "flatten_structure",
    "sanitize_task_key",
]

WHITESPACE_PATTERN = re.compile(r"\s+")
INVALID_KEY_PATTERN = re.compile(r"[^a-zA-Z0-9-]")


def sanitize_task_key(title: str) -> str:
    """Reduce a section title to ASCII letters, digits and hyphens."""

    hyphenated = WHITESPACE_PATTERN.sub("-", title)
    return INVALID_KEY_PATTERN.sub("", hyphenated) or "chapter"


def flatten_structure(structure: BookStructure, *, token: str | None = None) -> list[ChapterTask]:
    """Produce one pending task per top-level section, in outline order.

    ``token`` is shared by every task of one derivation; together with the
    sequence index it keeps identifiers unique when titles sanitise to the
    same key.
    """

    batch = token or uuid.uuid4().hex[:12]
    tasks: list[ChapterTask] = []
    for order, section in enumerate(structure):
        tasks.append(
            ChapterTask(
                id=f"{sanitize_task_key(section.title)}-{batch}-{order}",
                title=section.title,
                outline=section.payload(),
                path=(section.title,),
            )
        )
    return tasks


class TaskStore:
    """Ordered collection of tasks keyed by their stable identifier.

    Tasks are immutable; every mutation replaces the entry stored under the
    task's identifier and leaves the order untouched.
    """

    def __init__(self, tasks: Sequence[ChapterTask] = ()) -> None:
        self._tasks: OrderedDict[str, ChapterTask] = OrderedDict()
        self.reset(tasks)

    def reset(self, tasks: Sequence[ChapterTask]) -> None:
        self._tasks = OrderedDict((task.id, task) for task in tasks)

    def clear(self) -> None:
        self._tasks.clear()

    def get(self, task_id: str) -> ChapterTask | None:
        return self._tasks.get(task_id)

    def update(self, task_id: str, **changes: Any) -> ChapterTask:
        current = self._tasks[task_id]
        updated = replace(current, **changes)
        self._tasks[task_id] = updated
        return updated

    def before(self, task_id: str) -> list[ChapterTask]:
        """Tasks strictly earlier in sequence than ``task_id``."""

        earlier: list[ChapterTask] = []
        for key, task in self._tasks.items():
            if key == task_id:
                return earlier
            earlier.append(task)
        raise KeyError(task_id)

    def first_with_status(self, *statuses: TaskStatus) -> ChapterTask | None:
        for task in self._tasks.values():
            if task.status in statuses:
                return task
        return None

    def count(self, status: TaskStatus) -> int:
        return sum(1 for task in self._tasks.values() if task.status == status)

    def any_with_status(self, status: TaskStatus) -> bool:
        return any(task.status == status for task in self._tasks.values())

    def all(self) -> list[ChapterTask]:
        return list(self._tasks.values())

    def __iter__(self) -> Iterator[ChapterTask]:
        return iter(list(self._tasks.values()))

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks
