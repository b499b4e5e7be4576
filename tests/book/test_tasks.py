from __future__ import annotations

import json

import pytest

from kbook.book.models import BookStructure, TaskStatus
from kbook.book.tasks import TaskStore, flatten_structure, sanitize_task_key


def _structure() -> BookStructure:
    return BookStructure.from_mapping(
        {
            "Origins of Tea": "Where tea came from.",
            "Processing": {"Withering": "Drying leaves.", "Rolling": "Shaping leaves."},
            "¿Qué?": "Non-ASCII title.",
        }
    )


def test_sanitize_task_key() -> None:
    assert sanitize_task_key("Origins of  Tea") == "Origins-of-Tea"
    assert sanitize_task_key("Part 1: Roots!") == "Part-1-Roots"
    assert sanitize_task_key("日本語") == "chapter"


def test_flatten_structure_one_pending_task_per_top_level_key() -> None:
    tasks = flatten_structure(_structure(), token="batch")

    assert [task.title for task in tasks] == ["Origins of Tea", "Processing", "¿Qué?"]
    assert [task.id for task in tasks] == ["Origins-of-Tea-batch-0", "Processing-batch-1", "Qu-batch-2"]
    assert all(task.status is TaskStatus.PENDING and task.content == "" for task in tasks)
    assert tasks[0].outline == "Where tea came from."
    assert json.loads(tasks[1].outline) == {"Withering": "Drying leaves.", "Rolling": "Shaping leaves."}
    assert tasks[1].path == ("Processing",)


def test_flatten_structure_ids_unique_across_derivations() -> None:
    first = {task.id for task in flatten_structure(_structure())}
    second = {task.id for task in flatten_structure(_structure())}

    assert len(first) == 3
    assert first.isdisjoint(second)


def test_task_store_replaces_entries_by_id() -> None:
    tasks = flatten_structure(_structure(), token="t")
    store = TaskStore(tasks)

    updated = store.update(tasks[1].id, status=TaskStatus.DONE, content="Body")

    assert store.get(tasks[1].id) is updated
    assert [task.id for task in store] == [task.id for task in tasks]
    assert [task.id for task in store.before(tasks[2].id)] == [tasks[0].id, tasks[1].id]
    assert store.before(tasks[0].id) == []
    assert store.first_with_status(TaskStatus.DONE) == updated
    assert store.first_with_status(TaskStatus.ERROR) is None
    assert store.count(TaskStatus.PENDING) == 2
    assert store.any_with_status(TaskStatus.DONE)
    assert tasks[0].id in store


def test_task_store_reset_replaces_sequence() -> None:
    store = TaskStore(flatten_structure(_structure(), token="old"))
    fresh = flatten_structure(_structure(), token="new")

    store.reset(fresh)

    assert store.all() == fresh
    with pytest.raises(KeyError):
        store.update("Processing-old-1", status=TaskStatus.DONE)
    store.clear()
    assert len(store) == 0
