"""Typed state definitions for the kbook LangGraph workflows."""

from __future__ import annotations

from typing import Any, TypedDict


class OutlineGraphState(TypedDict, total=False):
    """State passed between the structure and title nodes of one attempt."""

    # request (kbook.book.models.UserInputs)
    inputs: Any
    reference_text: str

    # structure node outputs (structure is a kbook.book.models.BookStructure)
    raw_structure: str
    structure: Any

    # title node output
    title: str


__all__ = ["OutlineGraphState"]
