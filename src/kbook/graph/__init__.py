"""LangGraph state definitions."""

from .states import OutlineGraphState

__all__ = ["OutlineGraphState"]
