"""Path helpers for exported books."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

__all__ = [
    "DEFAULT_OUTPUT_ROOT",
    "BookPathConfig",
    "resolve_output_path",
    "ensure_directory",
]

DEFAULT_OUTPUT_ROOT = Path(os.getenv("KBOOK_OUTPUT_ROOT", "outputs")) / "books"


def _normalise(path: Path | str) -> Path:
    return Path(path).expanduser()


def ensure_directory(path: Path | str) -> Path:
    resolved = _normalise(path)
    resolved.mkdir(parents=True, exist_ok=True)
    return resolved


def resolve_output_path(path: Path | str | None = None, *, create: bool = True) -> Path:
    candidate = _normalise(path or DEFAULT_OUTPUT_ROOT)
    if create:
        candidate.mkdir(parents=True, exist_ok=True)
    return candidate


@dataclass(slots=True)
class BookPathConfig:
    """Where compiled books are written."""

    output_path: Path = DEFAULT_OUTPUT_ROOT
    create_output: bool = True
