"""Reference-file loading and book export helpers."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

from .paths import ensure_directory

logger = logging.getLogger(__name__)

__all__ = [
    "ReferenceFile",
    "load_reference_files",
    "format_reference_texts",
    "compile_document",
    "export_filename",
    "write_document",
]

SUPPORTED_REFERENCE_SUFFIXES = {".txt", ".md", ".markdown"}
REFERENCE_SEPARATOR = "\n\n---\n\n"
UNSAFE_FILENAME_PATTERN = re.compile(r"[^a-z0-9]", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class ReferenceFile:
    """Text supplied by the user as background material."""

    name: str
    content: str


def load_reference_files(paths: Iterable[Path | str], *, encoding: str = "utf-8") -> list[ReferenceFile]:
    """Read plain-text or Markdown reference files in the given order."""

    loaded: list[ReferenceFile] = []
    for raw_path in paths:
        path = Path(raw_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Reference file not found: {path}")
        if path.suffix.lower() not in SUPPORTED_REFERENCE_SUFFIXES:
            raise ValueError(f"Unsupported reference file format for {path}; use .txt or .md")
        loaded.append(ReferenceFile(name=path.name, content=path.read_text(encoding=encoding)))
        logger.debug("Loaded reference file %s", path)
    return loaded


def format_reference_texts(files: Sequence[ReferenceFile]) -> str:
    """Concatenate reference files with a header per file; empty when none."""

    return REFERENCE_SEPARATOR.join(
        f"Reference File: {item.name}\nContent:\n{item.content}" for item in files
    )


def compile_document(title: str | None, chapters: Iterable[str]) -> str:
    """Title heading followed by the chapter bodies, separated by blank lines.

    Each chapter is expected to carry its own heading already.
    """

    parts: list[str] = []
    if title:
        parts.append(f"# {title}")
    parts.extend(chapter for chapter in chapters if chapter)
    return "\n\n".join(parts).strip()


def export_filename(title: str | None) -> str:
    stem = UNSAFE_FILENAME_PATTERN.sub("_", title).lower() if title else "book"
    return f"{stem}.md"


def write_document(directory: Path | str, title: str | None, document: str) -> Path:
    target_dir = ensure_directory(directory)
    target = target_dir / export_filename(title)
    target.write_text(document, encoding="utf-8")
    logger.info("Wrote book to %s", target)
    return target
