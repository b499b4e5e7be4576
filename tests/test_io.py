from __future__ import annotations

from pathlib import Path

import pytest

from kbook.io import (
    ReferenceFile,
    compile_document,
    export_filename,
    format_reference_texts,
    load_reference_files,
    write_document,
)


def test_load_reference_files_reads_text_and_markdown(tmp_path: Path) -> None:
    notes = tmp_path / "notes.txt"
    notes.write_text("plain notes", encoding="utf-8")
    style = tmp_path / "style.md"
    style.write_text("# Style\nShort sentences.", encoding="utf-8")

    files = load_reference_files([notes, str(style)])

    assert files == [
        ReferenceFile(name="notes.txt", content="plain notes"),
        ReferenceFile(name="style.md", content="# Style\nShort sentences."),
    ]


def test_load_reference_files_rejects_missing_and_unsupported(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_reference_files([tmp_path / "absent.txt"])

    binary = tmp_path / "scan.pdf"
    binary.write_bytes(b"%PDF-1.4")
    with pytest.raises(ValueError):
        load_reference_files([binary])


def test_format_reference_texts_uses_headers_and_separator() -> None:
    files = [ReferenceFile("a.txt", "alpha"), ReferenceFile("b.md", "beta")]

    text = format_reference_texts(files)

    assert text == "Reference File: a.txt\nContent:\nalpha\n\n---\n\nReference File: b.md\nContent:\nbeta"
    assert format_reference_texts([]) == ""


def test_compile_document_joins_title_and_chapters() -> None:
    document = compile_document("My Book", ["## One\n\nFirst.", "", "## Two\n\nSecond."])

    assert document == "# My Book\n\n## One\n\nFirst.\n\n## Two\n\nSecond."
    assert compile_document(None, ["## Only"]) == "## Only"


def test_export_filename_is_safe() -> None:
    assert export_filename("The Art of Tea: A Journey!") == "the_art_of_tea__a_journey_.md"
    assert export_filename(None) == "book.md"
    assert export_filename("") == "book.md"


def test_write_document_creates_directory(tmp_path: Path) -> None:
    target = write_document(tmp_path / "out", "Tea", "# Tea")

    assert target == tmp_path / "out" / "tea.md"
    assert target.read_text(encoding="utf-8") == "# Tea"
