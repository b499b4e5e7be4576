"""Prompt templates for the structure, title and chapter calls."""

from __future__ import annotations

import textwrap
from string import Template

from .models import UserInputs

__all__ = [
    "CHAPTER_SEPARATOR",
    "NO_REFERENCE_TEXTS",
    "build_structure_prompt",
    "build_title_prompt",
    "build_chapter_prompt",
]

CHAPTER_SEPARATOR = "---END OF PREVIOUS CHAPTER---"
NO_REFERENCE_TEXTS = "No reference texts provided by the user."
NO_PREVIOUS_CHAPTERS = "No chapters written yet."
NOT_A_REGENERATION = (
    "None (this is not a regeneration request or no specific changes were requested for regeneration)."
)
NOT_A_REWRITE = (
    "None (this is not a rewrite request or no specific instructions were provided for this chapter)."
)

STRUCTURE_TEMPLATE = Template(
    textwrap.dedent(
        """
        Respond with JSON only. The whole response must be one complete, valid JSON object with
        balanced braces and correct commas. Do not write anything outside that object.

        The outline must contain exactly ${chapter_count} top-level sections; each top-level section
        becomes one chapter of the book. Do not produce more or fewer top-level sections.

        Example for a two chapter request:
        {"Title of section 1": "Description of section 1",
         "Title of section 2": {"Sub-section A": "Description of A", "Sub-section B": "Description of B"}}

        Write a comprehensive outline with exactly ${chapter_count} top-level sections. Leave out
        introductions, forewords, author's notes and summaries. Sections may contain sub-sections, but
        sub-sections must not contain further sub-sections. Give every section a clear title and a
        description; together they must cover the subject without overlapping.

        Write the output in this language: ${language}.

        <subject>${subject}</subject>

        Reference texts (use them as background on the subject and the desired style when present):
        <reference_texts>
        ${reference_texts}
        </reference_texts>

        Additional instructions:
        ${additional_info}

        When this is a regeneration request, revise the WHOLE outline according to this feedback:
        <user_feedback_on_previous_outline>
        ${outline_feedback}
        </user_feedback_on_previous_outline>
        """
    ).strip()
)

TITLE_TEMPLATE = Template(
    textwrap.dedent(
        """
        Write one title for a book on the subject and outline below. Reply with the title alone: no
        explanation, no quotes, no extra symbols. The title must be between 7 and 25 words long and
        should be attractive to readers.

        Write the output in this language: ${language}.

        <subject>${subject}</subject>

        <book_structure>
        ${book_structure}
        </book_structure>

        Reference texts (use them as background when present):
        <reference_texts>
        ${reference_texts}
        </reference_texts>

        Additional instructions:
        ${additional_info}

        When this is a regeneration request, let this feedback shape the title as well:
        <user_feedback_on_previous_outline>
        ${outline_feedback}
        </user_feedback_on_previous_outline>
        """
    ).strip()
)

CHAPTER_TEMPLATE = Template(
    textwrap.dedent(
        """
        You are an expert writer producing one complete chapter of a book.
        Start the output with the chapter title as a level 2 Markdown heading ("## ${chapter_title}")
        and follow it directly with the chapter body. Do not add any preamble, commentary or text other
        than the heading and the chapter itself; the output is inserted into the book as is.

        Target length of the body: about ${chapter_length} words.
        Target reading complexity on a 1 to 10 scale (10 is most advanced): ${reading_level}.

        Language: ${language}
        Subject of the book: ${subject}
        Additional instructions for the book: ${additional_info}

        Reference texts (use them for facts, background and style when present):
        <reference_texts>
        ${reference_texts}
        </reference_texts>

        Chapter title: ${chapter_title}
        Chapter outline (description and sub-sections of THIS chapter):
        ${chapter_outline}

        Outline of the whole book (to place this chapter in context):
        ${book_structure}

        Instructions specific to writing or rewriting this chapter (they take priority):
        <rewrite_instructions>
        ${rewrite_instructions}
        </rewrite_instructions>

        Chapters written so far (each one ends with the "${separator}" marker):
        ${previous_chapters}
        ${separator}
        """
    ).strip()
)


def _reference_or_default(reference_text: str | None) -> str:
    if reference_text and reference_text.strip():
        return reference_text
    return NO_REFERENCE_TEXTS


def build_structure_prompt(inputs: UserInputs, reference_text: str | None = None) -> str:
    return STRUCTURE_TEMPLATE.safe_substitute(
        chapter_count=inputs.chapter_count,
        language=inputs.language,
        subject=inputs.subject,
        reference_texts=_reference_or_default(reference_text),
        additional_info=inputs.additional_info or "None",
        outline_feedback=inputs.outline_feedback or NOT_A_REGENERATION,
    )


def build_title_prompt(inputs: UserInputs, structure_json: str, reference_text: str | None = None) -> str:
    return TITLE_TEMPLATE.safe_substitute(
        language=inputs.language,
        subject=inputs.subject,
        book_structure=structure_json,
        reference_texts=_reference_or_default(reference_text),
        additional_info=inputs.additional_info or "None",
        outline_feedback=inputs.outline_feedback or NOT_A_REGENERATION,
    )


def build_chapter_prompt(
    inputs: UserInputs,
    *,
    chapter_title: str,
    chapter_outline: str,
    structure_json: str,
    previous_chapters: str,
    reference_text: str | None = None,
    rewrite_instructions: str | None = None,
) -> str:
    return CHAPTER_TEMPLATE.safe_substitute(
        chapter_title=chapter_title,
        chapter_length=inputs.chapter_length,
        reading_level=inputs.reading_level,
        language=inputs.language,
        subject=inputs.subject,
        additional_info=inputs.additional_info or "None",
        reference_texts=_reference_or_default(reference_text),
        chapter_outline=chapter_outline,
        book_structure=structure_json,
        rewrite_instructions=rewrite_instructions or NOT_A_REWRITE,
        previous_chapters=previous_chapters or NO_PREVIOUS_CHAPTERS,
        separator=CHAPTER_SEPARATOR,
    )
