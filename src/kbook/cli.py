"""Command line interface for the kbook book generation workflow."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import Callable, Sequence

from dotenv import load_dotenv

from .book import (
    AVAILABLE_LANGUAGES,
    BookSession,
    ChapterTask,
    GenerationMode,
    MockBookProvider,
    TaskStatus,
    UserInputs,
)
from .book.models import (
    DEFAULT_CHAPTER_LENGTH,
    DEFAULT_CHAPTERS,
    DEFAULT_READING_LEVEL,
    reading_level_label,
)
from .config import KBookConfig
from .io import load_reference_files

__all__ = ["main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
REVIEW_HELP = "Type 'approve', 'regenerate [feedback]', 'back' or 'quit'."


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kbook",
        description="Generate a book: outline first, then chapter by chapter with continuity context.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
        allow_abbrev=False,
    )
    subparsers = parser.add_subparsers(dest="command")

    for name, help_text in [
        ("outline", "Generate a book outline and title and print them."),
        ("write", "Generate the outline, then write every chapter and export the book."),
    ]:
        sub = subparsers.add_parser(
            name,
            help=help_text,
            formatter_class=argparse.ArgumentDefaultsHelpFormatter,
            allow_abbrev=False,
        )
        _register_shared_arguments(sub)
        if name == "write":
            sub.add_argument(
                "--review",
                action="store_true",
                help="Review the outline interactively before chapters are written.",
            )
            sub.add_argument(
                "--stream",
                action="store_true",
                help="Print chapter text as it is generated.",
            )

    return parser


def _register_shared_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--subject", required=True, help="What the book is about.")
    parser.add_argument(
        "--language",
        default="en",
        choices=sorted(AVAILABLE_LANGUAGES),
        help="Language the book is written in.",
    )
    parser.add_argument(
        "--mode",
        default=GenerationMode.FAST.value,
        choices=[mode.value for mode in GenerationMode],
        help="Generation mode; selects the fast or the high-quality model.",
    )
    parser.add_argument(
        "--chapter-length",
        dest="chapter_length",
        type=int,
        default=DEFAULT_CHAPTER_LENGTH,
        help="Target words per chapter (200-20000).",
    )
    parser.add_argument(
        "--reading-level",
        dest="reading_level",
        type=int,
        default=DEFAULT_READING_LEVEL,
        help="Reading complexity from 1 to 10.",
    )
    parser.add_argument(
        "--chapters",
        type=int,
        default=DEFAULT_CHAPTERS,
        help="Number of chapters (6-20).",
    )
    parser.add_argument(
        "--instructions",
        default="",
        help="Additional instructions applied to every generation call.",
    )
    parser.add_argument(
        "--reference",
        action="append",
        default=[],
        help="Reference .txt or .md file; may be given several times.",
    )
    parser.add_argument(
        "--provider",
        default="mock",
        choices=["mock", "openai"],
        help="LLM provider to use.",
    )
    parser.add_argument(
        "--base-url",
        dest="base_url",
        default=None,
        help="Optional base URL for API-compatible providers.",
    )
    parser.add_argument(
        "--api-key-env",
        dest="api_key_env",
        default=None,
        help="Environment variable containing the provider API key.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for deterministic mock outputs.",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Directory where the compiled book is written.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )


def _build_config(args: argparse.Namespace) -> KBookConfig:
    config = KBookConfig()
    llm = config.llm
    if args.base_url:
        llm = replace(llm, base_url=args.base_url)
    if args.api_key_env:
        llm = replace(llm, api_key_env=args.api_key_env)
    return replace(config, llm=llm)


def _build_inputs(args: argparse.Namespace) -> UserInputs:
    return UserInputs.from_form(
        subject=args.subject,
        language=args.language,
        additional_info=args.instructions,
        generation_mode=args.mode,
        chapter_length=args.chapter_length,
        reading_level=args.reading_level,
        chapter_count=args.chapters,
    )


def _build_session(args: argparse.Namespace, config: KBookConfig) -> BookSession:
    if args.provider == "mock":
        provider = MockBookProvider(config.llm.fast_model, seed=args.seed)
        return BookSession.from_config(config, provider=provider)
    return BookSession.from_config(config)


def _print_outline(session: BookSession) -> None:
    print(f"Title: {session.title}")
    print(session.structure.to_json() if session.structure else "{}")


async def _acquire(session: BookSession, args: argparse.Namespace) -> bool:
    inputs = _build_inputs(args)
    references = load_reference_files(args.reference)
    logger.info(
        "Requesting %s chapters in '%s' at reading level %s",
        inputs.chapter_count,
        inputs.language,
        reading_level_label(inputs.reading_level),
    )
    if await session.submit_inputs(inputs, references):
        return True
    _report_banner(session)
    return False


def _report_banner(session: BookSession) -> None:
    banner = session.banner
    if banner is None:
        return
    print(f"Error: {banner.message}", file=sys.stderr)
    if banner.guidance:
        print(banner.guidance, file=sys.stderr)


async def _review(session: BookSession) -> bool:
    """Interactive outline review; returns ``False`` when the user quits."""

    while True:
        _print_outline(session)
        answer = input(f"{REVIEW_HELP}\n> ").strip()
        command, _, argument = answer.partition(" ")
        command = command.lower()
        if command in {"", "approve", "a"}:
            return True
        if command in {"quit", "q"}:
            return False
        if command in {"regenerate", "r"}:
            if not await session.regenerate_outline(argument.strip() or None):
                _report_banner(session)
            continue
        if command in {"back", "b"}:
            inputs = session.inputs
            references = list(session.reference_files)
            session.back_to_inputs()
            subject = input(f"Subject [{inputs.subject}]: ").strip() or inputs.subject
            fresh = inputs.model_copy(update={"subject": subject, "outline_feedback": None})
            if not await session.submit_inputs(fresh, references):
                _report_banner(session)
                return False
            continue
        print(REVIEW_HELP)


def _stream_printer() -> Callable[[ChapterTask], None]:
    printed: dict[str, int] = {}

    def listener(task: ChapterTask) -> None:
        seen = printed.get(task.id, 0)
        if task.status == TaskStatus.GENERATING and len(task.content) > seen:
            sys.stdout.write(task.content[seen:])
            sys.stdout.flush()
            printed[task.id] = len(task.content)
        elif task.status != TaskStatus.GENERATING:
            if seen:
                sys.stdout.write("\n")
            printed.pop(task.id, None)

    return listener


def _progress_printer() -> Callable[[ChapterTask], None]:
    def listener(task: ChapterTask) -> None:
        if task.status == TaskStatus.DONE:
            print(f"[done] {task.title}")
        elif task.status == TaskStatus.ERROR:
            print(f"[error] {task.title}: {task.error_message}", file=sys.stderr)

    return listener


async def _run_outline(args: argparse.Namespace) -> int:
    session = _build_session(args, _build_config(args))
    if not await _acquire(session, args):
        return 1
    _print_outline(session)
    return 0


async def _run_write(args: argparse.Namespace) -> int:
    config = _build_config(args).with_output(args.output)
    session = _build_session(args, config)
    if not await _acquire(session, args):
        return 1
    if args.review and not await _review(session):
        return 1

    session.proceed_to_chapters()
    session.chapters.subscribe(_stream_printer() if args.stream else _progress_printer())
    session.set_auto_mode(True)
    await session.wait_until_idle()

    progress = session.progress()
    print(f"{progress.status_label}: {progress.completed} / {progress.total} Chapters Completed")
    _report_banner(session)
    session.view_result()
    target = session.export(config.output_path)
    print(f"Book written to {target}")
    return 0 if progress.failed == 0 else 1


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    load_dotenv()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING, format=LOG_FORMAT)

    runner = {"outline": _run_outline, "write": _run_write}.get(args.command)
    if runner is None:  # pragma: no cover - safety net
        parser.print_help()
        return 1

    try:
        return asyncio.run(runner(args))
    except (FileNotFoundError, ValueError, RuntimeError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
