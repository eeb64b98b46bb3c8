"""Command-line access to the corpus cache and the annotation pipeline.

Usage::

    python -m src.cli warm gaucho nordestino
    python -m src.cli warm sertanejo --artist "Tonico e Tinoco" --year-start 1950
    python -m src.cli annotate gaucho --json -o gaucho_annotations.json
    python -m src.cli annotate --words-file words.txt --context "sertanejo"
    python -m src.cli stats
    python -m src.cli invalidate gaucho [--all-variants]
    python -m src.cli clear
    python -m src.cli cleanup

Every command builds the same components as the web server (``_build_all``
in ``src/main.py``), initialises the durable tier, and disposes of the cache
(joining its background writes) before exiting.  Exit code 0 on success,
1 on an application error.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

from src.models.annotation import AnnotationProgress, AnnotationRunResult
from src.models.cache import CorpusFilters
from src.utils.errors import CorpusLabError


def _suppress_logs() -> None:
    """Send all log output to stderr at WARNING+ so stdout stays clean for JSON.

    Must run before ``src.main`` is imported: structlog caches loggers on
    first use.
    """
    import logging
    import os

    import structlog

    os.environ["LOG_LEVEL"] = "WARNING"
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.WARNING),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.WARNING)
    root.addHandler(handler)
    root.setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _filters_from_args(args: argparse.Namespace) -> CorpusFilters | None:
    artists = getattr(args, "artist", None)
    albums = getattr(args, "album", None)
    year_start = getattr(args, "year_start", None)
    year_end = getattr(args, "year_end", None)
    if not (artists or albums or year_start is not None or year_end is not None):
        return None
    return CorpusFilters(artists=artists, albums=albums, year_start=year_start, year_end=year_end)


def _print_progress(progress: AnnotationProgress) -> None:
    print(
        f"  [{progress.percentage:3d}%] {progress.processed}/{progress.total} words "
        f"(chunk {progress.current_chunk}/{progress.total_chunks})",
        file=sys.stderr,
    )


def _format_result(result: AnnotationRunResult) -> str:
    lines = [
        f"Words:            {result.total_words}",
        f"Annotations:      {len(result.annotations)}",
        f"Classified:       {result.classified_words}",
        f"Domains found:    {result.domains_found}",
        f"Coverage:         {result.coverage_percentage:.1f}%",
    ]
    if result.failed_chunks:
        lines.append(f"Failed chunks:    {', '.join(str(i) for i in result.failed_chunks)}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_warm(args: argparse.Namespace, components: dict[str, Any]) -> int:
    cache = components["corpus_cache"]
    filters = _filters_from_args(args)
    for corpus_type in args.corpus_types:
        lookup = await cache.get(corpus_type, filters)
        print(
            f"{lookup.key}: {lookup.corpus.total_documents} songs, "
            f"{lookup.corpus.total_words} words (from {lookup.source.value})"
        )
    return 0


async def _handle_annotate(args: argparse.Namespace, components: dict[str, Any]) -> int:
    pipeline = components["annotation_pipeline"]
    if args.words_file:
        words = Path(args.words_file).read_text(encoding="utf-8").split()
    elif args.corpus_type:
        lookup = await components["corpus_cache"].get(args.corpus_type, _filters_from_args(args))
        words = lookup.corpus.word_list(unique=not args.all_occurrences)
    else:
        print("Error: give a corpus type or --words-file", file=sys.stderr)
        return 1

    print(f"Annotating {len(words):,} words", file=sys.stderr)
    result = await pipeline.run(words, context=args.context, on_progress=_print_progress)

    text = result.model_dump_json(indent=2) if args.json_output else _format_result(result)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"Results written to: {args.output}", file=sys.stderr)
    else:
        print(text)
    return 0


async def _handle_stats(args: argparse.Namespace, components: dict[str, Any]) -> int:
    print(json.dumps(await components["corpus_cache"].stats(), indent=2, default=str))
    return 0


async def _handle_invalidate(args: argparse.Namespace, components: dict[str, Any]) -> int:
    cache = components["corpus_cache"]
    if args.all_variants:
        removed = await cache.invalidate_type(args.corpus_type)
        print(f"Removed {removed} cached entries for {args.corpus_type}")
    else:
        removed = await cache.invalidate(args.corpus_type, _filters_from_args(args))
        print(f"{'Removed' if removed else 'Nothing cached for'} {args.corpus_type}")
    return 0


async def _handle_clear(args: argparse.Namespace, components: dict[str, Any]) -> int:
    removed = await components["corpus_cache"].clear()
    print(f"Cleared {removed} cached entries")
    return 0


async def _handle_cleanup(args: argparse.Namespace, components: dict[str, Any]) -> int:
    removed = await components["durable_cache"].cleanup_expired()
    print(f"Removed {removed} expired durable entries")
    return 0


_HANDLERS = {
    "warm": _handle_warm,
    "annotate": _handle_annotate,
    "stats": _handle_stats,
    "invalidate": _handle_invalidate,
    "clear": _handle_clear,
    "cleanup": _handle_cleanup,
}


async def _run(args: argparse.Namespace) -> int:
    # Deferred so --quiet can reconfigure logging first.
    from src.main import _build_all, config, settings, shutdown_components, startup_components

    components = _build_all(settings, config)
    try:
        await startup_components(components)
        return await _HANDLERS[args.command](args, components)
    except CorpusLabError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        await shutdown_components(components)


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--artist", action="append", help="Restrict to an artist (repeatable).")
    parser.add_argument("--album", action="append", help="Restrict to an album (repeatable).")
    parser.add_argument("--year-start", type=int, default=None, help="Earliest release year.")
    parser.add_argument("--year-end", type=int, default=None, help="Latest release year.")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m src.cli",
        description="Manage the corpus cache and run semantic annotation.",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress log output (implied by --json).",
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    warm = subparsers.add_parser("warm", help="Load corpora into every cache tier")
    warm.add_argument("corpus_types", nargs="+", help="gaucho, nordestino or sertanejo")
    _add_filter_arguments(warm)

    annotate = subparsers.add_parser("annotate", help="Annotate a corpus or a word list")
    annotate.add_argument("corpus_type", nargs="?", default=None)
    annotate.add_argument("--words-file", default=None, help="Whitespace-separated words.")
    annotate.add_argument("--context", default=None, help="Context hint for the service.")
    annotate.add_argument(
        "--all-occurrences",
        action="store_true",
        help="Annotate every occurrence instead of each distinct word once.",
    )
    annotate.add_argument("--json", action="store_true", dest="json_output")
    annotate.add_argument("--output", "-o", default=None, help="Write results to a file.")
    _add_filter_arguments(annotate)

    subparsers.add_parser("stats", help="Show cache statistics")

    invalidate = subparsers.add_parser("invalidate", help="Drop a cached corpus everywhere")
    invalidate.add_argument("corpus_type")
    invalidate.add_argument(
        "--all-variants",
        action="store_true",
        help="Drop the full corpus and every filtered variant.",
    )
    _add_filter_arguments(invalidate)

    subparsers.add_parser("clear", help="Empty both cache tiers")
    subparsers.add_parser("cleanup", help="Delete expired durable entries")
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.quiet or getattr(args, "json_output", False):
        _suppress_logs()

    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
