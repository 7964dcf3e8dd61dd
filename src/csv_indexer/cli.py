"""Command-line entry point.

Usage::

    csv-indexer create people/ from people.csv
    csv-indexer find 10 return "id,name" from people/ where "name:smith AND city:paris"

Writing commands name the index directory first and the CSV after ``from``;
the input file is never the first argument.

Progress and timing lines go to stderr; stdout carries only ``find`` CSV output.
"""

from __future__ import annotations

import argparse
from collections.abc import Callable, Sequence
import csv
import logging
import sys
import time
from typing import Any

from csv_indexer.config import Settings, get_settings
from csv_indexer.domain.model import OpenMode
from csv_indexer.domain.search import FindResult
from csv_indexer.errors import IndexerError, IOFailure
from csv_indexer.indexer import Indexer
from csv_indexer.observability.context import bind_command
from csv_indexer.observability.logging import configure_logging
from csv_indexer.observability.metrics import COMMAND_COUNT, write_metrics_textfile
from csv_indexer.searcher import Searcher, parse_field_list


logger = logging.getLogger(__name__)

__version__ = "1.0.0"

USAGE = f"""\
Indexer, version {__version__}

Indexes and searches the contents of a CSV file.
- The CSV file must have one column named id which is the unique identifier.
- The index directory comes first and the input CSV follows "from".

Usage:

- csv-indexer create [ index/dir ] from [ input.csv ]
- csv-indexer append [ index/dir ] from [ input.csv ]
- csv-indexer update [ index/dir ] from [ input.csv ]
- csv-indexer drop [ index/dir ]
- csv-indexer find [ all | n ] return [ "field1,field2 ..." ] from [ index/dir ] where [ "criteria AND criteria ..." ]
"""

NO_MATCHES_MESSAGE = "No documents matched the query."


def _parse_count(value: str) -> int | None:
    if value.lower() == "all":
        return None
    try:
        count = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected 'all' or a positive number, got {value!r}") from None
    if count <= 0:
        raise argparse.ArgumentTypeError(f"expected 'all' or a positive number, got {value!r}")
    return count


def _keyword(parser: argparse.ArgumentParser, word: str) -> None:
    parser.add_argument(f"{word}_keyword", metavar=word, choices=[word], help=f"the literal word '{word}'")


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="csv-indexer",
        description=USAGE,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        help="Override CSV_INDEXER_LOG_LEVEL for this invocation",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=None,
        help="Emit JSON log lines on stderr (CSV_INDEXER_LOG_JSON)",
    )
    commands = parser.add_subparsers(dest="command", metavar="command", required=True)

    for name, help_text in (
        ("create", "Create an index from a CSV file, replacing any existing index"),
        ("append", "Add the documents of a CSV file to an existing index"),
        ("update", "Insert or replace documents by id, creating the index if needed"),
    ):
        sub = commands.add_parser(name, help=help_text, description=help_text)
        sub.add_argument("index_dir", help="Index directory")
        _keyword(sub, "from")
        sub.add_argument("input", help="Input CSV file")

    drop = commands.add_parser("drop", help="Delete an index", description="Delete an index directory")
    drop.add_argument("index_dir", help="Index directory")

    find = commands.add_parser(
        "find",
        help="Search an index and print matching rows as CSV",
        description="Search an index and print the requested fields of matching documents as CSV",
    )
    find.add_argument("count", type=_parse_count, metavar="all|N", help="Maximum number of rows, or 'all'")
    _keyword(find, "return")
    find.add_argument("fields", help='Comma-separated field names, e.g. "id,name"')
    _keyword(find, "from")
    find.add_argument("index_dir", help="Index directory")
    _keyword(find, "where")
    find.add_argument("query", help='Query, e.g. "name:smith AND city:paris"')
    return parser


class _Progress:
    """Writes ``Label ... Finished in N seconds.`` around one command."""

    def __init__(self, label: str) -> None:
        self.label = label
        self.started = time.perf_counter()

    def __enter__(self) -> _Progress:
        print(f"{self.label} ... ", end="", file=sys.stderr, flush=True)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            elapsed = time.perf_counter() - self.started
            print(f"Finished in {elapsed:.2f} seconds.", file=sys.stderr)
        else:
            print("failed.", file=sys.stderr)


def _cmd_index(args: argparse.Namespace, settings: Settings) -> int:
    indexer = Indexer(settings)
    if args.command == "create":
        with _Progress(f"Creating index {args.index_dir} from {args.input}"):
            indexer.insert(args.input, args.index_dir, OpenMode.CREATE)
    elif args.command == "append":
        with _Progress(f"Appending index {args.index_dir} with {args.input}"):
            indexer.insert(args.input, args.index_dir, OpenMode.APPEND)
    else:
        with _Progress(f"Updating index {args.index_dir} with {args.input}"):
            indexer.update(args.input, args.index_dir)
    return 0


def _cmd_drop(args: argparse.Namespace, settings: Settings) -> int:
    with _Progress(f"Dropping index {args.index_dir}"):
        removed = Indexer(settings).drop(args.index_dir)
    if not removed:
        print(f"Index {args.index_dir} did not exist.", file=sys.stderr)
    return 0


def write_result(result: FindResult, stream: Any, delimiter: str = ",") -> None:
    """Render a find result as CSV: header row, then one row per match."""
    writer = csv.writer(stream, delimiter=delimiter, lineterminator="\n")
    writer.writerow(result.fields)
    for row in result.rows:
        writer.writerow(row.as_list())


def _cmd_find(args: argparse.Namespace, settings: Settings) -> int:
    fields = parse_field_list(args.fields)
    result = Searcher(settings).find(args.index_dir, fields, args.query, limit=args.count)
    if result.is_empty:
        print(NO_MATCHES_MESSAGE, file=sys.stderr)
        return 0
    write_result(result, sys.stdout, settings.output_delimiter)
    sys.stdout.flush()
    return 0


_HANDLERS: dict[str, Callable[[argparse.Namespace, Settings], int]] = {
    "create": _cmd_index,
    "append": _cmd_index,
    "update": _cmd_index,
    "drop": _cmd_drop,
    "find": _cmd_find,
}


def _export_metrics(settings: Settings) -> None:
    if settings.metrics_textfile is None:
        return
    try:
        write_metrics_textfile(settings.metrics_textfile)
    except IOFailure as exc:
        logger.warning("Metrics not written: %s", exc)


def main(argv: Sequence[str] | None = None) -> int:
    arguments = list(sys.argv[1:] if argv is None else argv)
    if not arguments:
        print(USAGE, file=sys.stderr)
        return 1

    parser = build_argument_parser()
    args = parser.parse_args(arguments)

    try:
        settings = get_settings()
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 1

    configure_logging(
        args.log_level or settings.log_level,
        settings.log_json if args.json_logs is None else args.json_logs,
    )
    bind_command(args.command, args.index_dir)

    status = 1
    try:
        status = _HANDLERS[args.command](args, settings)
    except (IndexerError, ValueError) as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
    finally:
        COMMAND_COUNT.labels(command=args.command, status="ok" if status == 0 else "error").inc()
        _export_metrics(settings)
    return status


if __name__ == "__main__":
    raise SystemExit(main())
