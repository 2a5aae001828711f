"""Command line entry point: load or store fields of one configured row."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Sequence

from .accessor import RecordAccessor
from .config import AppConfig, FilerConfig, load_config
from .errors import FilerError, ErrorReport
from .pool import ConnectionPool

LOG = logging.getLogger(__name__)


def parse_assignment(text: str) -> tuple[str, Any]:
    """Split ``column=value``; JSON scalars are decoded, anything else stays text."""

    name, sep, raw = text.partition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"Expected column=value, got '{text}'")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    if isinstance(value, (list, dict)):
        value = raw
    return name, value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rowfiler", description=__doc__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("sources", help="List configured data sources")

    for name, help_text in (("load", "Print fields of the selected row as JSON"), ("store", "Update the selected row")):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("--source", help="Configured data source name (default: default_source)")
        command.add_argument("--table", required=True, help="Table holding the row")
        command.add_argument(
            "--where",
            action="append",
            type=parse_assignment,
            default=[],
            metavar="COLUMN=VALUE",
            help="Predicate selecting the row (repeatable)",
        )
        if name == "load":
            command.add_argument("fields", nargs="+", help="Columns to load")
        else:
            command.add_argument("values", nargs="+", type=parse_assignment, metavar="COLUMN=VALUE")
    return parser


def run(argv: Sequence[str] | None = None, *, config: AppConfig | None = None, pool: ConnectionPool | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if config is None:
        config = load_config()

    if args.command == "sources":
        for source in config.sources:
            marker = "*" if source.name == config.default_source else " "
            print(f"{marker} {source.name}\t{source.to_datasource().identifier}")
        return 0

    try:
        source = config.source(args.source)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    filer_config = FilerConfig.from_source(source, table=args.table, where=dict(args.where) or None)
    try:
        with RecordAccessor(filer_config, pool=pool or ConnectionPool(), error_handler=_report_to_stderr) as accessor:
            if args.command == "load":
                print(json.dumps(accessor.load(*args.fields), default=str, sort_keys=True))
            else:
                print(json.dumps(accessor.store(dict(args.values))))
    except FilerError:
        return 1
    return 0


def _report_to_stderr(report: ErrorReport) -> None:
    LOG.debug("Filer error", extra={"kind": report.kind.value, "sql": report.sql})
    print(report.message, file=sys.stderr)


def main() -> None:
    sys.exit(run())


__all__ = ["build_parser", "main", "parse_assignment", "run"]
