#!/usr/bin/env python3
"""
musttag/__main__.py — command-line entry point
==============================================

Usage::

    musttag [options] DUMP [DUMP ...]
    python -m musttag [options] DUMP [DUMP ...]

Each DUMP is a unit dump written by the Go front-end.  Exit codes:

    0  no findings
    1  at least one finding
    2  unreadable dump, bad type expression or bad option
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional, Sequence, TextIO

from musttag import __version__
from musttag.checkers import CheckerRunner, CheckerRunResults, SuppressionManager
from musttag.dump import parsedumps
from musttag.errors import MustTagError
from musttag.plus_reporter import Reporter
from musttag.rules import RuleTable

_log = logging.getLogger("musttag")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_FINDINGS: int = 1
EXIT_INFRA: int = 2


def _configure_logging(verbosity: int) -> None:
    """Set up the ``musttag`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("musttag")
    root.setLevel(level)
    root.handlers[:] = [handler]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="musttag",
        description=(
            "Check that structs passed to Marshal/Unmarshal-style calls "
            "have every exported field annotated with the relevant tag."
        ),
    )
    parser.add_argument("dumps", nargs="*", metavar="DUMP", help="unit dump file(s)")
    parser.add_argument(
        "--fn", action="append", default=[], metavar="NAME:KEY:ARGPOS",
        help="extra serialization function, e.g. "
             "'example.com/pkg.Save:json:1' (repeatable)",
    )
    parser.add_argument(
        "--output", choices=["text", "json", "gcc", "summary"],
        default="text", help="output format (default: text)",
    )
    parser.add_argument(
        "--suppress", nargs="*", default=None, metavar="ID",
        help="error IDs to suppress",
    )
    parser.add_argument(
        "--sarif", metavar="PATH", default=None,
        help="also write a SARIF 2.1.0 report (text output only)",
    )
    parser.add_argument("--no-color", action="store_true", help="disable colours")
    parser.add_argument(
        "--list-rules", action="store_true",
        help="list the recognized serialization functions and exit",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="increase log verbosity (-v info, -vv debug)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def _list_rules(table: RuleTable, stream: TextIO) -> None:
    for rule in sorted(table, key=lambda r: (r.key, r.callee)):
        stream.write(f"  {rule.key:14s} arg {rule.arg_index}  {rule.callee}\n")
    stream.write(f"{len(table)} rule(s); tags: {', '.join(table.keys)}\n")


def _emit(
    results: CheckerRunResults,
    fmt: str,
    stream: TextIO,
    colour: Optional[bool],
    sarif: Optional[str],
) -> None:
    if fmt == "json":
        for diag in results.diagnostics:
            stream.write(diag.to_json_str() + "\n")
    elif fmt == "gcc":
        for diag in results.diagnostics:
            stream.write(diag.to_gcc_format() + "\n")
    elif fmt == "summary":
        stream.write(results.summary() + "\n")
    else:
        with Reporter(
            stream=stream,
            colour=colour,
            tool_version=__version__,
            sarif_path=sarif,
        ) as rep:
            for diag in results.diagnostics:
                rep.submit(diag)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        table = RuleTable.from_specs(args.fn)
    except MustTagError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA

    if args.list_rules:
        _list_rules(table, sys.stdout)
        return EXIT_OK

    if not args.dumps:
        parser.error("at least one DUMP is required")

    try:
        units = parsedumps(args.dumps)
    except MustTagError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA

    suppressions = SuppressionManager(args.suppress or ())

    runner = CheckerRunner(suppressions=suppressions, options={"rules": table})
    results = runner.run_all(units)
    _log.info("%s", results.summary())

    colour: Optional[bool] = False if args.no_color else None
    try:
        _emit(results, args.output, sys.stdout, colour, args.sarif)
    except OSError as exc:
        _log.error("cannot write report: %s", exc)
        return EXIT_INFRA

    return EXIT_FINDINGS if results.finding_count else EXIT_OK


def _entry() -> None:
    sys.exit(main())


if __name__ == "__main__":
    _entry()


__all__: List[str] = ["main", "EXIT_OK", "EXIT_FINDINGS", "EXIT_INFRA"]
