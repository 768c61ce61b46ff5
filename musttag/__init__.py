"""
musttag — struct tag checker for Go serialization calls
=======================================================

Detects structs passed to Marshal/Unmarshal-style calls (``encoding/json``,
``encoding/xml``, YAML, TOML, mapstructure, or any configured API) whose
exported fields lack the struct tag the serializer relies on.

The checker consumes *unit dumps*: JSON documents written by a Go
type-checking front-end, one per compilation unit, describing declared
types, variables and call expressions with their static types.

Core modules
------------
types
    Static type / expression model of a compilation unit.
typeexpr
    PEG parser for the Go type expressions found in dumps.
dump
    Unit dump loader.
rules
    Table of known serialization entry points and the call matcher.
analysis
    Type resolver, recursive tag verifier, per-run report sink.
checkers
    Checker framework, ``MustTagChecker`` and ``CheckerRunner``.
plus_reporter
    Colourful / plain / SARIF diagnostic output.

Quick start
-----------
>>> from musttag import CheckerRunner, parsedump
>>> results = CheckerRunner().run_all(parsedump("main.go.json"))
>>> print(results.to_gcc_format())
"""

from __future__ import annotations

import logging
from typing import List

__version__ = "0.4.0"
__author__ = "musttag contributors"
__license__ = "MIT"

_log = logging.getLogger(__name__)
_log.addHandler(logging.NullHandler())

from musttag.analysis import (  # noqa: E402
    ReportSink,
    Verdict,
    resolve_record,
    verify_record,
)
from musttag.checkers import (  # noqa: E402
    CheckerRunner,
    CheckerRunResults,
    Diagnostic,
    DiagnosticSeverity,
    MustTagChecker,
    SuppressionManager,
)
from musttag.dump import load_units, parsedump, parsedumps  # noqa: E402
from musttag.errors import (  # noqa: E402
    DumpError,
    MustTagError,
    RuleError,
    TypeExprError,
)
from musttag.rules import (  # noqa: E402
    BUILTIN_RULES,
    RuleTable,
    SerializationRule,
    parse_rule,
)
from musttag.types import SourceLocation  # noqa: E402

__all__: List[str] = [
    "__version__",
    "ReportSink",
    "Verdict",
    "resolve_record",
    "verify_record",
    "CheckerRunner",
    "CheckerRunResults",
    "Diagnostic",
    "DiagnosticSeverity",
    "MustTagChecker",
    "SuppressionManager",
    "load_units",
    "parsedump",
    "parsedumps",
    "DumpError",
    "MustTagError",
    "RuleError",
    "TypeExprError",
    "BUILTIN_RULES",
    "RuleTable",
    "SerializationRule",
    "parse_rule",
    "SourceLocation",
]
