"""
musttag/checkers.py
═══════════════════

Runs the musttag analysis over compilation units and turns its reports
into cppcheck-addon style diagnostics.

Flow per unit
─────────────

  CompilationUnit
      │
      ▼
  MustTagChecker          configure → collect_evidence → diagnose → report
      │  RuleTable.match → resolve_record → verify_record → ReportSink
      ▼
  SuppressionManager      //nolint markers from the dump, --suppress ids
      │
      ▼
  CheckerRunResults       json lines / gcc lines / summary

``CheckerRunner`` builds fresh checker instances for every unit, so each
unit is an independent run with its own ``ReportSink``.  A checker that
raises does not abort the run: the failure becomes an ``information``
diagnostic with id ``checkerInternalError``.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatch
from typing import (
    Any,
    ClassVar,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
    Type,
)

from musttag.analysis import (
    Report,
    ReportSink,
    Resolution,
    Verdict,
    resolve_record,
    verify_record,
)
from musttag.rules import Match, RuleTable
from musttag.types import CallSite, CompilationUnit, SourceLocation, Suppression

logger = logging.getLogger(__name__)

INTERNAL_ERROR_ID = "checkerInternalError"


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — DIAGNOSTICS
# ═════════════════════════════════════════════════════════════════════════

class DiagnosticSeverity(Enum):
    """Severity names as cppcheck spells them."""
    ERROR = "error"
    WARNING = "warning"
    STYLE = "style"
    PERFORMANCE = "performance"
    PORTABILITY = "portability"
    INFORMATION = "information"


@dataclass(frozen=True)
class Diagnostic:
    """
    One reported problem.

    location  : where the diagnostic points (the offending declaration)
    secondary : related positions, for musttag the serializing call
    evidence  : tag / callee / type / field, for reporters and SARIF
    """
    error_id: str
    message: str
    location: SourceLocation
    severity: DiagnosticSeverity = DiagnosticSeverity.WARNING
    checker_name: str = ""
    secondary: Tuple[SourceLocation, ...] = ()
    evidence: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_finding(self) -> bool:
        return self.severity is not DiagnosticSeverity.INFORMATION

    def to_cppcheck_json(self) -> Dict[str, Any]:
        """The object a cppcheck addon prints, one per line, with ``--cli``."""
        return {
            "file": self.location.file,
            "linenr": self.location.line,
            "column": self.location.column,
            "severity": self.severity.value,
            "message": self.message,
            "addon": "musttag",
            "errorId": self.error_id,
            "extra": self.evidence.get("type", ""),
        }

    def to_json_str(self) -> str:
        return json.dumps(self.to_cppcheck_json())

    def to_gcc_format(self) -> str:
        """``file:line:col: severity: message [id]``"""
        return f"{self.location}: {self.severity.value}: {self.message} [{self.error_id}]"


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — SUPPRESSIONS
# ═════════════════════════════════════════════════════════════════════════

class SuppressionManager:
    """
    Decides which diagnostics are hidden.

    Every rule is a ``Suppression``: a file (exact name, path suffix or
    glob), a line and an error id (``*`` for any).  A rule on line N
    covers diagnostics on lines N and N+1, so a ``//nolint:musttag``
    comment works both at the end of the declaration line and on the line
    above it.  Line 0 covers the whole file.  Global ids (``--suppress``)
    apply everywhere.

    >>> sm = SuppressionManager(["checkerInternalError"])
    >>> sm.load_inline_suppressions(unit)
    >>> sm.add_file_suppression("musttag", "internal/legacy/*.go")
    >>> kept = sm.filter_diagnostics(results.diagnostics)
    """

    def __init__(self, global_ids: Iterable[str] = ()) -> None:
        self._rules: List[Suppression] = []
        self._global: Set[str] = set(global_ids)

    def add(self, rule: Suppression) -> None:
        if rule not in self._rules:
            self._rules.append(rule)

    def copy(self) -> SuppressionManager:
        clone = SuppressionManager(self._global)
        clone._rules = list(self._rules)
        return clone

    def load_inline_suppressions(self, unit: CompilationUnit) -> None:
        for rule in unit.suppressions:
            self.add(rule)

    def add_file_suppression(self, error_id: str, file_pattern: str) -> None:
        self.add(Suppression(file=file_pattern, line=0, error_id=error_id))

    def add_global_suppression(self, error_id: str) -> None:
        self._global.add(error_id)

    @staticmethod
    def _covers(rule: Suppression, diag: Diagnostic) -> bool:
        if rule.error_id not in ("*", diag.error_id):
            return False
        path = diag.location.file
        if not (
            rule.file == path
            or path.endswith("/" + rule.file)
            or fnmatch(path, rule.file)
        ):
            return False
        return rule.line == 0 or rule.line in (diag.location.line, diag.location.line - 1)

    def is_suppressed(self, diag: Diagnostic) -> bool:
        if diag.error_id in self._global or "*" in self._global:
            return True
        return any(self._covers(rule, diag) for rule in self._rules)

    def filter_diagnostics(self, diagnostics: Iterable[Diagnostic]) -> List[Diagnostic]:
        kept: List[Diagnostic] = []
        for diag in diagnostics:
            if self.is_suppressed(diag):
                logger.debug("suppressed %s at %s", diag.error_id, diag.location)
                continue
            kept.append(diag)
        return kept


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — CHECKER PROTOCOL
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class CheckerContext:
    """What a checker sees of the run: the unit, suppressions, options, stats."""
    unit: CompilationUnit
    suppressions: SuppressionManager = field(default_factory=SuppressionManager)
    options: Dict[str, Any] = field(default_factory=dict)
    stats: Counter = field(default_factory=Counter)

    def get_option(self, key: str, default: Any = None) -> Any:
        return self.options.get(key, default)


class Checker(ABC):
    """
    A check over one compilation unit.

    The runner calls ``configure``, ``collect_evidence``, ``diagnose`` and
    ``report`` in that order on a new instance for every unit; instance
    state is therefore per-run state.
    """

    name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    default_severity: ClassVar[DiagnosticSeverity] = DiagnosticSeverity.WARNING

    def __init__(self) -> None:
        self._diagnostics: List[Diagnostic] = []

    def configure(self, ctx: CheckerContext) -> None:
        """Read options; nothing to read by default."""

    @abstractmethod
    def collect_evidence(self, ctx: CheckerContext) -> None:
        ...

    @abstractmethod
    def diagnose(self, ctx: CheckerContext) -> None:
        ...

    def report(self, ctx: CheckerContext) -> List[Diagnostic]:
        return ctx.suppressions.filter_diagnostics(self._diagnostics)

    def _emit(
        self,
        message: str,
        location: SourceLocation,
        *,
        secondary: Tuple[SourceLocation, ...] = (),
        evidence: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._diagnostics.append(Diagnostic(
            error_id=self.name,
            message=message,
            location=location,
            severity=self.default_severity,
            checker_name=self.name,
            secondary=secondary,
            evidence=evidence or {},
        ))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


# ═════════════════════════════════════════════════════════════════════════
#  PART 4 — MUSTTAG CHECKER
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class _Offence:
    """A serializing call whose record fails verification."""
    call: CallSite
    match: Match
    resolution: Resolution
    verdict: Verdict

    @property
    def position(self) -> SourceLocation:
        # A named nested offender reports at its own declaration.
        return self.verdict.position or self.resolution.position


class MustTagChecker(Checker):
    """
    Reports structs handed to serialization calls whose exported fields
    lack the tag the serializer reads.

    Options: ``rules``, a ``RuleTable`` replacing ``RuleTable.default()``.
    """

    name: ClassVar[str] = "musttag"
    description: ClassVar[str] = (
        "exported fields of structs passed to Marshal/Unmarshal-style "
        "calls must be annotated with the relevant tag"
    )

    def __init__(self) -> None:
        super().__init__()
        self.rules = RuleTable.default()
        self.sink = ReportSink()
        self._offences: List[_Offence] = []

    def configure(self, ctx: CheckerContext) -> None:
        rules = ctx.get_option("rules")
        if rules is not None:
            self.rules = rules

    def collect_evidence(self, ctx: CheckerContext) -> None:
        for call in ctx.unit.calls:
            match = self.rules.match(call)
            if match is None:
                continue
            resolution = resolve_record(match.expr)
            if resolution is None:
                logger.debug(
                    "%s: argument of %s is not a supported struct value",
                    call.position, call.callee,
                )
                continue
            ctx.stats[f"{self.name}_checked_calls"] += 1
            verdict = verify_record(resolution.record, match.key)
            if not verdict.ok:
                self._offences.append(_Offence(call, match, resolution, verdict))

    def diagnose(self, ctx: CheckerContext) -> None:
        for offence in self._offences:
            report = self.sink.maybe_report(
                offence.position, offence.match.key, offence.verdict.field,
            )
            if report is None:
                continue
            logger.info("%s: %s (via %s)", report.position, report.message, offence.call.callee)
            self._emit(
                report.message,
                report.position,
                secondary=(offence.call.position,),
                evidence=_evidence(report, offence),
            )


def _evidence(report: Report, offence: _Offence) -> Dict[str, Any]:
    evidence: Dict[str, Any] = {"tag": report.key, "callee": offence.call.callee}
    named = offence.verdict.named or offence.resolution.named
    if named is not None:
        evidence["type"] = named.name
    if report.field is not None:
        evidence["field"] = report.field.name
    return evidence


BUILTIN_CHECKERS: Tuple[Type[Checker], ...] = (MustTagChecker,)


def checker_by_name(name: str) -> Optional[Type[Checker]]:
    for cls in BUILTIN_CHECKERS:
        if cls.name == name:
            return cls
    return None


# ═════════════════════════════════════════════════════════════════════════
#  PART 5 — RUNNER
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class CheckerRunResults:
    """Diagnostics and counters of one or more unit runs."""
    diagnostics: List[Diagnostic] = field(default_factory=list)
    stats: Counter = field(default_factory=Counter)
    units: int = 0

    @property
    def finding_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.is_finding)

    @property
    def failure_count(self) -> int:
        return sum(1 for d in self.diagnostics if d.error_id == INTERNAL_ERROR_ID)

    def by_severity(self, severity: DiagnosticSeverity) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is severity]

    def by_file(self, file: str) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.location.file == file]

    def merge(self, other: CheckerRunResults) -> None:
        self.diagnostics.extend(other.diagnostics)
        self.stats.update(other.stats)
        self.units += other.units

    def to_json_lines(self) -> str:
        return "\n".join(d.to_json_str() for d in self.diagnostics)

    def to_gcc_format(self) -> str:
        return "\n".join(d.to_gcc_format() for d in self.diagnostics)

    def summary(self) -> str:
        lines = [f"{self.units} unit(s) checked, {self.finding_count} finding(s)"]
        for cls in BUILTIN_CHECKERS:
            calls = self.stats[f"{cls.name}_checked_calls"]
            elapsed = self.stats[f"{cls.name}_elapsed_ms"]
            lines.append(f"  {cls.name}: {calls} serialization call(s) in {elapsed:.1f}ms")
        if self.failure_count:
            lines.append(f"  {self.failure_count} checker failure(s)")
        return "\n".join(lines)


class CheckerRunner:
    """
    Runs checkers over compilation units.

    >>> runner = CheckerRunner(options={"rules": RuleTable.default()})
    >>> results = runner.run_all(parsedump("main.go.json"))
    >>> print(results.summary())
    """

    def __init__(
        self,
        checkers: Optional[Sequence[Type[Checker]]] = None,
        suppressions: Optional[SuppressionManager] = None,
        options: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.checkers: Tuple[Type[Checker], ...] = (
            BUILTIN_CHECKERS if checkers is None else tuple(checkers)
        )
        self.suppressions = suppressions or SuppressionManager()
        self.options = options or {}

    def run(self, unit: CompilationUnit) -> CheckerRunResults:
        """One analysis run over *unit*."""
        # Inline rules belong to this unit only.
        suppressions = self.suppressions.copy()
        suppressions.load_inline_suppressions(unit)
        ctx = CheckerContext(unit=unit, suppressions=suppressions, options=self.options)
        results = CheckerRunResults(units=1)

        for cls in self.checkers:
            checker = cls()
            started = time.perf_counter()
            try:
                checker.configure(ctx)
                checker.collect_evidence(ctx)
                checker.diagnose(ctx)
                diagnostics = checker.report(ctx)
            except Exception as exc:
                logger.exception("checker %s failed on %s", cls.name, unit)
                diagnostics = [Diagnostic(
                    error_id=INTERNAL_ERROR_ID,
                    message=f"checker {cls.name!r} failed: {exc}",
                    location=SourceLocation(file=unit.file),
                    severity=DiagnosticSeverity.INFORMATION,
                    checker_name=cls.name,
                )]
            ctx.stats[f"{cls.name}_elapsed_ms"] += (time.perf_counter() - started) * 1000.0
            results.diagnostics.extend(diagnostics)

        results.stats.update(ctx.stats)
        return results

    def run_all(self, units: Iterable[CompilationUnit]) -> CheckerRunResults:
        """Independent runs over several units, merged."""
        combined = CheckerRunResults()
        for unit in units:
            combined.merge(self.run(unit))
        return combined


__all__ = [
    "INTERNAL_ERROR_ID",
    "DiagnosticSeverity",
    "Diagnostic",
    "SuppressionManager",
    "CheckerContext",
    "Checker",
    "MustTagChecker",
    "BUILTIN_CHECKERS",
    "checker_by_name",
    "CheckerRunResults",
    "CheckerRunner",
]
