"""
musttag/plus_reporter.py
════════════════════════

Human-facing output for musttag findings.

Formats
───────
  • Terminal : Rust-style rendering with termcolor (default on a TTY)::

        warning[musttag]: exported fields should be annotated with the "json" tag
          --> types.go:5:6
           |
         5 | type User struct {
           |      ^^^^ declared here
           = note: field `Email` has no `json` tag
           = note: passed to encoding/json.Marshal here
               --> main.go:12:9
           = help: add a `json:"..."` tag to every exported field

  • Plain    : one cppcheck-style line per finding plus its notes
               (non-TTY, log files)::

        [types.go:5]: (warning) exported fields should be ... [musttag]

  • SARIF    : 2.1.0 log written on ``finish()`` when ``sarif_path`` is
               given or $REPORT_GENERATE_SARIF is set

Usage
─────
    with Reporter(stream=sys.stdout) as rep:
        for d in results.diagnostics:
            rep.submit(d)
"""

from __future__ import annotations

import json
import os
import sys
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Tuple, Union

from termcolor import colored, cprint

from musttag import __version__
from musttag.checkers import Diagnostic, DiagnosticSeverity, checker_by_name
from musttag.types import SourceLocation, short_type_name

# severity → (termcolor colour, SARIF level)
_SEVERITY_STYLE: Dict[DiagnosticSeverity, Tuple[str, str]] = {
    DiagnosticSeverity.ERROR: ("red", "error"),
    DiagnosticSeverity.WARNING: ("yellow", "warning"),
    DiagnosticSeverity.STYLE: ("cyan", "note"),
    DiagnosticSeverity.PERFORMANCE: ("magenta", "warning"),
    DiagnosticSeverity.PORTABILITY: ("blue", "warning"),
    DiagnosticSeverity.INFORMATION: ("white", "note"),
}


def severity_colour(severity: DiagnosticSeverity) -> str:
    return _SEVERITY_STYLE[severity][0]


def sarif_level(severity: DiagnosticSeverity) -> str:
    return _SEVERITY_STYLE[severity][1]


# ═════════════════════════════════════════════════════════════════════════
#  RENDERING MODEL
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Note:
    message: str
    location: Optional[SourceLocation] = None


@dataclass
class Rendering:
    """
    Everything the renderers show for one finding.

    ``underline`` is the width of the caret run under the primary
    location: the length of the declared type name when it is known.
    """
    finding: Diagnostic
    underline: int = 1
    label: str = ""
    notes: List[Note] = field(default_factory=list)
    helps: List[str] = field(default_factory=list)

    @classmethod
    def of(cls, finding: Diagnostic) -> Rendering:
        evidence = finding.evidence
        tag = evidence.get("tag")
        type_name = evidence.get("type", "")
        view = cls(
            finding,
            underline=len(short_type_name(type_name)) if type_name else 1,
            label="declared here" if type_name else "",
        )
        if tag and evidence.get("field"):
            view.notes.append(Note(f"field `{evidence['field']}` has no `{tag}` tag"))
        callee = evidence.get("callee") or "serializer"
        for where in finding.secondary:
            view.notes.append(Note(f"passed to {callee} here", where))
        if tag:
            view.helps.append(f'add a `{tag}:"..."` tag to every exported field')
        return view

    @property
    def location(self) -> SourceLocation:
        return self.finding.location

    def cppcheck_line(self) -> str:
        """``[file:line]: (severity) message [errorId]``"""
        loc = self.finding.location
        return (
            f"[{loc.file}:{loc.line}]: ({self.finding.severity.value}) "
            f"{self.finding.message} [{self.finding.error_id}]"
        )


@dataclass
class ReporterStats:
    """Findings shown so far, per severity."""
    counts: Counter = field(default_factory=Counter)

    def record(self, severity: DiagnosticSeverity) -> None:
        self.counts[severity] += 1

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def errors(self) -> int:
        return self.counts[DiagnosticSeverity.ERROR]

    def summary_line(self) -> str:
        parts: List[str] = []
        for severity in DiagnosticSeverity:
            n = self.counts[severity]
            if not n:
                continue
            word = "info" if severity is DiagnosticSeverity.INFORMATION else severity.value
            if severity in (DiagnosticSeverity.ERROR, DiagnosticSeverity.WARNING) and n != 1:
                word += "s"
            parts.append(f"{n} {word}")
        if not parts:
            return "no diagnostics emitted"
        return "; ".join(parts) + f" ({self.total} total)"


# ═════════════════════════════════════════════════════════════════════════
#  TERMINAL RENDERER
# ═════════════════════════════════════════════════════════════════════════

def _source_line(loc: SourceLocation) -> str:
    """Text of the line at *loc*, ``""`` when the file cannot be read."""
    if not loc.file or loc.line <= 0:
        return ""
    try:
        with open(loc.file, "r", encoding="utf-8", errors="replace") as fh:
            for idx, line in enumerate(fh, 1):
                if idx == loc.line:
                    return line.rstrip("\r\n")
    except OSError:
        return ""
    return ""


def _blue(text: str) -> str:
    return colored(text, "blue", attrs=["bold"])


class _TerminalRenderer:

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def render(self, view: Rendering) -> None:
        finding = view.finding
        colour = severity_colour(finding.severity)

        loc = finding.location
        gutter = " " * len(str(loc.line))
        out = [
            colored(f"{finding.severity.value}[{finding.error_id}]", colour, attrs=["bold"])
            + ": " + colored(finding.message, attrs=["bold"]),
            f"{gutter}{_blue('-->')} {loc}",
        ]
        if loc.line:
            pad = " " * max(loc.column - 1, 0)
            carets = "^" * max(view.underline, 1)
            label = f" {view.label}" if view.label else ""
            out += [
                f"{gutter} {_blue('|')}",
                f"{_blue(str(loc.line))} {_blue('|')} {_source_line(loc)}",
                f"{gutter} {_blue('|')} {pad}{colored(carets + label, colour, attrs=['bold'])}",
            ]
        for note in view.notes:
            out.append(f"{gutter} = {colored('note', 'cyan', attrs=['bold'])}: {note.message}")
            if note.location is not None:
                out.append(f"{gutter}     {_blue('-->')} {note.location}")
        for hint in view.helps:
            out.append(f"{gutter} = {colored('help', 'green', attrs=['bold'])}: {hint}")
        out.append("")
        self._stream.write("\n".join(out) + "\n")

    def summary(self, stats: ReporterStats) -> None:
        if stats.errors:
            colour = "red"
        elif stats.total:
            colour = "yellow"
        else:
            colour = "green"
        cprint(f"  ╰─ {stats.summary_line()}", colour, attrs=["bold"], file=self._stream)


# ═════════════════════════════════════════════════════════════════════════
#  PLAIN RENDERER
# ═════════════════════════════════════════════════════════════════════════

class _PlainRenderer:

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream

    def render(self, view: Rendering) -> None:
        lines = [view.cppcheck_line()]
        for note in view.notes:
            where = f" [{note.location}]" if note.location else ""
            lines.append(f"  note{where}: {note.message}")
        self._stream.write("\n".join(lines) + "\n")

    def summary(self, stats: ReporterStats) -> None:
        self._stream.write(f"  {stats.summary_line()}\n")


# ═════════════════════════════════════════════════════════════════════════
#  SARIF 2.1.0
# ═════════════════════════════════════════════════════════════════════════

SARIF_VERSION = "2.1.0"
SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"


def _sarif_location(loc: SourceLocation) -> Dict[str, Any]:
    region: Dict[str, Any] = {"startLine": loc.line}
    if loc.column:
        region["startColumn"] = loc.column
    return {"physicalLocation": {"artifactLocation": {"uri": loc.file}, "region": region}}


class SarifLog:
    """Collects findings as SARIF results; one run per log."""

    def __init__(self, tool_name: str, tool_version: str) -> None:
        self.tool_name = tool_name
        self.tool_version = tool_version
        self.results: List[Dict[str, Any]] = []
        self._rule_ids: List[str] = []

    def add(self, view: Rendering) -> None:
        finding = view.finding
        if finding.error_id not in self._rule_ids:
            self._rule_ids.append(finding.error_id)
        result: Dict[str, Any] = {
            "ruleId": finding.error_id,
            "level": sarif_level(finding.severity),
            "message": {"text": finding.message},
            "locations": [_sarif_location(finding.location)],
        }
        related = []
        for idx, note in enumerate(view.notes):
            entry: Dict[str, Any] = {"id": idx, "message": {"text": note.message}}
            if note.location is not None:
                entry.update(_sarif_location(note.location))
            related.append(entry)
        if related:
            result["relatedLocations"] = related
        if finding.evidence:
            result["properties"] = dict(finding.evidence)
        self.results.append(result)

    def _rules(self) -> List[Dict[str, Any]]:
        rules = []
        for rule_id in self._rule_ids:
            checker = checker_by_name(rule_id)
            text = checker.description if checker is not None else rule_id
            rules.append({"id": rule_id, "shortDescription": {"text": text}})
        return rules

    def to_dict(self) -> Dict[str, Any]:
        return {
            "$schema": SARIF_SCHEMA,
            "version": SARIF_VERSION,
            "runs": [{
                "tool": {"driver": {
                    "name": self.tool_name,
                    "version": self.tool_version,
                    "rules": self._rules(),
                }},
                "results": self.results,
            }],
        }

    def write(self, path: Union[str, Path]) -> None:
        Path(path).write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")


# ═════════════════════════════════════════════════════════════════════════
#  REPORTER
# ═════════════════════════════════════════════════════════════════════════

class Reporter:
    """
    Renders checker diagnostics.

    ``colour=None`` picks the terminal renderer when *stream* is a TTY.
    ``finish()`` (called on leaving the ``with`` block) prints the summary
    and writes the SARIF log if one was requested.
    """

    def __init__(
        self,
        stream: TextIO = sys.stdout,
        colour: Optional[bool] = None,
        tool_name: str = "musttag",
        tool_version: str = __version__,
        sarif_path: Optional[str] = None,
    ) -> None:
        self.stats = ReporterStats()
        self._views: List[Rendering] = []
        if colour is None:
            colour = hasattr(stream, "isatty") and stream.isatty()
        self._renderer: Union[_TerminalRenderer, _PlainRenderer] = (
            _TerminalRenderer(stream) if colour else _PlainRenderer(stream)
        )
        self._sarif_path = sarif_path or os.environ.get("REPORT_GENERATE_SARIF") or None
        self._sarif = SarifLog(tool_name, tool_version) if self._sarif_path else None

    def __enter__(self) -> Reporter:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.finish()

    @property
    def renderings(self) -> List[Rendering]:
        return list(self._views)

    def submit(self, finding: Diagnostic) -> Rendering:
        view = Rendering.of(finding)
        self.stats.record(finding.severity)
        self._views.append(view)
        self._renderer.render(view)
        if self._sarif is not None:
            self._sarif.add(view)
        return view

    def finish(self) -> ReporterStats:
        self._renderer.summary(self.stats)
        if self._sarif is not None:
            self._sarif.write(self._sarif_path)
        return self.stats


__all__ = [
    "Note",
    "Rendering",
    "ReporterStats",
    "SarifLog",
    "Reporter",
    "severity_colour",
    "sarif_level",
]
