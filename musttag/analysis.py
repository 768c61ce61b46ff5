"""
musttag/analysis.py
═══════════════════

Structural analysis behind the ``musttag`` checker.

Pipeline
────────

  call ──► RuleTable.match ──► resolve_record ──► verify_record ──► ReportSink
           (rules.py)          record + position   tag check         dedup

resolve_record
    Static record type of the value handed to a serializer, with one
    pointer level unwrapped, and the position a diagnostic should point
    at: the declaration of a named type, or for an anonymous struct the
    variable declaration / composite literal it comes from.

verify_record
    Every exported field must carry the tag key.  Tagged fields whose type
    is itself a struct (through at most one pointer) are verified too.  The
    set of structs on the active path guards against self-referential
    types: re-entering one is treated as compliant.

ReportSink
    Per-run set of (position, key) pairs already reported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from musttag.types import (
    CompositeLit,
    Expr,
    Field,
    Ident,
    NamedType,
    PointerType,
    SourceLocation,
    StructType,
    TypeRef,
    UnaryExpr,
)

logger = logging.getLogger(__name__)

MESSAGE_TEMPLATE = 'exported fields should be annotated with the "{key}" tag'


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — TYPE RESOLVER
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Resolution:
    record: StructType
    position: SourceLocation
    named: Optional[NamedType] = None


def unwrap_pointer(t: Optional[TypeRef]) -> Optional[TypeRef]:
    """Strip exactly one level of indirection."""
    if isinstance(t, PointerType):
        return t.elem
    return t


def struct_of(t: Optional[TypeRef]) -> Optional[StructType]:
    """The struct behind *t*: itself, or the underlying type of a named type."""
    if isinstance(t, StructType):
        return t
    if isinstance(t, NamedType):
        underlying = t.underlying
        if isinstance(underlying, StructType):
            return underlying
    return None


def resolve_record(expr: Expr) -> Optional[Resolution]:
    """
    Record type and reportable position of *expr*, or ``None`` when the
    value is not a (pointer to a) struct in one of the supported shapes.
    """
    t = unwrap_pointer(expr.type)

    if isinstance(t, NamedType):
        record = struct_of(t)
        if record is None:
            return None
        return Resolution(record, t.position or expr.position, named=t)

    if isinstance(t, StructType):
        target: Optional[Expr] = expr
        if isinstance(target, UnaryExpr):
            target = target.operand
        if isinstance(target, Ident):
            # var x struct{...}; json.Marshal(&x)
            if target.var is None:
                return None
            return Resolution(t, target.var.position)
        if isinstance(target, CompositeLit):
            # json.Marshal(struct{...}{...})
            return Resolution(t, target.position)

    return None


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — TAG VERIFIER
# ═════════════════════════════════════════════════════════════════════════

def has_tag(tag: str, key: str) -> bool:
    """
    True when *tag* holds a ``key:"..."`` pair.

    From the ``reflect.StructTag`` docs: by convention, tag strings are a
    concatenation of optionally space-separated key:"value" pairs.
    """
    prefix = key + ":"
    return any(token.startswith(prefix) for token in tag.split())


@dataclass(frozen=True)
class Verdict:
    """
    Outcome of verifying one record.

    position : declaration of the deepest named nested record at fault,
               ``None`` when the fault is in the record itself or in an
               anonymous nested struct
    field    : first exported field without the tag
    named    : the nested named type declared at ``position``
    """
    ok: bool
    position: Optional[SourceLocation] = None
    field: Optional[Field] = None
    named: Optional[NamedType] = None


COMPLIANT = Verdict(ok=True)


def verify_record(
    record: StructType,
    key: str,
    _active: Optional[Set[StructType]] = None,
) -> Verdict:
    """Check that every exported field of *record*, transitively, carries *key*."""
    active = set() if _active is None else _active
    if record in active:
        return COMPLIANT
    active.add(record)
    try:
        for f in record.fields:
            if not f.exported:
                continue
            if not has_tag(f.tag, key):
                return Verdict(ok=False, field=f)

            t = unwrap_pointer(f.type)
            nested = struct_of(t)
            if nested is None:
                continue
            verdict = verify_record(nested, key, active)
            if verdict.ok:
                continue
            if verdict.position is None and isinstance(t, NamedType) and t.position is not None:
                return Verdict(ok=False, position=t.position, field=verdict.field, named=t)
            return Verdict(
                ok=False,
                position=verdict.position,
                field=verdict.field,
                named=verdict.named,
            )
        return COMPLIANT
    finally:
        active.discard(record)


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — DEDUP / REPORT SINK
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Report:
    position: SourceLocation
    key: str
    message: str
    field: Optional[Field] = None


@dataclass
class ReportSink:
    """
    Collects reports for one analysis run.

    A (position, key) pair is reported at most once, however many call
    sites or recursion paths reach the same record.  Create one sink per
    run; never share it between runs.
    """
    reports: List[Report] = field(default_factory=list)
    _seen: Set[Tuple[SourceLocation, str]] = field(default_factory=set, repr=False)

    def maybe_report(
        self,
        position: SourceLocation,
        key: str,
        offending: Optional[Field] = None,
    ) -> Optional[Report]:
        dedup_key = (position, key)
        if dedup_key in self._seen:
            logger.debug("%s: %r already reported", position, key)
            return None
        self._seen.add(dedup_key)
        report = Report(position, key, MESSAGE_TEMPLATE.format(key=key), offending)
        self.reports.append(report)
        return report

    def __len__(self) -> int:
        return len(self.reports)


__all__ = [
    "MESSAGE_TEMPLATE",
    "Resolution",
    "unwrap_pointer",
    "struct_of",
    "resolve_record",
    "has_tag",
    "Verdict",
    "COMPLIANT",
    "verify_record",
    "Report",
    "ReportSink",
]
