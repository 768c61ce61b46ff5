r"""
musttag/dump.py
═══════════════

Loader for unit dumps: the JSON documents a Go type-checking front-end
writes for each compilation unit, analogous to ``cppcheck --dump``.

Document shape
──────────────
::

    {
      "file": "main.go",
      "package": "example.com/app",
      "types":  [{"name": "example.com/app.User", "pos": "main.go:5:6",
                  "underlying": "struct { Name string `json:\"name\"` }"}],
      "vars":   [{"id": "v1", "name": "u", "pos": "main.go:9:6",
                  "type": "example.com/app.User"}],
      "calls":  [{"callee": "encoding/json.Marshal", "pos": "main.go:10:9",
                  "args": [{"kind": "ident", "var": "v1",
                            "pos": "main.go:10:22",
                            "type": "example.com/app.User"}]}],
      "suppressions": [{"file": "main.go", "line": 10, "id": "musttag"}]
    }

A document may instead hold ``{"units": [...]}``.

Loading is two-phase: every declared name first becomes an empty
``NamedType`` shell, then the underlying types are parsed.  This way a
declaration may mention itself or a later declaration.  A type string the
grammar cannot read loads as an ``OpaqueType``; it is never a record, so
only call sites that serialize it are skipped.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Union,
)

from musttag.errors import DumpError, TypeExprError
from musttag.typeexpr import parse_type
from musttag.types import (
    BasicType,
    CallSite,
    CompilationUnit,
    CompositeLit,
    Expr,
    Ident,
    NamedType,
    OpaqueExpr,
    OpaqueType,
    SourceLocation,
    Suppression,
    TypeRef,
    UnaryExpr,
    Variable,
)

logger = logging.getLogger(__name__)

# Go predeclared types.  ``error`` is an interface, ``any`` is handled by the
# grammar; none of them is a record.
PREDECLARED_TYPES = frozenset({
    "bool", "byte", "rune", "string", "error", "uintptr",
    "int", "int8", "int16", "int32", "int64",
    "uint", "uint8", "uint16", "uint32", "uint64",
    "float32", "float64", "complex64", "complex128",
    "unsafe.Pointer",
})


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — TYPE REGISTRY
# ═════════════════════════════════════════════════════════════════════════

class TypeRegistry:
    """
    Name → type lookup for one unit.

    Declared names resolve to their ``NamedType``; a bare name is also
    tried qualified with the unit's package path.  Predeclared names give
    a ``BasicType``.  Any other name becomes an opaque ``NamedType`` with
    no declaration and no underlying type.  Lookups are cached so that a
    name always maps to the same object.
    """

    def __init__(self, package: str = "") -> None:
        self.package = package
        self._named: Dict[str, NamedType] = {}
        self._basic: Dict[str, BasicType] = {}
        self._unknown: Dict[str, NamedType] = {}

    def declare(self, name: str, position: Optional[SourceLocation]) -> NamedType:
        if name in self._named:
            raise DumpError(f"type {name!r} declared twice")
        named = NamedType(name=name, position=position)
        self._named[name] = named
        return named

    @property
    def declared(self) -> Dict[str, NamedType]:
        return dict(self._named)

    def _declared(self, name: str) -> Optional[NamedType]:
        if name in self._named:
            return self._named[name]
        if self.package and "." not in name.partition("[")[0]:
            return self._named.get(f"{self.package}.{name}")
        return None

    def lookup(self, name: str) -> TypeRef:
        named = self._declared(name)
        if named is not None:
            return named
        origin_name = name.partition("[")[0]
        if origin_name != name:
            # An instantiation the front-end did not declare shares the
            # fields and tags of its generic declaration.
            origin = self._declared(origin_name)
            if origin is not None:
                logger.debug("type %s resolved to generic %s", name, origin)
                return origin
        if name in PREDECLARED_TYPES:
            return self._basic.setdefault(name, BasicType(name))
        if name not in self._unknown:
            logger.debug("type %s is not declared in this unit", name)
            self._unknown[name] = NamedType(name=name)
        return self._unknown[name]

    def parse(self, text: str) -> TypeRef:
        return parse_type(text, self.lookup)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — DOCUMENT → COMPILATION UNIT
# ═════════════════════════════════════════════════════════════════════════

class _UnitLoader:
    """Builds one ``CompilationUnit`` from one decoded JSON object."""

    def __init__(self, doc: Mapping[str, Any], source: str) -> None:
        self.doc = doc
        self.source = source
        self.file = str(doc.get("file", ""))
        self.registry = TypeRegistry(str(doc.get("package", "")))
        self.variables: Dict[str, Variable] = {}

    # ── helpers ──────────────────────────────────────────────────────

    def _fail(self, message: str) -> DumpError:
        return DumpError(message, source=self.source)

    def _pos(self, raw: Any, what: str) -> SourceLocation:
        if raw is None:
            raise self._fail(f"{what}: missing position")
        try:
            return SourceLocation.parse(str(raw), default_file=self.file)
        except ValueError as exc:
            raise self._fail(f"{what}: {exc}") from exc

    def _type(self, raw: Any, what: str) -> Optional[TypeRef]:
        if raw is None or raw == "":
            return None
        try:
            return self.registry.parse(str(raw))
        except TypeExprError as exc:
            logger.debug("%s: %s: treating type as opaque: %s", self.source, what, exc)
            return OpaqueType(str(raw))

    def _line(self, raw: Any, what: str) -> int:
        try:
            line = int(raw)
        except (TypeError, ValueError) as exc:
            raise self._fail(f"{what}: line must be an integer, got {raw!r}") from exc
        if line < 0:
            raise self._fail(f"{what}: negative line {line}")
        return line

    def _entries(self, key: str) -> List[Mapping[str, Any]]:
        value = self.doc.get(key, [])
        if not isinstance(value, list):
            raise self._fail(f"{key!r} must be a list")
        for entry in value:
            if not isinstance(entry, Mapping):
                raise self._fail(f"{key!r} entries must be objects, got {entry!r}")
        return value

    # ── sections ─────────────────────────────────────────────────────

    def load(self) -> CompilationUnit:
        shells = []
        for entry in self._entries("types"):
            name = entry.get("name")
            if not name:
                raise self._fail("type declaration without a name")
            pos = self._pos(entry["pos"], f"type {name}") if entry.get("pos") else None
            try:
                named = self.registry.declare(str(name), pos)
            except DumpError as exc:
                exc.source = self.source
                raise
            shells.append((named, entry))
        for named, entry in shells:
            named.set_underlying(self._type(entry.get("underlying"), f"type {named.name}"))

        for entry in self._entries("vars"):
            name = entry.get("name", "")
            var = Variable(
                name=name,
                position=self._pos(entry.get("pos"), f"var {name}"),
                type=self._type(entry.get("type"), f"var {name}"),
            )
            self.variables[str(entry.get("id", name))] = var

        calls = [self._call(entry) for entry in self._entries("calls")]

        suppressions = [
            Suppression(
                file=str(entry.get("file", self.file)),
                line=self._line(entry.get("line", 0), "suppression"),
                error_id=str(entry.get("id", "*")),
            )
            for entry in self._entries("suppressions")
        ]

        unit = CompilationUnit(
            file=self.file,
            package=self.registry.package,
            types=self.registry.declared,
            variables=self.variables,
            calls=calls,
            suppressions=suppressions,
        )
        logger.info(
            "loaded unit %s: %d types, %d vars, %d calls",
            unit, len(unit.types), len(unit.variables), len(unit.calls),
        )
        return unit

    def _call(self, entry: Mapping[str, Any]) -> CallSite:
        callee = entry.get("callee") or None
        args = entry.get("args", [])
        if not isinstance(args, list):
            raise self._fail(f"call {callee}: 'args' must be a list")
        return CallSite(
            callee=callee,
            args=tuple(self._expr(arg) for arg in args),
            position=self._pos(entry.get("pos"), f"call {callee}"),
        )

    def _expr(self, entry: Mapping[str, Any]) -> Expr:
        if not isinstance(entry, Mapping):
            raise self._fail(f"expression must be an object, got {entry!r}")
        kind = entry.get("kind", "")
        pos = self._pos(entry.get("pos"), f"{kind or 'expression'}")
        t = self._type(entry.get("type"), f"expression at {pos}")

        if kind == "ident":
            var_id = entry.get("var", entry.get("name"))
            var = self.variables.get(str(var_id)) if var_id is not None else None
            return Ident(type=t, position=pos, name=str(entry.get("name", "")), var=var)
        if kind == "unary":
            operand = entry.get("operand")
            return UnaryExpr(
                type=t,
                position=pos,
                op=str(entry.get("op", "&")),
                operand=self._expr(operand) if operand is not None else None,
            )
        if kind == "composite":
            return CompositeLit(type=t, position=pos)
        return OpaqueExpr(type=t, position=pos, kind=str(kind))


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — PUBLIC ENTRY POINTS
# ═════════════════════════════════════════════════════════════════════════

def load_units(doc: Any, source: str = "<dump>") -> List[CompilationUnit]:
    """Build compilation units from an already decoded dump document."""
    if not isinstance(doc, Mapping):
        raise DumpError("dump must be a JSON object", source=source)
    if "units" in doc:
        units = doc["units"]
        if not isinstance(units, list):
            raise DumpError("'units' must be a list", source=source)
        return [
            _UnitLoader(unit, f"{source}[{idx}]").load()
            for idx, unit in enumerate(units)
        ]
    return [_UnitLoader(doc, source).load()]


def parsedump(path: Union[str, Path]) -> List[CompilationUnit]:
    """Read and load a unit dump file."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise DumpError(f"cannot read dump: {exc.strerror}", source=str(p)) from exc
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DumpError(
            f"invalid JSON at line {exc.lineno} column {exc.colno}: {exc.msg}",
            source=str(p),
        ) from exc
    return load_units(doc, source=str(p))


def parsedumps(paths: Iterable[Union[str, Path]]) -> List[CompilationUnit]:
    units: List[CompilationUnit] = []
    for path in paths:
        units.extend(parsedump(path))
    return units


__all__ = [
    "PREDECLARED_TYPES",
    "TypeRegistry",
    "load_units",
    "parsedump",
    "parsedumps",
]
