"""
musttag/types.py
════════════════

Static type and expression model of one Go compilation unit, as handed
to the checker by the type-checking front-end.

Type references
───────────────
A ``TypeRef`` is a tagged variant:

  NamedType      — a declared type name; carries its declaration position
                   and (once loaded) its underlying type
  StructType     — a record: ordered fields with raw struct tags
  PointerType    — one level of indirection
  SliceType      — ``[]T`` / ``[N]T``
  MapType        — ``map[K]V``
  InterfaceType  — ``interface{...}`` / ``any``
  BasicType      — a predeclared type (``string``, ``int``, ...)
  OpaqueType     — anything the checker never looks into (func, chan)

Named types are shared objects: every reference to the same name inside a
unit resolves to the same ``NamedType`` instance, which is what lets a
self-referential declaration (``type Node struct { Next *Node }``) be
represented without infinite construction.

Records compare by identity (``eq=False``) so that they can be tracked in
sets while the verifier walks them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    Dict,
    Iterator,
    List,
    Optional,
    Tuple,
)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — SOURCE POSITIONS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class SourceLocation:
    """A specific point in source code."""
    file: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if self.column:
            return f"{self.file}:{self.line}:{self.column}"
        return f"{self.file}:{self.line}"

    @classmethod
    def parse(cls, text: str, default_file: str = "") -> SourceLocation:
        """
        Parse ``file:line[:column]`` (or ``line[:column]`` when
        *default_file* is given).

        Raises ``ValueError`` on anything else.
        """
        parts = text.rsplit(":", 2)
        numbers: List[int] = []
        while parts and parts[-1].isdigit() and len(numbers) < 2:
            numbers.insert(0, int(parts.pop()))
        if not numbers:
            raise ValueError(f"not a source position: {text!r}")
        file = ":".join(parts) if parts else default_file
        if len(numbers) == 1:
            return cls(file=file, line=numbers[0])
        return cls(file=file, line=numbers[0], column=numbers[1])


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — TYPE REFERENCES
# ═════════════════════════════════════════════════════════════════════════

def short_type_name(name: str) -> str:
    """``example.com/app.Page[example.com/app.Item]`` -> ``Page``"""
    return name.partition("[")[0].rsplit(".", 1)[-1]


class TypeRef:
    """Base of the type variant."""

    __slots__ = ()


@dataclass(eq=False)
class BasicType(TypeRef):
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(eq=False)
class OpaqueType(TypeRef):
    text: str

    def __str__(self) -> str:
        return self.text


@dataclass(eq=False)
class InterfaceType(TypeRef):
    text: str = "interface{}"

    def __str__(self) -> str:
        return self.text


@dataclass(eq=False)
class PointerType(TypeRef):
    elem: TypeRef

    def __str__(self) -> str:
        return f"*{self.elem}"


@dataclass(eq=False)
class SliceType(TypeRef):
    elem: TypeRef
    length: Optional[str] = None

    def __str__(self) -> str:
        return f"[{self.length or ''}]{self.elem}"


@dataclass(eq=False)
class MapType(TypeRef):
    key: TypeRef
    value: TypeRef

    def __str__(self) -> str:
        return f"map[{self.key}]{self.value}"


def is_exported(name: str) -> bool:
    """Go's rule: an identifier is exported iff it starts with an upper-case letter."""
    return name[:1].isupper()


@dataclass(eq=False)
class Field:
    """
    A single struct field.

    ``exported`` is computed once from the name when the field is built.
    For embedded fields the name is the unqualified type name.
    """
    name: str
    type: TypeRef
    tag: str = ""
    embedded: bool = False
    exported: bool = field(init=False)

    def __post_init__(self) -> None:
        self.exported = is_exported(self.name)

    def __str__(self) -> str:
        head = str(self.type) if self.embedded else f"{self.name} {self.type}"
        if self.tag:
            return f"{head} `{self.tag}`"
        return head


@dataclass(eq=False)
class StructType(TypeRef):
    """A record type.  Field order is declaration order."""
    fields: Tuple[Field, ...] = ()

    def __iter__(self) -> Iterator[Field]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def field_named(self, name: str) -> Optional[Field]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def __str__(self) -> str:
        if not self.fields:
            return "struct{}"
        return "struct{" + "; ".join(str(f) for f in self.fields) + "}"


@dataclass(eq=False)
class NamedType(TypeRef):
    """
    A declared type name.

    ``position`` is the declaration site of the name, ``None`` for names
    the dump only references.  The underlying type is attached by the
    loader after every name of the unit exists.
    """
    name: str
    position: Optional[SourceLocation] = None
    _underlying: Optional[TypeRef] = field(default=None, repr=False)

    @property
    def underlying(self) -> Optional[TypeRef]:
        """The underlying type; chains of named types are followed."""
        t = self._underlying
        seen = {id(self)}
        while isinstance(t, NamedType):
            if id(t) in seen:
                return None
            seen.add(id(t))
            t = t._underlying
        return t

    def set_underlying(self, t: Optional[TypeRef]) -> None:
        self._underlying = t

    def __str__(self) -> str:
        return self.name


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — VARIABLES, EXPRESSIONS, CALL SITES
# ═════════════════════════════════════════════════════════════════════════

@dataclass(eq=False)
class Variable:
    name: str
    position: SourceLocation
    type: Optional[TypeRef] = None


@dataclass(eq=False)
class Expr:
    """An argument expression with its static type (``None`` if unknown)."""
    type: Optional[TypeRef]
    position: SourceLocation


@dataclass(eq=False)
class Ident(Expr):
    """A reference to a variable: ``x``."""
    name: str = ""
    var: Optional[Variable] = None


@dataclass(eq=False)
class UnaryExpr(Expr):
    """``&x`` or ``*x``."""
    op: str = "&"
    operand: Optional[Expr] = None


@dataclass(eq=False)
class CompositeLit(Expr):
    """An inline construction: ``T{...}`` / ``struct{...}{...}``."""


@dataclass(eq=False)
class OpaqueExpr(Expr):
    """Any other expression shape (call, selector, index, ...)."""
    kind: str = ""


@dataclass(eq=False)
class CallSite:
    """
    A call expression.

    ``callee`` is the full name of the statically resolved function or
    method (``encoding/json.Marshal``, ``(*encoding/json.Encoder).Encode``),
    ``None`` when the call has no static callee.
    """
    callee: Optional[str]
    args: Tuple[Expr, ...]
    position: SourceLocation


@dataclass(frozen=True)
class Suppression:
    """A ``//nolint:musttag``-style marker reported by the front-end."""
    file: str
    line: int = 0
    error_id: str = "*"


@dataclass(eq=False)
class CompilationUnit:
    """Everything the checker knows about one compilation unit."""
    file: str = ""
    package: str = ""
    types: Dict[str, NamedType] = field(default_factory=dict)
    variables: Dict[str, Variable] = field(default_factory=dict)
    calls: List[CallSite] = field(default_factory=list)
    suppressions: List[Suppression] = field(default_factory=list)

    def __str__(self) -> str:
        return self.file or self.package or "<unit>"


__all__ = [
    "SourceLocation",
    "TypeRef",
    "BasicType",
    "OpaqueType",
    "InterfaceType",
    "PointerType",
    "SliceType",
    "MapType",
    "Field",
    "StructType",
    "NamedType",
    "is_exported",
    "short_type_name",
    "Variable",
    "Expr",
    "Ident",
    "UnaryExpr",
    "CompositeLit",
    "OpaqueExpr",
    "CallSite",
    "Suppression",
    "CompilationUnit",
]
