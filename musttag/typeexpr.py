"""
musttag/typeexpr.py — Go type expressions in unit dumps
=======================================================

The front-end writes every static type as the string ``go/types`` prints
for it, e.g.::

    *example.com/app.User
    struct{Name string "json:\\"name\\""; Email string}
    struct { Inner `json:"inner"`; *pkg.Base }
    example.com/app.Page[example.com/app.Item]
    map[string][]example.com/app.Item

This module parses those strings into ``musttag.types`` objects.

Depends on:
    - parsimonious (PEG parser)
"""

from __future__ import annotations

import ast
import logging
from typing import Any, Callable, List

from parsimonious.exceptions import ParseError, VisitationError
from parsimonious.grammar import Grammar
from parsimonious.nodes import Node, NodeVisitor

from musttag.errors import TypeExprError
from musttag.types import (
    Field,
    InterfaceType,
    MapType,
    OpaqueType,
    PointerType,
    SliceType,
    StructType,
    TypeRef,
    short_type_name,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
#  PART 1 — GRAMMAR (Parsimonious PEG)
# ═══════════════════════════════════════════════════════════════════

TYPE_GRAMMAR = Grammar(r'''
    type_root           = _ type_expr _

    type_expr           = pointer_type / slice_type / map_type / struct_type
                        / interface_type / opaque_type / named_type

    pointer_type        = "*" _ type_expr
    slice_type          = "[" _ array_length? _ "]" _ type_expr
    array_length        = ~r"[0-9]+" / "..."
    map_type            = "map" _ "[" _ type_expr _ "]" _ type_expr

    struct_type         = "struct" _ "{" _ field_list? _ "}"
    field_list          = field_decl (_ ";" _ field_decl)* (_ ";")?
    field_decl          = named_field / embedded_field
    named_field         = identifier __ type_expr (_ tag)?
    embedded_field      = embedded_type (_ tag)?
    embedded_type       = "*"? _ named_type

    tag                 = raw_string / interpreted_string
    raw_string          = ~r"`[^`]*`"
    interpreted_string  = ~r'"(?:[^"\\]|\\.)*"'

    interface_type      = ~r"interface\s*\{[^}]*\}" / ~r"any\b"
    opaque_type         = ~r"(?:func|chan)\b[^;{}`\"]*"
    named_type          = qualified_name type_args?
    type_args           = "[" _ type_expr (_ "," _ type_expr)* _ "]"

    qualified_name      = ~r"[^\W\d][\w./\-]*"
    identifier          = ~r"[^\W\d]\w*"

    __                  = ~r"\s+"
    _                   = ~r"\s*"
''')


# ═══════════════════════════════════════════════════════════════════
#  PART 2 — TREE → TYPE OBJECTS
# ═══════════════════════════════════════════════════════════════════

NameResolver = Callable[[str], TypeRef]


def _present(visited: Any) -> List[Any]:
    """Children of an optional / repeated node, ``[]`` when it matched nothing."""
    return visited if isinstance(visited, list) else []


class TypeExprBuilder(NodeVisitor):
    """Turns a parse tree of ``TYPE_GRAMMAR`` into ``TypeRef`` objects."""

    unwrapped_exceptions = (TypeExprError,)

    def __init__(self, resolve_name: NameResolver) -> None:
        self._resolve_name = resolve_name

    def generic_visit(self, node: Node, visited_children: List[Any]) -> Any:
        return visited_children or node

    def visit_type_root(self, node, visited_children):
        return visited_children[1]

    def visit_type_expr(self, node, visited_children):
        return visited_children[0]

    def visit_pointer_type(self, node, visited_children):
        return PointerType(visited_children[2])

    def visit_slice_type(self, node, visited_children):
        length = node.children[2].text.strip() or None
        return SliceType(visited_children[6], length=length)

    def visit_map_type(self, node, visited_children):
        return MapType(visited_children[4], visited_children[8])

    def visit_struct_type(self, node, visited_children):
        fields: List[Field] = []
        for field_list in _present(visited_children[4]):
            fields.extend(field_list)
        return StructType(tuple(fields))

    def visit_field_list(self, node, visited_children):
        first, rest, _ = visited_children
        fields = [first]
        for repetition in _present(rest):
            fields.append(repetition[3])
        return fields

    def visit_field_decl(self, node, visited_children):
        return visited_children[0]

    def visit_named_field(self, node, visited_children):
        name = node.children[0].text
        return Field(
            name=name,
            type=visited_children[2],
            tag=self._optional_tag(visited_children[3]),
        )

    def visit_embedded_field(self, node, visited_children):
        embedded = visited_children[0]
        base = embedded.elem if isinstance(embedded, PointerType) else embedded
        name = short_type_name(str(base))
        return Field(
            name=name,
            type=embedded,
            tag=self._optional_tag(visited_children[1]),
            embedded=True,
        )

    def visit_embedded_type(self, node, visited_children):
        named = visited_children[2]
        if node.children[0].text == "*":
            return PointerType(named)
        return named

    def visit_tag(self, node, visited_children):
        return visited_children[0]

    def visit_raw_string(self, node, visited_children):
        return node.text[1:-1]

    def visit_interpreted_string(self, node, visited_children):
        try:
            return ast.literal_eval(node.text)
        except (ValueError, SyntaxError) as exc:
            raise TypeExprError(
                f"invalid struct tag literal {node.text}: {exc}",
                text=node.full_text,
                column=node.start + 1,
            ) from exc

    def visit_interface_type(self, node, visited_children):
        return InterfaceType(node.text)

    def visit_opaque_type(self, node, visited_children):
        return OpaqueType(node.text.strip())

    def visit_named_type(self, node, visited_children):
        # Instantiated generics keep their arguments: `pkg.List[int]`.
        return self._resolve_name(node.text)

    @staticmethod
    def _optional_tag(visited: Any) -> str:
        for sequence in _present(visited):
            return sequence[1]
        return ""


# ═══════════════════════════════════════════════════════════════════
#  PART 3 — PUBLIC ENTRY POINT
# ═══════════════════════════════════════════════════════════════════

def parse_type(text: str, resolve_name: NameResolver) -> TypeRef:
    """
    Parse a Go type expression.

    *resolve_name* maps every type name that occurs in *text* to a
    ``TypeRef`` (normally through the unit's type registry).

    Raises ``TypeExprError`` when *text* is not a type expression.
    """
    try:
        tree = TYPE_GRAMMAR.parse(text)
    except ParseError as exc:
        raise TypeExprError(
            f"cannot parse type expression {text!r} at column {exc.pos + 1}",
            text=text,
            column=exc.pos + 1,
        ) from exc
    try:
        result = TypeExprBuilder(resolve_name).visit(tree)
    except VisitationError as exc:
        raise TypeExprError(
            f"cannot build type from {text!r}: {exc}",
            text=text,
        ) from exc
    logger.debug("parsed type %r -> %s", text, result)
    return result


__all__ = [
    "TYPE_GRAMMAR",
    "TypeExprBuilder",
    "parse_type",
]
