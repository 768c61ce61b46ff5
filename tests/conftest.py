# tests/conftest.py
"""
Shared factories for building compilation units by hand, plus a few
ready-made unit dump documents.
"""

from typing import Any, Dict, Optional

import pytest

from musttag.types import (
    CallSite,
    CompilationUnit,
    CompositeLit,
    Field,
    Ident,
    NamedType,
    PointerType,
    SourceLocation,
    StructType,
    UnaryExpr,
    Variable,
)
from musttag.dump import TypeRegistry


def loc(line: int, column: int = 1, file: str = "main.go") -> SourceLocation:
    return SourceLocation(file=file, line=line, column=column)


def struct(*fields: Field) -> StructType:
    return StructType(tuple(fields))


def named(name: str, record: Optional[StructType], line: int = 1, column: int = 6) -> NamedType:
    t = NamedType(name=name, position=loc(line, column, file="types.go"))
    t.set_underlying(record)
    return t


def ptr(t):
    return PointerType(t)


def ident_of(var: Variable, line: int = 20, column: int = 10) -> Ident:
    return Ident(type=var.type, position=loc(line, column), name=var.name, var=var)


def addr_of(expr) -> UnaryExpr:
    return UnaryExpr(type=PointerType(expr.type), position=expr.position, op="&", operand=expr)


def composite(t, line: int = 20, column: int = 10) -> CompositeLit:
    return CompositeLit(type=t, position=loc(line, column))


def call(callee: Optional[str], *args, line: int = 20) -> CallSite:
    return CallSite(callee=callee, args=tuple(args), position=loc(line, 2))


def unit(*calls: CallSite, **kwargs) -> CompilationUnit:
    return CompilationUnit(file="main.go", calls=list(calls), **kwargs)


def registry(package: str = "example.com/app") -> TypeRegistry:
    return TypeRegistry(package)


# ── dump documents ──────────────────────────────────────────────────

def user_dump(email_tag: str = "") -> Dict[str, Any]:
    """``type User struct { Name string `json:"name"`; Email string }`` marshaled once."""
    email = f'Email string `{email_tag}`' if email_tag else "Email string"
    return {
        "file": "main.go",
        "package": "example.com/app",
        "types": [
            {
                "name": "example.com/app.User",
                "pos": "main.go:5:6",
                "underlying": f'struct {{ Name string `json:"name"`; {email} }}',
            },
        ],
        "vars": [
            {"id": "v1", "name": "u", "pos": "main.go:11:2", "type": "example.com/app.User"},
        ],
        "calls": [
            {
                "callee": "encoding/json.Marshal",
                "pos": "main.go:12:9",
                "args": [
                    {"kind": "ident", "var": "v1", "pos": "main.go:12:22",
                     "type": "example.com/app.User"},
                ],
            },
        ],
    }


@pytest.fixture
def user_doc():
    return user_dump()
