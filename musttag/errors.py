# musttag/errors.py
"""
Error types raised while loading checker inputs.

The analysis itself never raises: an unknown callee, a non-record type or
an unsupported expression shape simply means "not applicable" and the
call site is skipped.  Errors only come from the outer layers:

  MustTagError (base)
  ├── DumpError      - unreadable or malformed unit dump
  ├── TypeExprError  - a type expression in a dump does not parse
  └── RuleError      - malformed custom serialization rule
"""

from __future__ import annotations

from typing import Optional


class MustTagError(Exception):
    """Base class for every error raised by musttag."""

    code: str = "MT-0000"

    def __init__(self, message: str, *, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.source = source

    def __str__(self) -> str:
        if self.source:
            return f"{self.source}: {self.message} [{self.code}]"
        return f"{self.message} [{self.code}]"


class DumpError(MustTagError):
    """The unit dump cannot be read or does not have the expected shape."""

    code = "MT-1000"


class TypeExprError(DumpError):
    """A type expression could not be parsed."""

    code = "MT-1100"

    def __init__(
        self,
        message: str,
        *,
        text: str = "",
        column: int = 0,
        source: Optional[str] = None,
    ) -> None:
        super().__init__(message, source=source)
        self.text = text
        self.column = column


class RuleError(MustTagError):
    """A custom serialization rule is malformed."""

    code = "MT-2000"


__all__ = [
    "MustTagError",
    "DumpError",
    "TypeExprError",
    "RuleError",
]
