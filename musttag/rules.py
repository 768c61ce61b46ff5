"""
musttag/rules.py
════════════════

The table of known serialization entry points and the call matcher.

Each ``SerializationRule`` maps the full name of a Go function or method
(as ``go/types`` prints it) to the struct tag key the serializer reads and
the index of the argument that carries the value.  The table is built once
before a run and is read-only afterwards; adding an API is a configuration
change, never a change to the analysis.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import (
    Dict,
    Iterable,
    Iterator,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from musttag.errors import RuleError
from musttag.types import CallSite, Expr

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SerializationRule:
    callee: str
    key: str
    arg_index: int

    def __str__(self) -> str:
        return f"{self.callee}:{self.key}:{self.arg_index}"


@dataclass(frozen=True)
class Match:
    """A call that feeds a value into a known serializer."""
    key: str
    expr: Expr
    rule: SerializationRule


def _rules(key: str, arg_index: int, *callees: str) -> Tuple[SerializationRule, ...]:
    return tuple(SerializationRule(c, key, arg_index) for c in callees)


BUILTIN_RULES: Tuple[SerializationRule, ...] = (
    # encoding/json
    *_rules(
        "json", 0,
        "encoding/json.Marshal",
        "encoding/json.MarshalIndent",
        "(*encoding/json.Encoder).Encode",
        "(*encoding/json.Decoder).Decode",
    ),
    *_rules("json", 1, "encoding/json.Unmarshal"),
    # encoding/xml
    *_rules(
        "xml", 0,
        "encoding/xml.Marshal",
        "encoding/xml.MarshalIndent",
        "(*encoding/xml.Encoder).Encode",
        "(*encoding/xml.Encoder).EncodeElement",
        "(*encoding/xml.Decoder).Decode",
        "(*encoding/xml.Decoder).DecodeElement",
    ),
    *_rules("xml", 1, "encoding/xml.Unmarshal"),
    # gopkg.in/yaml.v3
    *_rules(
        "yaml", 0,
        "gopkg.in/yaml.v3.Marshal",
        "(*gopkg.in/yaml.v3.Encoder).Encode",
        "(*gopkg.in/yaml.v3.Decoder).Decode",
    ),
    *_rules("yaml", 1, "gopkg.in/yaml.v3.Unmarshal"),
    # github.com/BurntSushi/toml
    *_rules(
        "toml", 0,
        "(*github.com/BurntSushi/toml.Encoder).Encode",
        "(*github.com/BurntSushi/toml.Decoder).Decode",
    ),
    *_rules(
        "toml", 1,
        "github.com/BurntSushi/toml.Unmarshal",
        "github.com/BurntSushi/toml.Decode",
        "github.com/BurntSushi/toml.DecodeFile",
    ),
    # github.com/mitchellh/mapstructure
    *_rules(
        "mapstructure", 1,
        "github.com/mitchellh/mapstructure.Decode",
        "github.com/mitchellh/mapstructure.DecodeMetadata",
        "github.com/mitchellh/mapstructure.WeakDecode",
        "github.com/mitchellh/mapstructure.WeakDecodeMetadata",
    ),
)


def parse_rule(text: str) -> SerializationRule:
    """
    Parse a custom rule written as ``NAME:KEY:ARGPOS``, e.g.
    ``example.com/pkg.Encode:json:0``.
    """
    parts = text.rsplit(":", 2)
    if len(parts) != 3 or not all(p.strip() for p in parts):
        raise RuleError(f"expected NAME:KEY:ARGPOS, got {text!r}")
    callee, key, raw_index = (p.strip() for p in parts)
    try:
        arg_index = int(raw_index)
    except ValueError:
        raise RuleError(f"argument position must be an integer in {text!r}") from None
    if arg_index < 0:
        raise RuleError(f"argument position must not be negative in {text!r}")
    if any(ch.isspace() or ch in ':"' for ch in key):
        raise RuleError(f"invalid tag key {key!r} in {text!r}")
    return SerializationRule(callee, key, arg_index)


class RuleTable:
    """
    Immutable callee → rule lookup.

    Usage
    -----
    >>> table = RuleTable.default().extended([parse_rule("pkg.Save:json:1")])
    >>> m = table.match(call)
    >>> if m is not None:
    ...     check(m.expr, m.key)
    """

    def __init__(self, rules: Iterable[SerializationRule] = ()) -> None:
        by_callee: Dict[str, SerializationRule] = {}
        for rule in rules:
            if rule.callee in by_callee and by_callee[rule.callee] != rule:
                logger.info("rule %s overrides %s", rule, by_callee[rule.callee])
            by_callee[rule.callee] = rule
        self._by_callee: Mapping[str, SerializationRule] = MappingProxyType(by_callee)

    @classmethod
    def default(cls) -> RuleTable:
        return cls(BUILTIN_RULES)

    @classmethod
    def from_specs(cls, specs: Sequence[str], include_builtin: bool = True) -> RuleTable:
        base = BUILTIN_RULES if include_builtin else ()
        return cls((*base, *(parse_rule(s) for s in specs)))

    def extended(self, rules: Iterable[SerializationRule]) -> RuleTable:
        return RuleTable((*self._by_callee.values(), *rules))

    def get(self, callee: str) -> Optional[SerializationRule]:
        return self._by_callee.get(callee)

    def match(self, call: CallSite) -> Optional[Match]:
        """
        Decide whether *call* feeds a value into a known serializer.

        Returns ``None`` when the call has no static callee, the callee is
        not in the table, or the call has too few arguments.
        """
        if call.callee is None:
            return None
        rule = self._by_callee.get(call.callee)
        if rule is None:
            return None
        if rule.arg_index >= len(call.args):
            logger.debug(
                "%s: call to %s has %d argument(s), value expected at %d",
                call.position, call.callee, len(call.args), rule.arg_index,
            )
            return None
        return Match(rule.key, call.args[rule.arg_index], rule)

    @property
    def keys(self) -> Tuple[str, ...]:
        return tuple(sorted({r.key for r in self._by_callee.values()}))

    def __contains__(self, callee: object) -> bool:
        return callee in self._by_callee

    def __iter__(self) -> Iterator[SerializationRule]:
        return iter(self._by_callee.values())

    def __len__(self) -> int:
        return len(self._by_callee)

    def __repr__(self) -> str:
        return f"<RuleTable {len(self)} rules>"


__all__ = [
    "SerializationRule",
    "Match",
    "BUILTIN_RULES",
    "parse_rule",
    "RuleTable",
]
