# tests/test_rules.py
"""
Tests for the serialization rule table and the call matcher.
"""

import pytest

from musttag.errors import MustTagError, RuleError
from musttag.rules import BUILTIN_RULES, RuleTable, SerializationRule, parse_rule
from musttag.types import BasicType, OpaqueExpr
from tests.conftest import call, loc


def arg(n: int = 0):
    return OpaqueExpr(type=BasicType("int"), position=loc(20, 10 + n), kind=f"arg{n}")


class TestBuiltinTable:

    def test_callees_are_unique(self):
        callees = [r.callee for r in BUILTIN_RULES]
        assert len(callees) == len(set(callees))

    def test_keys(self):
        assert RuleTable.default().keys == ("json", "mapstructure", "toml", "xml", "yaml")

    @pytest.mark.parametrize("callee, key, index", [
        ("encoding/json.Marshal", "json", 0),
        ("encoding/json.MarshalIndent", "json", 0),
        ("(*encoding/json.Encoder).Encode", "json", 0),
        ("(*encoding/json.Decoder).Decode", "json", 0),
        ("encoding/json.Unmarshal", "json", 1),
        ("(*encoding/xml.Encoder).EncodeElement", "xml", 0),
        ("encoding/xml.Unmarshal", "xml", 1),
        ("gopkg.in/yaml.v3.Unmarshal", "yaml", 1),
        ("github.com/BurntSushi/toml.DecodeFile", "toml", 1),
        ("github.com/mitchellh/mapstructure.Decode", "mapstructure", 1),
    ])
    def test_entries(self, callee, key, index):
        rule = RuleTable.default().get(callee)
        assert rule == SerializationRule(callee, key, index)


class TestMatch:

    def test_marshal_matches_first_argument(self):
        first = arg(0)
        m = RuleTable.default().match(call("encoding/json.Marshal", first))
        assert m is not None
        assert m.key == "json"
        assert m.expr is first

    def test_unmarshal_matches_second_argument(self):
        data, target = arg(0), arg(1)
        m = RuleTable.default().match(call("encoding/json.Unmarshal", data, target))
        assert m.expr is target

    def test_too_few_arguments(self):
        assert RuleTable.default().match(call("encoding/json.Unmarshal", arg(0))) is None

    def test_unknown_callee(self):
        assert RuleTable.default().match(call("fmt.Println", arg(0))) is None

    def test_no_static_callee(self):
        assert RuleTable.default().match(call(None, arg(0))) is None

    def test_match_has_no_side_effects(self):
        table = RuleTable.default()
        c = call("encoding/json.Marshal", arg(0))
        assert table.match(c) == table.match(c)
        assert len(table) == len(BUILTIN_RULES)


class TestParseRule:

    def test_valid(self):
        rule = parse_rule("example.com/pkg.Save:json:1")
        assert rule == SerializationRule("example.com/pkg.Save", "json", 1)

    def test_method_name(self):
        rule = parse_rule("(*example.com/pkg.Store).Put:bson:0")
        assert rule.callee == "(*example.com/pkg.Store).Put"
        assert rule.key == "bson"

    def test_whitespace_is_stripped(self):
        assert parse_rule(" pkg.F : db : 2 ").arg_index == 2

    @pytest.mark.parametrize("text", [
        "",
        "pkg.F",
        "pkg.F:json",
        ":json:0",
        "pkg.F::0",
        "pkg.F:json:",
        "pkg.F:json:x",
        "pkg.F:json:-1",
        'pkg.F:js"on:0',
    ])
    def test_invalid(self, text):
        with pytest.raises(RuleError):
            parse_rule(text)

    def test_rule_error_is_musttag_error(self):
        with pytest.raises(MustTagError) as info:
            parse_rule("bad")
        assert "[MT-2000]" in str(info.value)


class TestTableConstruction:

    def test_from_specs_adds_to_builtin(self):
        table = RuleTable.from_specs(["example.com/pkg.Save:json:1"])
        assert "example.com/pkg.Save" in table
        assert "encoding/json.Marshal" in table
        assert len(table) == len(BUILTIN_RULES) + 1

    def test_from_specs_without_builtin(self):
        table = RuleTable.from_specs(["pkg.Save:json:0"], include_builtin=False)
        assert list(table) == [SerializationRule("pkg.Save", "json", 0)]

    def test_custom_rule_overrides_builtin(self):
        table = RuleTable.from_specs(["encoding/json.Marshal:yaml:0"])
        assert table.get("encoding/json.Marshal").key == "yaml"
        assert len(table) == len(BUILTIN_RULES)

    def test_extended_leaves_original_untouched(self):
        base = RuleTable.default()
        bigger = base.extended([SerializationRule("pkg.Save", "json", 0)])
        assert "pkg.Save" in bigger
        assert "pkg.Save" not in base

    def test_custom_rule_matches(self):
        table = RuleTable.from_specs(["example.com/db.Insert:db:2"])
        value = arg(2)
        m = table.match(call("example.com/db.Insert", arg(0), arg(1), value))
        assert m.key == "db"
        assert m.expr is value
