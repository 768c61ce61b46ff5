# tests/test_dump.py
"""
Tests for the unit dump loader.
"""

import json
import logging

import pytest

from musttag.dump import TypeRegistry, load_units, parsedump, parsedumps
from musttag.errors import DumpError
from musttag.types import (
    BasicType,
    CompositeLit,
    Ident,
    NamedType,
    OpaqueExpr,
    OpaqueType,
    PointerType,
    StructType,
    UnaryExpr,
)
from tests.conftest import loc, user_dump


class TestTypeRegistry:

    def test_declare_twice(self):
        reg = TypeRegistry("example.com/app")
        reg.declare("example.com/app.User", None)
        with pytest.raises(DumpError):
            reg.declare("example.com/app.User", None)

    def test_bare_name_is_package_qualified(self):
        reg = TypeRegistry("example.com/app")
        user = reg.declare("example.com/app.User", loc(5, 6))
        assert reg.lookup("User") is user

    def test_predeclared_is_cached(self):
        reg = TypeRegistry()
        s = reg.lookup("string")
        assert isinstance(s, BasicType)
        assert reg.lookup("string") is s

    def test_declared_mapping_is_a_copy(self):
        reg = TypeRegistry()
        reg.declare("T", None)
        reg.declared.clear()
        assert "T" in reg.declared


class TestLoadUnit:

    def test_user_dump(self, user_doc):
        (unit,) = load_units(user_doc)
        assert unit.file == "main.go"
        assert unit.package == "example.com/app"

        user = unit.types["example.com/app.User"]
        assert user.position == loc(5, 6)
        record = user.underlying
        assert isinstance(record, StructType)
        assert [f.name for f in record] == ["Name", "Email"]
        assert record.field_named("Name").tag == 'json:"name"'
        assert record.field_named("Email").tag == ""

        var = unit.variables["v1"]
        assert var.name == "u"
        assert var.type is user

        (c,) = unit.calls
        assert c.callee == "encoding/json.Marshal"
        assert c.position == loc(12, 9)
        (a,) = c.args
        assert isinstance(a, Ident)
        assert a.var is var
        assert a.type is user

    def test_forward_and_self_references(self):
        doc = {
            "file": "list.go",
            "package": "example.com/list",
            "types": [
                {"name": "example.com/list.List", "pos": "list.go:3:6",
                 "underlying": 'struct { Head *Node `json:"head"` }'},
                {"name": "example.com/list.Node", "pos": "list.go:7:6",
                 "underlying": 'struct { Next *Node `json:"next"`; V int `json:"v"` }'},
            ],
        }
        (unit,) = load_units(doc)
        lst = unit.types["example.com/list.List"]
        node = unit.types["example.com/list.Node"]
        assert lst.underlying.fields[0].type.elem is node
        assert node.underlying.fields[0].type.elem is node

    def test_named_alias_chain(self):
        doc = {
            "file": "a.go",
            "package": "p",
            "types": [
                {"name": "p.A", "pos": "a.go:1:6", "underlying": "p.B"},
                {"name": "p.B", "pos": "a.go:2:6", "underlying": "struct { X int }"},
            ],
        }
        (unit,) = load_units(doc)
        assert isinstance(unit.types["p.A"].underlying, StructType)

    def test_expression_kinds(self):
        doc = {
            "file": "main.go",
            "vars": [{"id": "v1", "name": "x", "pos": "main.go:9:6", "type": "struct { X int }"}],
            "calls": [
                {"callee": "encoding/json.Marshal", "pos": "main.go:12:9", "args": [
                    {"kind": "unary", "op": "&", "pos": "main.go:12:22",
                     "type": "*struct { X int }",
                     "operand": {"kind": "ident", "var": "v1", "pos": "main.go:12:23",
                                 "type": "struct { X int }"}},
                ]},
                {"callee": "encoding/json.Marshal", "pos": "main.go:14:9", "args": [
                    {"kind": "composite", "pos": "main.go:14:22", "type": "struct { Y int }"},
                ]},
                {"pos": "main.go:16:2", "args": [
                    {"kind": "call", "pos": "main.go:16:4"},
                ]},
            ],
        }
        (unit,) = load_units(doc)
        first, second, third = unit.calls

        unary = first.args[0]
        assert isinstance(unary, UnaryExpr)
        assert isinstance(unary.type, PointerType)
        assert isinstance(unary.operand, Ident)
        assert unary.operand.var is unit.variables["v1"]

        assert isinstance(second.args[0], CompositeLit)
        assert second.args[0].position == loc(14, 22)

        assert third.callee is None
        assert isinstance(third.args[0], OpaqueExpr)
        assert third.args[0].type is None
        assert third.args[0].kind == "call"

    def test_positions_without_file_use_the_unit_file(self):
        doc = user_dump()
        doc["calls"][0]["pos"] = "12:9"
        (unit,) = load_units(doc)
        assert unit.calls[0].position == loc(12, 9)

    def test_undeclared_names_are_opaque(self):
        doc = {
            "file": "main.go",
            "vars": [{"id": "t", "name": "t", "pos": "main.go:3:2", "type": "time.Time"}],
        }
        (unit,) = load_units(doc)
        t = unit.variables["t"].type
        assert isinstance(t, NamedType)
        assert t.underlying is None

    def test_suppressions(self):
        doc = user_dump()
        doc["suppressions"] = [
            {"file": "main.go", "line": 12, "id": "musttag"},
            {"file": "gen.go"},
        ]
        (unit,) = load_units(doc)
        first, second = unit.suppressions
        assert (first.file, first.line, first.error_id) == ("main.go", 12, "musttag")
        assert (second.file, second.line, second.error_id) == ("gen.go", 0, "*")

    def test_units_document(self):
        doc = {"units": [user_dump(), dict(user_dump(), file="other.go")]}
        units = load_units(doc)
        assert [u.file for u in units] == ["main.go", "other.go"]
        # each unit has its own registry
        assert units[0].types["example.com/app.User"] is not units[1].types["example.com/app.User"]


class TestUnreadableTypes:

    def test_generic_field_next_to_other_records(self):
        doc = user_dump()
        doc["types"].append({
            "name": "example.com/app.Box",
            "pos": "main.go:8:6",
            "underlying": 'struct { Items example.com/app.List[int] `json:"items"` }',
        })
        (unit,) = load_units(doc)
        box = unit.types["example.com/app.Box"].underlying
        assert isinstance(box, StructType)
        assert box.fields[0].type.name == "example.com/app.List[int]"
        assert len(unit.calls) == 1

    def test_unparseable_underlying_becomes_opaque(self, caplog):
        doc = user_dump()
        doc["types"][0]["underlying"] = "struct { Name string"
        with caplog.at_level(logging.DEBUG, logger="musttag"):
            (unit,) = load_units(doc, source="u.json")
        user = unit.types["example.com/app.User"]
        assert isinstance(user.underlying, OpaqueType)
        assert "u.json" in caplog.text
        assert "opaque" in caplog.text

    def test_unparseable_expression_type_becomes_opaque(self):
        doc = user_dump()
        doc["vars"][0]["type"] = "[[example.com/app.User"
        doc["calls"][0]["args"][0]["type"] = "[[example.com/app.User"
        (unit,) = load_units(doc)
        assert isinstance(unit.variables["v1"].type, OpaqueType)
        assert isinstance(unit.calls[0].args[0].type, OpaqueType)


class TestLoadErrors:

    @pytest.mark.parametrize("doc", [
        [],
        {"units": {}},
        {"types": {}},
        {"types": ["User"]},
        {"types": [{"pos": "a.go:1"}]},
        {"vars": [{"name": "x", "pos": "nowhere"}]},
        {"vars": [{"name": "x"}]},
        {"calls": [{"callee": "f", "pos": "a.go:1", "args": {}}]},
        {"calls": [{"callee": "f", "pos": "a.go:1", "args": ["x"]}]},
    ])
    def test_malformed(self, doc):
        with pytest.raises(DumpError):
            load_units(doc, source="bad.json")

    def test_duplicate_type_names_source(self):
        doc = user_dump()
        doc["types"].append(dict(doc["types"][0]))
        with pytest.raises(DumpError) as info:
            load_units(doc, source="dup.json")
        assert info.value.source == "dup.json"
        assert "declared twice" in str(info.value)

    @pytest.mark.parametrize("line", ["twelve", None, [3], -1])
    def test_malformed_suppression_line(self, line):
        doc = user_dump()
        doc["suppressions"] = [{"file": "main.go", "line": line, "id": "musttag"}]
        with pytest.raises(DumpError) as info:
            load_units(doc, source="s.json")
        assert info.value.source == "s.json"
        assert "suppression" in str(info.value)


class TestParseDump:

    def test_reads_file(self, tmp_path, user_doc):
        path = tmp_path / "main.go.json"
        path.write_text(json.dumps(user_doc), encoding="utf-8")
        (unit,) = parsedump(path)
        assert len(unit.calls) == 1

    def test_several_files(self, tmp_path):
        paths = []
        for name in ("a.go", "b.go"):
            p = tmp_path / f"{name}.json"
            p.write_text(json.dumps(dict(user_dump(), file=name)), encoding="utf-8")
            paths.append(p)
        assert [u.file for u in parsedumps(paths)] == ["a.go", "b.go"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(DumpError) as info:
            parsedump(tmp_path / "missing.json")
        assert "cannot read dump" in str(info.value)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{ not json", encoding="utf-8")
        with pytest.raises(DumpError) as info:
            parsedump(path)
        assert "invalid JSON" in str(info.value)
        assert info.value.source == str(path)
