"""Tests for json_to_tables.schema."""

from __future__ import annotations

import hashlib
import itertools

import pytest

from json_to_tables.schema import (
    DataKind,
    SchemaModel,
    TableSchema,
    TableState,
    detect_kind,
    widen_kind,
)

K = DataKind


# ── detect_kind ─────────────────────────────────────────────────────────────


class TestDetectKind:
    @pytest.mark.parametrize(
        "value, kind",
        [
            (None, K.NULL),
            (True, K.BOOLEAN),
            (3, K.INTEGER),
            (3.5, K.FLOAT),
            ("x", K.STRING),
            ({"a": 1}, K.OBJECT),
            ([1, "a"], K.ARRAY_OF_SCALAR),
            ([{"a": 1}], K.ARRAY),
            ([], K.ARRAY),
            ([None], K.ARRAY),
        ],
    )
    def test_kinds(self, value, kind):
        assert detect_kind(value) is kind


# ── widen_kind ──────────────────────────────────────────────────────────────


class TestWidenKind:
    def test_first_observation(self):
        assert widen_kind(None, K.INTEGER) == (K.INTEGER, False)

    def test_null_never_changes_kind(self):
        assert widen_kind(K.STRING, K.NULL) == (K.STRING, False)
        assert widen_kind(K.NULL, K.OBJECT) == (K.OBJECT, False)

    def test_numeric_widens_to_float(self):
        assert widen_kind(K.INTEGER, K.FLOAT) == (K.FLOAT, False)
        assert widen_kind(K.FLOAT, K.INTEGER) == (K.FLOAT, False)

    def test_other_scalars_widen_to_string(self):
        assert widen_kind(K.INTEGER, K.STRING) == (K.STRING, False)
        assert widen_kind(K.BOOLEAN, K.INTEGER) == (K.STRING, False)
        assert widen_kind(K.STRING, K.BOOLEAN) == (K.STRING, False)

    def test_strict_scalar_mismatch_conflicts(self):
        assert widen_kind(K.INTEGER, K.FLOAT, strict=True) == (K.MIXED, True)

    def test_object_vs_scalar_conflicts(self):
        assert widen_kind(K.OBJECT, K.STRING) == (K.MIXED, True)
        assert widen_kind(K.INTEGER, K.OBJECT) == (K.MIXED, True)

    def test_array_vs_object_conflicts(self):
        assert widen_kind(K.ARRAY, K.OBJECT) == (K.MIXED, True)

    def test_array_kinds_merge(self):
        assert widen_kind(K.ARRAY_OF_SCALAR, K.ARRAY) == (K.ARRAY, False)

    def test_scalar_array_without_policy_conflicts(self):
        assert widen_kind(K.ARRAY_OF_SCALAR, K.STRING) == (K.MIXED, True)

    def test_allow_scalar_array_mix(self):
        result = widen_kind(K.STRING, K.ARRAY_OF_SCALAR, allow_scalar_array_mix=True)
        assert result == (K.STRING_OR_ARRAY, False)

    def test_auto_upgrade_to_array(self):
        result = widen_kind(K.ARRAY_OF_SCALAR, K.INTEGER, auto_upgrade_to_array=True)
        assert result == (K.ARRAY_OF_SCALAR, False)
        result = widen_kind(K.ARRAY, K.STRING, auto_upgrade_to_array=True)
        assert result == (K.ARRAY, False)

    def test_string_or_array_absorbs(self):
        assert widen_kind(K.STRING_OR_ARRAY, K.ARRAY) == (K.STRING_OR_ARRAY, False)
        assert widen_kind(K.STRING_OR_ARRAY, K.FLOAT) == (K.STRING_OR_ARRAY, False)

    def test_mixed_is_absorbing(self):
        for kind in K:
            assert widen_kind(K.MIXED, kind)[0] is K.MIXED

    def test_never_narrows(self):
        """Widening an already-widened kind with either input keeps it."""
        for a, b in itertools.product(K, repeat=2):
            merged, _ = widen_kind(a, b, auto_upgrade_to_array=True)
            for c in (a, b):
                again, _ = widen_kind(merged, c, auto_upgrade_to_array=True)
                assert again is merged, (a, b, c)

    def test_idempotent(self):
        for kind in K:
            assert widen_kind(kind, kind) == (kind, False)


# ── SchemaModel ─────────────────────────────────────────────────────────────


def _model(struct):
    return SchemaModel(struct)


class TestHeader:
    def test_object_table(self):
        model = _model({"root": {"name": "string", "age": "integer"}})
        assert model.header("root") == ["name", "age"]

    def test_scalar_table(self):
        model = _model({"root.tags": "string"})
        assert model.header("root.tags") == ["data"]

    def test_unknown_table_has_data_column(self):
        assert SchemaModel().header("nope") == ["data"]

    def test_nested_object_expanded_inline(self):
        model = _model(
            {
                "root": {"id": "integer", "a": "object"},
                "root.a": {"b": "string", "c": "object"},
                "root.a.c": {"d": "float"},
            }
        )
        assert model.header("root") == ["id", "a_b", "a_c_d"]
        columns = model.columns("root")
        assert columns[("a", "c", "d")] == "a_c_d"

    def test_array_keeps_a_column(self):
        model = _model({"root": {"tags": "arrayOfScalar"}, "root.tags": "string"})
        assert model.header("root") == ["tags"]

    def test_parent_link_appended(self):
        model = _model({"root.items": {"sku": "string"}})
        assert model.header("root.items", ["JSON_parentId"]) == ["sku", "JSON_parentId"]
        assert model.header("root.items", ["order_id", "line"]) == [
            "sku",
            "order_id",
            "line",
        ]

    def test_parent_link_not_repeated(self):
        model = _model({"root.items": {"order_id": "integer", "sku": "string"}})
        assert model.header("root.items", ["order_id"]) == ["order_id", "sku"]

    def test_header_collisions_resolved_consistently(self):
        model = _model(
            {"root": {"a_b": "integer", "a": "object"}, "root.a": {"b": "string"}}
        )
        expected = ["a_b", hashlib.md5(b"a_b").hexdigest()]
        assert model.header("root") == expected
        assert model.header("root") == expected
        assert model.columns("root")[("a", "b")] == expected[1]

    def test_conflict_table_is_data_only(self):
        model = SchemaModel()
        model.tables["root"] = TableSchema("root", K.MIXED, state=TableState.CONFLICT)
        assert model.header("root", ["JSON_parentId"]) == ["data", "JSON_parentId"]


class TestStruct:
    def test_roundtrip(self):
        struct = {
            "root": {"id": "integer", "tags": "array", "meta": "object"},
            "root.tags": "string",
            "root.meta": {"x": "boolean"},
        }
        assert SchemaModel(struct).to_struct() == struct

    def test_contains_requires_shape(self):
        model = SchemaModel()
        model.ensure("root")
        assert "root" not in model
        model.tables["root"].kind = K.OBJECT
        assert "root" in model

    def test_loaded_conflict_state(self):
        model = SchemaModel({"root": "mixed"})
        assert model.get("root").state is TableState.CONFLICT
