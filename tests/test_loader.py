"""Tests for json_to_tables.loader."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from json_to_tables.loader import (
    _detect_records,
    iter_batches,
    iter_json_lines,
    load_documents,
)


# ── _detect_records ─────────────────────────────────────────────────────────


class TestDetectRecords:
    def test_top_level_array(self):
        assert _detect_records([{"a": 1}]) == [{"a": 1}]

    def test_single_object(self):
        assert _detect_records({"a": 1}) == [{"a": 1}]

    def test_wrapper_object_kept_without_key(self):
        raw = {"data": [{"a": 1}], "meta": {"page": 1}}
        assert _detect_records(raw) == [raw]

    def test_records_key(self):
        raw = {"results": [{"id": 1}, {"id": 2}], "count": 2}
        assert _detect_records(raw, "results") == [{"id": 1}, {"id": 2}]

    def test_scalar_document(self):
        assert _detect_records("text") == ["text"]

    def test_missing_records_key(self):
        with pytest.raises(ValueError, match="Records key 'items' not found"):
            _detect_records({"data": []}, "items")

    def test_records_key_on_array(self):
        with pytest.raises(ValueError, match="not found"):
            _detect_records([{"a": 1}], "data")


# ── load_documents ──────────────────────────────────────────────────────────


class TestLoadDocuments:
    def test_json_array(self, tmp_path: Path):
        data = [{"x": 1, "nested": {"y": 2}}, {"x": 3}]
        p = tmp_path / "input.json"
        p.write_text(json.dumps(data))
        assert load_documents(p) == data

    def test_wrapped_json(self, tmp_path: Path):
        p = tmp_path / "input.json"
        p.write_text(json.dumps({"items": [{"id": 1}], "next": None}))
        assert load_documents(p, records_key="items") == [{"id": 1}]

    def test_json_lines(self, tmp_path: Path):
        p = tmp_path / "input.jsonl"
        p.write_text('{"a": 1}\n\n{"a": 2}\n', encoding="utf-8")
        assert load_documents(p) == [{"a": 1}, {"a": 2}]

    def test_json_lines_with_records_key(self, tmp_path: Path):
        p = tmp_path / "pages.ndjson"
        p.write_text('{"rows": [1, 2]}\n{"rows": [3]}\n', encoding="utf-8")
        assert load_documents(p, records_key="rows") == [1, 2, 3]

    def test_invalid_json_line(self, tmp_path: Path):
        p = tmp_path / "broken.jsonl"
        p.write_text('{"a": 1}\n{oops\n', encoding="utf-8")
        with pytest.raises(ValueError, match=r"broken\.jsonl:2: invalid JSON"):
            list(iter_json_lines(p))

    def test_unicode(self, tmp_path: Path):
        p = tmp_path / "input.json"
        p.write_text(json.dumps([{"name": "Žluťoučký kůň"}], ensure_ascii=False), encoding="utf-8")
        assert load_documents(p) == [{"name": "Žluťoučký kůň"}]


# ── iter_batches ────────────────────────────────────────────────────────────


class TestIterBatches:
    def test_splits_in_order(self):
        assert list(iter_batches([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]

    def test_empty(self):
        assert list(iter_batches([], 10)) == []

    def test_rejects_non_positive(self):
        with pytest.raises(ValueError, match="batch_size"):
            list(iter_batches([1], 0))
