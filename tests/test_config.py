"""Tests for json_to_tables.config."""

from __future__ import annotations

import pytest

from json_to_tables.cache import DEFAULT_MEMORY_LIMIT
from json_to_tables.config import Config, parse_primary_keys

_ENV_VARS = [
    "JSON_PARSER_ANALYZE_ROWS",
    "JSON_PARSER_NESTED_ARRAYS_AS_JSON",
    "JSON_PARSER_ALLOW_SCALAR_ARRAY_MIX",
    "JSON_PARSER_AUTO_UPGRADE_TO_ARRAY",
    "JSON_PARSER_STRICT",
    "JSON_PARSER_PRIMARY_KEYS",
    "JSON_PARSER_CACHE_MEMORY_LIMIT",
    "ICEBERG_NAMESPACE",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


# ── parse_primary_keys ──────────────────────────────────────────────────────


class TestParsePrimaryKeys:
    def test_multiple_tables(self):
        assert parse_primary_keys("root=id; root.items = id,sku") == {
            "root": "id",
            "root.items": "id,sku",
        }

    def test_empty(self):
        assert parse_primary_keys("") == {}
        assert parse_primary_keys(" ; ") == {}

    @pytest.mark.parametrize("value", ["root", "=id", "root="])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="Invalid primary key definition"):
            parse_primary_keys(value)


# ── Config ──────────────────────────────────────────────────────────────────


class TestConfig:
    def test_defaults(self, clean_env):
        cfg = Config()
        assert cfg.analyze_row_limit == -1
        assert cfg.nested_array_as_json is False
        assert cfg.allow_scalar_array_mix is False
        assert cfg.auto_upgrade_to_array is False
        assert cfg.strict_type_match is False
        assert cfg.primary_keys == {}
        assert cfg.cache_memory_limit == DEFAULT_MEMORY_LIMIT
        assert cfg.namespace == "default"

    def test_from_env(self, clean_env):
        clean_env.setenv("JSON_PARSER_ANALYZE_ROWS", "100")
        clean_env.setenv("JSON_PARSER_NESTED_ARRAYS_AS_JSON", "true")
        clean_env.setenv("JSON_PARSER_STRICT", "1")
        clean_env.setenv("JSON_PARSER_AUTO_UPGRADE_TO_ARRAY", "no")
        clean_env.setenv("JSON_PARSER_PRIMARY_KEYS", "root=id")
        clean_env.setenv("JSON_PARSER_CACHE_MEMORY_LIMIT", "16M")

        cfg = Config()
        assert cfg.analyze_row_limit == 100
        assert cfg.nested_array_as_json is True
        assert cfg.strict_type_match is True
        assert cfg.auto_upgrade_to_array is False
        assert cfg.primary_keys == {"root": "id"}
        assert cfg.cache_memory_limit == 16 * 1024 * 1024

    def test_frozen(self, clean_env):
        cfg = Config()
        with pytest.raises(AttributeError):
            cfg.strict_type_match = True  # type: ignore[misc]

    def test_catalog_properties(self, clean_env):
        cfg = Config(catalog_uri="http://catalog:8181", s3_region="eu-west-1")
        props = cfg.catalog_properties()
        assert props["uri"] == "http://catalog:8181"
        assert props["s3.region"] == "eu-west-1"
        assert set(props) == {
            "uri",
            "warehouse",
            "s3.endpoint",
            "s3.access-key-id",
            "s3.secret-access-key",
            "s3.region",
        }
