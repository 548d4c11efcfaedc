"""Environment-based configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from json_to_tables.cache import DEFAULT_MEMORY_LIMIT, parse_memory_limit

_TRUE = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE


def parse_primary_keys(value: str) -> dict[str, str]:
    """Parse ``"root=id;root.items=id,sku"`` into ``{table: columns}``."""
    keys: dict[str, str] = {}
    for item in value.split(";"):
        if not item.strip():
            continue
        table, sep, columns = item.partition("=")
        if not sep or not table.strip() or not columns.strip():
            raise ValueError(f"Invalid primary key definition: {item!r}")
        keys[table.strip()] = columns.strip()
    return keys


@dataclass(frozen=True)
class Config:
    """Immutable configuration loaded from environment variables.

    Every setting can also be overridden programmatically.
    """

    # Schema analysis and flattening
    analyze_row_limit: int = field(
        default_factory=lambda: int(os.environ.get("JSON_PARSER_ANALYZE_ROWS", "-1"))
    )
    nested_array_as_json: bool = field(
        default_factory=lambda: _env_bool("JSON_PARSER_NESTED_ARRAYS_AS_JSON")
    )
    allow_scalar_array_mix: bool = field(
        default_factory=lambda: _env_bool("JSON_PARSER_ALLOW_SCALAR_ARRAY_MIX")
    )
    auto_upgrade_to_array: bool = field(
        default_factory=lambda: _env_bool("JSON_PARSER_AUTO_UPGRADE_TO_ARRAY")
    )
    strict_type_match: bool = field(
        default_factory=lambda: _env_bool("JSON_PARSER_STRICT")
    )
    primary_keys: dict[str, str] = field(
        default_factory=lambda: parse_primary_keys(
            os.environ.get("JSON_PARSER_PRIMARY_KEYS", "")
        )
    )
    cache_memory_limit: int = field(
        default_factory=lambda: parse_memory_limit(
            os.environ.get("JSON_PARSER_CACHE_MEMORY_LIMIT", str(DEFAULT_MEMORY_LIMIT))
        )
    )

    # Iceberg REST catalog
    catalog_uri: str = field(
        default_factory=lambda: os.environ.get(
            "ICEBERG_REST_URI", "http://localhost:8181"
        )
    )
    warehouse: str = field(
        default_factory=lambda: os.environ.get(
            "ICEBERG_WAREHOUSE", "s3://warehouse/"
        )
    )

    # S3-compatible object store
    s3_endpoint: str = field(
        default_factory=lambda: os.environ.get(
            "S3_ENDPOINT", "http://localhost:9000"
        )
    )
    s3_access_key: str = field(
        default_factory=lambda: os.environ.get("S3_ACCESS_KEY", "admin")
    )
    s3_secret_key: str = field(
        default_factory=lambda: os.environ.get("S3_SECRET_KEY", "password")
    )
    s3_region: str = field(
        default_factory=lambda: os.environ.get("S3_REGION", "us-east-1")
    )

    # Iceberg namespace receiving the output tables
    namespace: str = field(
        default_factory=lambda: os.environ.get("ICEBERG_NAMESPACE", "default")
    )

    def catalog_properties(self) -> dict[str, str]:
        """Return the properties dict expected by ``RestCatalog``."""
        return {
            "uri": self.catalog_uri,
            "warehouse": self.warehouse,
            "s3.endpoint": self.s3_endpoint,
            "s3.access-key-id": self.s3_access_key,
            "s3.secret-access-key": self.s3_secret_key,
            "s3.region": self.s3_region,
        }
