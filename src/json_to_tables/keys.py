"""Link values that tie child-table rows to their parent row."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from json_to_tables.naming import md5_hex, sanitize_name

log = logging.getLogger(__name__)


def content_hash(row: Any, disambiguator: str | None = None) -> str:
    """md5 of *row*'s order-preserving JSON text followed by *disambiguator*."""
    text = json.dumps(row, ensure_ascii=False, separators=(",", ":"), default=str)
    return md5_hex(text + (disambiguator or ""))


def _key_part(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


class PrimaryKeyResolver:
    """Derive link values from configured key columns or a content hash.

    Primary keys are registered per *sanitized* table name as a
    comma-separated, ordered column list, e.g. ``{"root_items": "id, sku"}``.
    """

    def __init__(
        self,
        primary_keys: Mapping[str, str] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.log = logger or log
        self.primary_keys: dict[str, str] = {}
        if primary_keys:
            self.add(primary_keys)

    def add(self, primary_keys: Mapping[str, str]) -> None:
        """Register keys; tables that already have one keep it."""
        for table, columns in primary_keys.items():
            self.primary_keys.setdefault(sanitize_name(table), columns)

    def columns_for(self, table: str) -> list[str]:
        pk = self.primary_keys.get(sanitize_name(table))
        if not pk:
            return []
        return [col.strip() for col in pk.split(",") if col.strip()]

    def key_for(
        self,
        row: Mapping[str, Any],
        table: str,
        disambiguator: str | None = None,
    ) -> str:
        """Return the link value for *row* of *table*.

        *disambiguator* is the enclosing object's own link value when *row*
        is a nested object, so identical siblings in different parents get
        different hashes.
        """
        columns = self.columns_for(table)
        if not columns:
            return f"{table}_{content_hash(row, disambiguator)}"

        values: list[str] = []
        for column in columns:
            value = row.get(column)
            if value is None or value == "":
                fallback = content_hash(row, disambiguator)
                self.log.warning(
                    "Primary key for type '%s' was set to '%s', but its column "
                    "'%s' does not exist! Using hash to link child objects instead.",
                    table,
                    ",".join(columns),
                    column,
                    extra={"context": {"type": table, "row": row, "hash": fallback}},
                )
                values.append(fallback)
            else:
                values.append(_key_part(value))

        return f"{sanitize_name(table)}_{';'.join(values)}"
