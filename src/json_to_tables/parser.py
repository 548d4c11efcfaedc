"""JSON to relational tables: analysis, buffering and recursive flattening.

Submitted batches are analyzed to infer each table's columns. While a
table's schema may still change its batches are buffered, and they are
flattened once results are requested via :meth:`Parser.get_tables`.

Flattening rules, per document of a table ``type``:

- scalars are stored under a ``data`` column;
- nested objects are expanded inline into ``<field>_<subfield>`` columns;
- arrays become a child table ``type.field`` whose rows carry the parent
  row's link value in ``JSON_parentId``; the parent column holds the same
  value.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Sequence

from json_to_tables.analyzer import Analyzer
from json_to_tables.cache import Batch, Cache, ParentId
from json_to_tables.config import Config
from json_to_tables.exceptions import ParentIdError
from json_to_tables.keys import PrimaryKeyResolver
from json_to_tables.naming import sanitize_name
from json_to_tables.row import Row
from json_to_tables.schema import (
    DATA_COLUMN,
    PARENT_ID_COLUMN,
    STRUCT_VERSION,
    ColumnPath,
    DataKind,
    SchemaModel,
    is_scalar,
)
from json_to_tables.storage import TempStorage
from json_to_tables.tables import TableHandle, TableRegistry, TableWriter

log = logging.getLogger(__name__)


def _to_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _type_name(value: Any) -> str:
    return type(value).__name__


def _coerce(value: Any, kind: DataKind) -> Any:
    """Widen a scalar to the representation of its column's kind."""
    if kind is DataKind.STRING and not isinstance(value, str):
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)
    if kind is DataKind.FLOAT and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    return value


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, (dict, list)) and not value)


class Parser:
    """Convert batches of JSON documents into linked flat tables.

    One parser owns the schema, buffer and output tables of a single
    conversion job; it is not safe to share between threads.

    Args:
        config: Parsing options; defaults come from the environment.
        struct: Previously inferred schema, see :meth:`get_struct`.
        writer: Where tables are created; in-memory by default.
        temp: Scratch storage for the buffer's spill files.
        logger: Diagnostics sink; a logger with a ``NullHandler`` works.
    """

    def __init__(
        self,
        config: Config | None = None,
        *,
        struct: Mapping[str, Any] | None = None,
        writer: TableWriter | None = None,
        temp: TempStorage | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        cfg = config or Config()
        self.log = logger or log
        self.schema = SchemaModel(struct)
        self.analyzer = Analyzer(
            self.schema,
            cfg.analyze_row_limit,
            nested_array_as_json=cfg.nested_array_as_json,
            strict=cfg.strict_type_match,
            allow_scalar_array_mix=cfg.allow_scalar_array_mix,
            auto_upgrade_to_array=cfg.auto_upgrade_to_array,
            logger=self.log,
        )
        self.keys = PrimaryKeyResolver(cfg.primary_keys, logger=self.log)
        self.tables = TableRegistry(writer)
        self.nested_array_as_json = cfg.nested_array_as_json
        self.auto_upgrade_to_array = cfg.auto_upgrade_to_array
        self.cache_memory_limit = cfg.cache_memory_limit

        self._temp = temp
        self._cache: Cache | None = None
        self._headers: dict[str, dict[ColumnPath, str]] = {}
        # table kind at the moment its header was fixed
        self._header_kinds: dict[str, DataKind | None] = {}
        self._analyzed = False

    def __enter__(self) -> Parser:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        """Release the buffer's scratch storage."""
        if self._cache is not None:
            self._cache.close()
            self._cache = None

    # -- entry point ---------------------------------------------------------

    def process(
        self,
        data: Sequence[Any],
        type: str = "root",
        parent_id: ParentId = None,
    ) -> None:
        """Submit a batch of documents for table *type*.

        If the table's schema may still change, the batch is analyzed and
        buffered until :meth:`get_tables`; otherwise it is parsed at once.

        Args:
            data: Documents (objects, scalars, nulls or arrays of those).
            type: Table name, also the prefix of child table names.
            parent_id: A link value stored in ``JSON_parentId``, or a
                flat ``{column: value}`` mapping of link columns.
        """
        if not isinstance(data, (list, tuple)):
            raise TypeError(f"Expected a list of documents, got {_type_name(data)}")
        self._parent_columns(parent_id, type)

        if not data:
            if type not in self.schema:
                self.log.warning(
                    "Empty data set received for %s",
                    type,
                    extra={"context": {"type": type, "parentId": parent_id}},
                )
            else:
                self.log.debug("Empty data set received for known type %s", type)
            return

        if self.analyzer.needs_analysis(type):
            table = self.schema.get(type)
            if table is None or not table.rows_analyzed:
                self.log.debug(
                    "Analyzing %s",
                    type,
                    extra={"context": {"analyzeRows": self.analyzer.analyze_row_limit}},
                )
            self.analyzer.analyze(data, type)
            self._analyzed = True
            self.cache.store(Batch(list(data), type, parent_id))
        else:
            self.parse(data, type, parent_id)

    # -- flattening ----------------------------------------------------------

    def parse(
        self,
        data: Sequence[Any],
        type: str,
        parent_id: ParentId = None,
    ) -> None:
        """Flatten documents of a table whose schema is known."""
        parent_cols = self._parent_columns(parent_id, type)

        if type not in self.schema:
            self.log.debug(
                "Parser ran into an unknown data type '%s' - trying on-the-fly analysis",
                type,
                extra={"context": {"type": type, "data": data, "parentId": parent_id}},
            )
            self.analyzer.analyze_rows(data, type)
            self._analyzed = True

        if type not in self._headers:
            self._headers[type] = self.schema.columns(type, parent_cols)
            self._header_kinds[type] = self.schema.ensure(type).kind
        columns = self._headers[type]

        table = self.tables.get_or_create(
            sanitize_name(type), list(columns.values()), type
        )
        self._parse_documents(data, type, parent_cols, columns, table)

    def _parse_documents(
        self,
        data: Sequence[Any],
        type: str,
        parent_cols: dict[str, Any],
        columns: dict[ColumnPath, str],
        table: TableHandle,
    ) -> None:
        schema = self.schema.ensure(type)
        header_kind = self._header_kinds.get(type, schema.kind)
        for document in data:
            if isinstance(document, list) and not self.nested_array_as_json:
                self._parse_documents(document, type, parent_cols, columns, table)
                continue

            wrapped = not isinstance(document, dict)
            if wrapped:
                payload = _to_json(document) if isinstance(document, list) else document
                row_data: dict[str, Any] = {DATA_COLUMN: payload}
            else:
                row_data = document
            if parent_cols:
                row_data = {**row_data, **parent_cols}

            row = Row(columns)
            if self._is_shape_mismatch(schema.kind, header_kind, document, wrapped):
                self._parse_fallback(document, row, type, parent_cols)
            else:
                self.parse_row(row_data, row, type, parent_cols)
            table.append_row(row.get_row())

    def _is_shape_mismatch(
        self,
        kind: DataKind | None,
        header_kind: DataKind | None,
        document: Any,
        wrapped: bool,
    ) -> bool:
        if kind is DataKind.MIXED:
            return True
        # objects cannot be expanded into a header fixed for scalar rows
        if not wrapped and header_kind is not DataKind.OBJECT:
            return True
        if kind is DataKind.NULL:
            return document is not None
        if kind is DataKind.OBJECT:
            if wrapped and document is not None:
                self.log.warning(
                    "Encountered a scalar where an object was expected from previous "
                    "analysis; its value is dropped",
                    extra={"context": {"data": document}},
                )
            return False
        return not wrapped

    def _parse_fallback(
        self,
        document: Any,
        row: Row,
        type: str,
        parent_cols: Mapping[str, Any],
    ) -> None:
        """Store a whole document as JSON text.

        The text goes to the ``data`` column, or to the first non-link column
        when the table's header was fixed while its rows were still objects.
        """
        schema = self.schema.ensure(type)
        header_kind = self._header_kinds.get(type, schema.kind)
        target = row.columns.get((DATA_COLUMN,))
        if target is None:
            target = next(
                (safe for path, safe in row.columns.items() if path[0] not in parent_cols),
                None,
            )

        if target is None:
            self.log.warning(
                "Encountered data where '%s' was expected from previous analysis; "
                "table '%s' has no column to store it in",
                header_kind.value if header_kind else None,
                type,
                extra={"context": {"type": type, "data": document}},
            )
        else:
            if not schema.is_conflict or target != DATA_COLUMN:
                self.log.warning(
                    "Encountered data where '%s' was expected from previous analysis; "
                    "stored as JSON text in column '%s'",
                    header_kind.value if header_kind else None,
                    target,
                    extra={"context": {"type": type, "data": document}},
                )
            value = document if isinstance(document, str) else _to_json(document)
            row.set_value(target, value)

        for column, link in parent_cols.items():
            row.set_value(row.columns.get((column,), column), link)

    def _store_expanded(self, row: Row, type: str, column: str, value: Any) -> None:
        """Write a conflicted column's JSON text into its first inline cell."""
        if _is_empty(value):
            return
        target = next(
            (safe for path, safe in row.columns.items() if len(path) > 1 and path[0] == column),
            None,
        )
        self.log.warning(
            "Column '%s' of '%s' became '%s' after the table's header was fixed; %s",
            column,
            type,
            DataKind.MIXED.value,
            f"stored as JSON text in column '{target}'" if target else "its value is dropped",
            extra={"context": {"type": type, "column": column, "data": _to_json(value)}},
        )
        if target is not None:
            row.set_value(target, _to_json(value))

    def parse_row(
        self,
        data_row: Mapping[str, Any],
        row: Row,
        type: str,
        parent_cols: Mapping[str, Any] | None = None,
        outer_object_hash: str | None = None,
    ) -> None:
        """Fill *row* from one object document of table *type*.

        Arrays recurse into child tables, objects are flattened into
        *row* itself. *outer_object_hash* is the enclosing row's link value
        when *data_row* is a nested object.
        """
        schema = self.schema.ensure(type)
        array_parent_id = self.keys.key_for(data_row, type, outer_object_hash)

        for column, kind in schema.fields().items():
            value = data_row.get(column)
            safe_column = row.columns.get((column,))
            if safe_column is None and kind is DataKind.MIXED:
                self._store_expanded(row, type, column, value)
                continue
            if safe_column is None and kind is not DataKind.OBJECT:
                # added to the schema after this table's header was fixed
                continue

            # empty objects and arrays would only create empty tables
            if _is_empty(value):
                if kind is not DataKind.OBJECT:
                    row.set_value(safe_column, None)
                continue

            if self.auto_upgrade_to_array and kind.is_array and not isinstance(value, list):
                value = [value]
            if kind is DataKind.STRING_OR_ARRAY:
                kind = DataKind.ARRAY if isinstance(value, list) else DataKind.STRING

            if kind.is_array and isinstance(value, list):
                row.set_value(safe_column, array_parent_id)
                self.parse(value, f"{type}.{column}", array_parent_id)
            elif kind is DataKind.OBJECT and isinstance(value, dict) and safe_column:
                # header fixed before the column held objects
                row.set_value(safe_column, _to_json(value))
            elif kind is DataKind.OBJECT and isinstance(value, dict):
                child_type = f"{type}.{column}"
                child_row = Row(self.schema.columns(child_type))
                self.parse_row(value, child_row, child_type, outer_object_hash=array_parent_id)
                row.set_child_values(column, child_row)
            elif kind.is_array or kind is DataKind.OBJECT:
                self.log.error(
                    "Data parse error in '%s' - unexpected '%s' where '%s' was expected!",
                    column,
                    _type_name(value),
                    kind.value,
                    extra={"context": {"type": type, "data": _to_json(value)}},
                )
                if safe_column is not None:
                    row.set_value(
                        safe_column, value if is_scalar(value) else _to_json(value)
                    )
            elif kind is DataKind.MIXED:
                row.set_value(safe_column, _to_json(value))
            elif is_scalar(value):
                row.set_value(safe_column, _coerce(value, kind))
            else:
                json_column = _to_json(value)
                self.log.error(
                    "Data parse error in '%s' - unexpected '%s' where '%s' was expected!",
                    column,
                    _type_name(value),
                    kind.value,
                    extra={
                        "context": {
                            "type": type,
                            "data": json_column,
                            "row": _to_json(data_row),
                        }
                    },
                )
                row.set_value(safe_column, json_column)

        if parent_cols:
            for column, link in parent_cols.items():
                row.set_value(row.columns.get((column,), column), link)

    def _parent_columns(self, parent_id: ParentId, type: str) -> dict[str, Any]:
        if parent_id is None or parent_id == "":
            return {}
        if isinstance(parent_id, Mapping):
            if any(isinstance(value, (Mapping, list, tuple)) for value in parent_id.values()):
                raise ParentIdError(
                    "Error assigning parentId to a table! parentId mapping "
                    "cannot be multidimensional.",
                    {"parentId": parent_id, "type": type},
                )
            return dict(parent_id)
        return {PARENT_ID_COLUMN: parent_id}

    # -- results -------------------------------------------------------------

    @property
    def cache(self) -> Cache:
        if self._cache is None:
            self._cache = Cache(self._temp, self.cache_memory_limit)
        return self._cache

    def process_cache(self) -> None:
        if self._cache is not None:
            for batch in self._cache.drain():
                self.parse(batch.data, batch.type, batch.parent_id)

    def get_tables(self) -> dict[str, TableHandle]:
        """Flatten buffered batches, attach primary keys and return all tables."""
        self.process_cache()

        for table in self.keys.primary_keys:
            if table in self.tables:
                self.tables[table].set_primary_key(self.keys.columns_for(table))

        return dict(self.tables.tables)

    def get_struct(self) -> dict[str, Any]:
        return self.schema.to_struct()

    @property
    def struct_version(self) -> float:
        return STRUCT_VERSION

    def has_analyzed(self) -> bool:
        return self._analyzed

    # -- settings ------------------------------------------------------------

    def add_primary_keys(self, primary_keys: Mapping[str, str]) -> None:
        self.keys.add(primary_keys)

    def set_strict(self, strict: bool) -> None:
        self.analyzer.strict = bool(strict)

    def set_nested_array_as_json(self, enabled: bool) -> None:
        self.nested_array_as_json = bool(enabled)
        self.analyzer.nested_array_as_json = bool(enabled)

    def set_auto_upgrade_to_array(self, enabled: bool) -> None:
        self.auto_upgrade_to_array = bool(enabled)
        self.analyzer.auto_upgrade_to_array = bool(enabled)

    def set_allow_scalar_array_mix(self, enabled: bool) -> None:
        self.analyzer.allow_scalar_array_mix = bool(enabled)

    def set_cache_memory_limit(self, limit: int | str) -> None:
        self.cache_memory_limit = limit
        self.cache.set_memory_limit(limit)

    def set_temp(self, temp: TempStorage) -> None:
        if self._cache is not None:
            raise RuntimeError("Scratch storage must be set before data is buffered")
        self._temp = temp
