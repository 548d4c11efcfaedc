"""Sample-driven schema inference."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from json_to_tables.schema import (
    DATA_COLUMN,
    DataKind,
    SchemaModel,
    TableState,
    detect_kind,
    widen_kind,
)

log = logging.getLogger(__name__)


class Analyzer:
    """Fold sampled documents into a :class:`SchemaModel`.

    Args:
        schema: The model to update in place.
        analyze_row_limit: Rows to sample per submitted table before it is
            considered stable; ``-1`` keeps analyzing every batch.
        nested_array_as_json: Treat arrays nested directly in arrays as
            JSON strings instead of more rows of the same table.
        strict: Treat differing scalar kinds as a conflict.
        allow_scalar_array_mix: Let a column hold scalars and arrays.
        auto_upgrade_to_array: Let scalars join an array column.
    """

    def __init__(
        self,
        schema: SchemaModel,
        analyze_row_limit: int = -1,
        *,
        nested_array_as_json: bool = False,
        strict: bool = False,
        allow_scalar_array_mix: bool = False,
        auto_upgrade_to_array: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self.schema = schema
        self.analyze_row_limit = analyze_row_limit
        self.nested_array_as_json = nested_array_as_json
        self.strict = strict
        self.allow_scalar_array_mix = allow_scalar_array_mix
        self.auto_upgrade_to_array = auto_upgrade_to_array
        self.log = logger or log

    def needs_analysis(self, name: str) -> bool:
        if name not in self.schema:
            return True
        if self.analyze_row_limit == -1:
            return True
        table = self.schema.ensure(name)
        return table.rows_analyzed < self.analyze_row_limit

    def is_stable(self, name: str) -> bool:
        return not self.needs_analysis(name)

    def analyze(self, data: Sequence[Any], name: str) -> None:
        """Analyze a submitted batch, counting its rows toward stability."""
        table = self.schema.ensure(name)
        table.rows_analyzed += len(data)
        self.analyze_rows(data, name)

        if (
            table.state is TableState.ANALYZING
            and self.analyze_row_limit != -1
            and table.rows_analyzed >= self.analyze_row_limit
        ):
            table.state = TableState.STABLE
            self.log.debug(
                "Analysis of '%s' complete after %d rows", name, table.rows_analyzed
            )

    def analyze_rows(self, data: Sequence[Any], name: str) -> None:
        for row in data:
            self.analyze_row(row, name)

    def analyze_row(self, row: Any, name: str) -> None:
        if isinstance(row, list):
            if self.nested_array_as_json:
                self._merge_table_kind(name, DataKind.STRING, row)
            else:
                self.analyze_rows(row, name)
        elif isinstance(row, dict):
            self._merge_object(name, row)
        else:
            self._merge_table_kind(name, detect_kind(row), row)

    def _merge_table_kind(self, name: str, kind: DataKind, row: Any) -> None:
        table = self.schema.ensure(name)
        if table.state is TableState.UNSEEN:
            table.state = TableState.ANALYZING

        if table.kind is None:
            table.kind = kind
            return

        if table.is_object:
            if kind is DataKind.NULL:
                return
            self._conflict(name, DATA_COLUMN, table.kind, kind, row)
            return

        merged, conflict = widen_kind(table.kind, kind, strict=self.strict)
        if conflict:
            self._conflict(name, DATA_COLUMN, table.kind, kind, row)
            return
        table.kind = merged

    def _merge_object(self, name: str, row: dict[str, Any]) -> None:
        table = self.schema.ensure(name)
        if table.state is TableState.UNSEEN:
            table.state = TableState.ANALYZING

        if table.kind is None or table.kind is DataKind.NULL:
            table.kind = DataKind.OBJECT
        elif not table.is_object:
            if not table.is_conflict:
                self._conflict(name, DATA_COLUMN, table.kind, DataKind.OBJECT, row)
            return

        for column, value in row.items():
            observed = detect_kind(value)
            current = table.columns.get(column)
            merged, conflict = widen_kind(
                current,
                observed,
                strict=self.strict,
                allow_scalar_array_mix=self.allow_scalar_array_mix,
                auto_upgrade_to_array=self.auto_upgrade_to_array,
            )
            if conflict:
                self.log.warning(
                    "Data type conflict in '%s' column '%s': expected '%s', "
                    "received '%s'; the column will be stored as JSON text",
                    name,
                    column,
                    current.value if current else None,
                    observed.value,
                    extra={
                        "context": {
                            "type": name,
                            "column": column,
                            "expected": current.value if current else None,
                            "received": observed.value,
                            "value": value,
                        }
                    },
                )
            table.columns[column] = merged

            child = f"{name}.{column}"
            if merged is DataKind.OBJECT:
                self._merge_object(child, value or {})
            elif isinstance(value, list) and (
                merged.is_array or merged is DataKind.STRING_OR_ARRAY
            ):
                self.analyze_rows(value, child)
            elif merged.is_array and observed.is_scalar:
                # auto-upgraded scalar, flattened later as a one-element array
                self.analyze_row(value, child)

    def _conflict(
        self,
        name: str,
        column: str,
        expected: DataKind | None,
        received: DataKind,
        row: Any,
    ) -> None:
        table = self.schema.ensure(name)
        self.log.warning(
            "Data type conflict in '%s': rows of '%s' and '%s' mixed in one table; "
            "rows will be stored as JSON text",
            name,
            expected.value if expected else None,
            received.value,
            extra={
                "context": {
                    "type": name,
                    "column": column,
                    "expected": expected.value if expected else None,
                    "received": received.value,
                    "row": row,
                }
            },
        )
        table.kind = DataKind.MIXED
        table.columns = {}
        table.state = TableState.CONFLICT
