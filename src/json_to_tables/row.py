"""A single output row bound to a table header."""

from __future__ import annotations

import json
from typing import Any, Mapping

from json_to_tables.exceptions import NonScalarValueError, SchemaMismatchError
from json_to_tables.schema import ColumnPath, is_scalar


class Row:
    """Row of scalar cells; every header column starts out as ``None``.

    Args:
        columns: Ordered ``{column path: safe column name}`` header, as
            returned by :meth:`SchemaModel.columns`.
    """

    def __init__(self, columns: Mapping[ColumnPath, str]):
        self.columns = dict(columns)
        self._data: dict[str, Any] = dict.fromkeys(self.columns.values())

    def set_value(self, column: str, value: Any) -> None:
        if column not in self._data:
            raise SchemaMismatchError(
                f"Error assigning {value!r} to a non-existing column {column!r}!",
                {"columns": list(self._data)},
            )
        if value is not None and not is_scalar(value):
            raise NonScalarValueError(
                f"Error assigning value to {column!r}: The value's not scalar!",
                {"type": type(value).__name__, "value": json.dumps(value, default=str)},
            )
        self._data[column] = value

    def set_child_values(self, column: str, child: Row) -> None:
        """Copy an inlined object's cells under *column*'s expanded names.

        Child columns that the header never declared are skipped.
        """
        for path, name in child.columns.items():
            target = self.columns.get((column, *path))
            if target is not None:
                self.set_value(target, child._data[name])

    def get_row(self) -> dict[str, Any]:
        return dict(self._data)
