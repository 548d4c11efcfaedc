"""Inferred table schema: data kinds, type widening and header derivation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from json_to_tables.naming import sanitize_name, validate_header

DATA_COLUMN = "data"
PARENT_ID_COLUMN = "JSON_parentId"

STRUCT_VERSION = 1.0

ColumnPath = tuple[str, ...]


class DataKind(str, Enum):
    """Kinds a column (or a whole scalar table) can be inferred as."""

    NULL = "null"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    OBJECT = "object"
    ARRAY = "array"
    ARRAY_OF_SCALAR = "arrayOfScalar"
    STRING_OR_ARRAY = "stringOrArray"
    MIXED = "mixed"

    @property
    def is_scalar(self) -> bool:
        return self in _SCALAR_KINDS

    @property
    def is_array(self) -> bool:
        return self in (DataKind.ARRAY, DataKind.ARRAY_OF_SCALAR)


_SCALAR_KINDS = frozenset(
    {DataKind.BOOLEAN, DataKind.INTEGER, DataKind.FLOAT, DataKind.STRING}
)
_NUMERIC_KINDS = frozenset({DataKind.INTEGER, DataKind.FLOAT})


class TableState(str, Enum):
    UNSEEN = "unseen"
    ANALYZING = "analyzing"
    STABLE = "stable"
    CONFLICT = "conflict"


def is_scalar(value: Any) -> bool:
    """True for JSON scalars (``None`` excluded)."""
    return isinstance(value, (str, int, float, bool))


def detect_kind(value: Any) -> DataKind:
    """Return the :class:`DataKind` of a single JSON value."""
    if value is None:
        return DataKind.NULL
    if isinstance(value, bool):
        return DataKind.BOOLEAN
    if isinstance(value, int):
        return DataKind.INTEGER
    if isinstance(value, float):
        return DataKind.FLOAT
    if isinstance(value, str):
        return DataKind.STRING
    if isinstance(value, dict):
        return DataKind.OBJECT
    if isinstance(value, list):
        if value and all(is_scalar(item) for item in value):
            return DataKind.ARRAY_OF_SCALAR
        return DataKind.ARRAY
    return DataKind.STRING


def widen_kind(
    current: DataKind | None,
    observed: DataKind,
    *,
    strict: bool = False,
    allow_scalar_array_mix: bool = False,
    auto_upgrade_to_array: bool = False,
) -> tuple[DataKind, bool]:
    """Merge an *observed* kind into the *current* one.

    Returns ``(kind, conflict)``. The result is never narrower than
    *current*. ``conflict`` is True only when the merge newly produced
    :attr:`DataKind.MIXED`, which is flattened as JSON text.
    """
    if current is None or current is DataKind.NULL:
        return observed, False
    if observed is DataKind.NULL or observed is current:
        return current, False
    if current is DataKind.MIXED:
        return DataKind.MIXED, False

    if current.is_scalar and observed.is_scalar:
        if strict:
            return DataKind.MIXED, True
        if current in _NUMERIC_KINDS and observed in _NUMERIC_KINDS:
            return DataKind.FLOAT, False
        return DataKind.STRING, False

    if current.is_array and observed.is_array:
        return DataKind.ARRAY, False

    if DataKind.STRING_OR_ARRAY in (current, observed):
        other = observed if current is DataKind.STRING_OR_ARRAY else current
        if other.is_scalar or other.is_array:
            return DataKind.STRING_OR_ARRAY, False

    array_kind = current if current.is_array else observed
    scalar_kind = observed if current.is_array else current
    if array_kind.is_array and scalar_kind.is_scalar:
        if array_kind is DataKind.ARRAY_OF_SCALAR and allow_scalar_array_mix:
            return DataKind.STRING_OR_ARRAY, False
        if auto_upgrade_to_array:
            return array_kind, False

    return DataKind.MIXED, True


@dataclass
class TableSchema:
    """Inferred shape of one table.

    ``kind`` is ``None`` until the first sample, :attr:`DataKind.OBJECT` for
    tables of objects, a scalar kind for single-value tables, and
    :attr:`DataKind.MIXED` once objects and scalars clashed in one table.
    """

    name: str
    kind: DataKind | None = None
    columns: dict[str, DataKind] = field(default_factory=dict)
    state: TableState = TableState.UNSEEN
    rows_analyzed: int = 0

    @property
    def is_object(self) -> bool:
        return self.kind is DataKind.OBJECT

    @property
    def is_conflict(self) -> bool:
        return self.kind is DataKind.MIXED

    def fields(self) -> dict[str, DataKind]:
        """Column kinds as seen by the flattener."""
        if self.is_object:
            return self.columns
        return {DATA_COLUMN: self.kind or DataKind.NULL}


class SchemaModel:
    """Mapping of table name to :class:`TableSchema`, owned by one parser."""

    def __init__(self, struct: Mapping[str, Any] | None = None) -> None:
        self.tables: dict[str, TableSchema] = {}
        if struct:
            self.load_struct(struct)

    def __contains__(self, name: object) -> bool:
        table = self.tables.get(name)  # type: ignore[arg-type]
        return table is not None and table.kind is not None

    def get(self, name: str) -> TableSchema | None:
        return self.tables.get(name)

    def ensure(self, name: str) -> TableSchema:
        table = self.tables.get(name)
        if table is None:
            table = self.tables[name] = TableSchema(name)
        return table

    # -- header derivation ---------------------------------------------------

    def columns(
        self,
        name: str,
        parent_columns: Iterable[str] = (),
    ) -> dict[ColumnPath, str]:
        """Return the ordered ``{column path: safe column name}`` header.

        Object columns are expanded inline, each child column becoming
        ``<safe field>_<child safe name>``. Parent link columns go last.
        Names are resolved the same way on every call.
        """
        raw = self._raw_columns(name)
        paths = [path for path, _ in raw]
        for column in parent_columns:
            if (column,) not in paths:
                raw.append(((column,), column))
                paths.append((column,))

        safe = validate_header([display for _, display in raw])
        return dict(zip(paths, safe))

    def header(self, name: str, parent_columns: Iterable[str] = ()) -> list[str]:
        return list(self.columns(name, parent_columns).values())

    def _raw_columns(self, name: str) -> list[tuple[ColumnPath, str]]:
        table = self.tables.get(name)
        if table is None or not table.is_object:
            return [((DATA_COLUMN,), DATA_COLUMN)]

        raw: list[tuple[ColumnPath, str]] = []
        for column, kind in table.columns.items():
            child = f"{name}.{column}"
            if kind is DataKind.OBJECT and child in self.tables:
                prefix = sanitize_name(column)
                for path, child_name in self.columns(child).items():
                    raw.append(((column, *path), f"{prefix}_{child_name}"))
            else:
                raw.append(((column,), column))
        return raw

    # -- (de)serialization ---------------------------------------------------

    def to_struct(self) -> dict[str, Any]:
        """Plain-JSON view: ``{table: {column: kind}}`` or ``{table: kind}``."""
        struct: dict[str, Any] = {}
        for name, table in self.tables.items():
            if table.kind is None:
                continue
            if table.is_object:
                struct[name] = {col: kind.value for col, kind in table.columns.items()}
            else:
                struct[name] = table.kind.value
        return struct

    def load_struct(self, struct: Mapping[str, Any]) -> None:
        for name, value in struct.items():
            table = self.ensure(name)
            if isinstance(value, Mapping):
                table.kind = DataKind.OBJECT
                table.columns = {col: DataKind(kind) for col, kind in value.items()}
            else:
                table.kind = DataKind(value)
            table.state = (
                TableState.CONFLICT if table.is_conflict else TableState.ANALYZING
            )
