"""Output tables: writer protocol, in-memory tables and the table registry."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Protocol

import polars as pl

from json_to_tables.exceptions import SchemaMismatchError

log = logging.getLogger(__name__)


class TableHandle(Protocol):
    name: str
    header: list[str]

    def append_row(self, row: Mapping[str, Any]) -> None: ...

    def add_attributes(self, attributes: Mapping[str, Any]) -> None: ...

    def set_primary_key(self, columns: list[str]) -> None: ...


class TableWriter(Protocol):
    def create(self, name: str, header: list[str]) -> TableHandle: ...


# ---------------------------------------------------------------------------
# Null-type resolution
# ---------------------------------------------------------------------------

_DEFAULT_TYPE = pl.Utf8  # fallback for columns that are all-null


def resolve_null_types(
    df: pl.DataFrame,
    default: pl.DataType = _DEFAULT_TYPE,
) -> pl.DataFrame:
    """Return a new DataFrame with every ``Null``-typed column cast to *default*.

    Columns that only ever received ``None`` (or tables with no rows at all)
    have no concrete type; CSV and Iceberg both need one.
    """
    casts = [pl.col(name).cast(default) for name, dtype in df.schema.items() if dtype == pl.Null]
    if not casts:
        return df
    return df.with_columns(casts)


@dataclass
class Table:
    """Header, rows, attributes and primary key of one output table."""

    name: str
    header: list[str]
    rows: list[dict[str, Any]] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)
    primary_key: list[str] | None = None

    def append_row(self, row: Mapping[str, Any]) -> None:
        if list(row) != self.header:
            raise SchemaMismatchError(
                f"Row columns do not match the header of table '{self.name}'",
                {"header": self.header, "row": list(row)},
            )
        self.rows.append(dict(row))

    def add_attributes(self, attributes: Mapping[str, Any]) -> None:
        self.attributes.update(attributes)

    def set_primary_key(self, columns: list[str]) -> None:
        self.primary_key = list(columns)

    def to_dataframe(self) -> pl.DataFrame:
        """Rows as a Polars DataFrame in header order, all-null columns as Utf8."""
        if not self.rows:
            return pl.DataFrame(schema={col: _DEFAULT_TYPE for col in self.header})

        df = pl.from_dicts(self.rows, infer_schema_length=None, strict=False)
        return resolve_null_types(df.select(self.header))


class MemoryTableWriter:
    """Default :class:`TableWriter`, keeping rows in memory."""

    def create(self, name: str, header: list[str]) -> Table:
        return Table(name, list(header))


class TableRegistry:
    """Safe table name -> accumulating table."""

    def __init__(self, writer: TableWriter | None = None) -> None:
        self.writer = writer or MemoryTableWriter()
        self.tables: dict[str, TableHandle] = {}

    def __contains__(self, name: object) -> bool:
        return name in self.tables

    def __getitem__(self, name: str) -> TableHandle:
        return self.tables[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.tables)

    def __len__(self) -> int:
        return len(self.tables)

    def get_or_create(
        self,
        name: str,
        header: list[str],
        display_name: str,
    ) -> TableHandle:
        table = self.tables.get(name)
        if table is None:
            table = self.tables[name] = self.writer.create(name, header)
            table.add_attributes({"fullDisplayName": display_name})
            log.debug("Created table '%s' with columns %s", name, header)
        return table
