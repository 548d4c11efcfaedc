"""Writing parsed tables to CSV files or an Iceberg REST catalog."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Literal, Mapping

import pyarrow as pa
from pyiceberg.catalog import load_catalog
from pyiceberg.catalog.rest import RestCatalog
from pyiceberg.exceptions import (
    NamespaceAlreadyExistsError,
    NoSuchTableError,
)

from json_to_tables.config import Config
from json_to_tables.tables import Table

log = logging.getLogger(__name__)

Mode = Literal["append", "overwrite"]


# ---------------------------------------------------------------------------
# CSV
# ---------------------------------------------------------------------------


def write_csv(tables: Mapping[str, Table], out_dir: Path) -> list[Path]:
    """Write ``<name>.csv`` plus a ``<name>.csv.manifest`` JSON per table.

    The manifest carries the primary key and the table attributes
    (``fullDisplayName`` among them).
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for name, table in tables.items():
        path = out_dir / f"{name}.csv"
        table.to_dataframe().write_csv(path)

        manifest = {
            "primary_key": table.primary_key or [],
            "columns": table.header,
            "metadata": table.attributes,
        }
        manifest_path = path.with_name(path.name + ".manifest")
        manifest_path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")

        log.info("Wrote %d rows to %s", len(table.rows), path)
        written.append(path)
    return written


# ---------------------------------------------------------------------------
# Iceberg
# ---------------------------------------------------------------------------


def get_catalog(cfg: Config) -> RestCatalog:
    """Instantiate a PyIceberg REST catalog from *cfg*."""
    catalog = load_catalog("rest", **cfg.catalog_properties())
    log.info("Connected to Iceberg REST catalog at %s", cfg.catalog_uri)
    return catalog  # type: ignore[return-value]


def ensure_namespace(catalog: RestCatalog, namespace: str) -> None:
    """Create *namespace* if it does not already exist."""
    try:
        catalog.create_namespace(namespace)
        log.info("Created namespace '%s'", namespace)
    except NamespaceAlreadyExistsError:
        log.debug("Namespace '%s' already exists", namespace)


def table_properties(table: Table) -> dict[str, str]:
    """Iceberg table properties (string-valued) for *table*'s metadata."""
    props = {key: str(value) for key, value in table.attributes.items()}
    if table.primary_key:
        props["primary-key"] = ",".join(table.primary_key)
    return props


def table_to_arrow(table: Table) -> pa.Table:
    return table.to_dataframe().to_arrow()


def write_to_iceberg(
    cfg: Config,
    tables: Mapping[str, Table],
    *,
    mode: Mode = "overwrite",
) -> None:
    """Write every parsed table to ``<namespace>.<table name>``.

    Args:
        cfg: Fully-populated configuration.
        tables: Output of :meth:`Parser.get_tables`.
        mode: ``"append"`` or ``"overwrite"``.
    """
    catalog = get_catalog(cfg)
    ensure_namespace(catalog, cfg.namespace)

    for name, table in tables.items():
        arrow_table = table_to_arrow(table)
        table_id = f"{cfg.namespace}.{name}"

        try:
            iceberg_table = catalog.load_table(table_id)
            log.info("Loaded existing table '%s'", table_id)
        except NoSuchTableError:
            iceberg_table = catalog.create_table(
                table_id,
                schema=arrow_table.schema,
                properties=table_properties(table),
            )
            log.info("Created new table '%s'", table_id)

        if mode == "overwrite":
            iceberg_table.overwrite(arrow_table)
            log.info("Overwrote table '%s' with %d rows", table_id, arrow_table.num_rows)
        else:
            iceberg_table.append(arrow_table)
            log.info("Appended %d rows to table '%s'", arrow_table.num_rows, table_id)
