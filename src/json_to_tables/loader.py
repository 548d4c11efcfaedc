"""Reading JSON and JSON Lines input into batches of documents."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterator

JSON_LINES_SUFFIXES = {".jsonl", ".ndjson"}


def _detect_records(raw: Any, records_key: str | None = None) -> list[Any]:
    """Return the list of documents held by a parsed JSON payload.

    Supports:
    - Top-level array:  ``[{...}, {...}]``
    - Wrapped:          ``{"data": [{...}], ...}`` with ``records_key="data"``
    - Anything else:    a single document
    """
    if records_key is not None:
        if not isinstance(raw, dict) or records_key not in raw:
            raise ValueError(f"Records key {records_key!r} not found in JSON payload")
        raw = raw[records_key]

    if isinstance(raw, list):
        return raw
    return [raw]


def iter_json_lines(path: Path) -> Iterator[Any]:
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}:{lineno}: invalid JSON: {exc.msg}") from exc


def load_documents(
    path: Path,
    records_key: str | None = None,
) -> list[Any]:
    """Read a JSON or JSON Lines file into a list of documents.

    Args:
        path: Path to a ``.json``, ``.jsonl`` or ``.ndjson`` file.
        records_key: Top-level key holding the records array, if wrapped.

    Returns:
        The documents, in file order.
    """
    if path.suffix.lower() in JSON_LINES_SUFFIXES:
        docs = list(iter_json_lines(path))
        if records_key is None:
            return docs
        return [doc for raw in docs for doc in _detect_records(raw, records_key)]

    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)

    return _detect_records(raw, records_key)


def iter_batches(documents: list[Any], batch_size: int) -> Iterator[list[Any]]:
    """Split *documents* into consecutive batches of at most *batch_size*."""
    if batch_size < 1:
        raise ValueError("batch_size must be positive")
    for start in range(0, len(documents), batch_size):
        yield documents[start : start + batch_size]
