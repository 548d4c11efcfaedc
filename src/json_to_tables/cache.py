"""FIFO buffer for batches submitted while their schema may still change."""

from __future__ import annotations

import json
import logging
import re
from collections import deque
from dataclasses import asdict, dataclass
from typing import IO, Any, Iterator, Union

from json_to_tables.storage import TempStorage

log = logging.getLogger(__name__)

DEFAULT_MEMORY_LIMIT = 2 * 1024 * 1024

_UNITS = {"": 1, "K": 1024, "M": 1024**2, "G": 1024**3}
_LIMIT_RE = re.compile(r"^\s*(\d+)\s*([KMG]?)B?\s*$", re.IGNORECASE)

ParentId = Union[str, dict[str, Any], None]


def parse_memory_limit(limit: int | str) -> int:
    """Convert ``2097152``, ``"2048K"`` or ``"2M"`` into a byte count."""
    if isinstance(limit, int):
        return limit
    match = _LIMIT_RE.match(limit)
    if not match:
        raise ValueError(f"Invalid memory limit: {limit!r}")
    number, unit = match.groups()
    return int(number) * _UNITS[unit.upper()]


@dataclass
class Batch:
    data: list[Any]
    type: str
    parent_id: ParentId = None


class Cache:
    """Holds batches in memory, spilling them to scratch storage past a limit.

    Batches come back from :meth:`drain` in exactly the order they were
    stored, whether they were kept in memory or on disk.
    """

    def __init__(
        self,
        temp: TempStorage | None = None,
        memory_limit: int | str = DEFAULT_MEMORY_LIMIT,
    ) -> None:
        self.temp = temp or TempStorage()
        self.memory_limit = parse_memory_limit(memory_limit)
        # in-memory entries are (batch, size), spilled ones a file offset
        self._entries: deque[tuple[Batch, int] | int] = deque()
        self._memory_used = 0
        self._file: IO[bytes] | None = None

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def memory_used(self) -> int:
        return self._memory_used

    @property
    def spilled(self) -> int:
        """Number of stored batches currently on scratch storage."""
        return sum(1 for entry in self._entries if isinstance(entry, int))

    def set_memory_limit(self, limit: int | str) -> None:
        self.memory_limit = parse_memory_limit(limit)
        if self._memory_used > self.memory_limit:
            self._spill()

    def store(self, batch: Batch) -> None:
        size = len(self._encode(batch))
        self._entries.append((batch, size))
        self._memory_used += size
        if self._memory_used > self.memory_limit:
            self._spill()

    def drain(self) -> Iterator[Batch]:
        """Yield and remove every stored batch, oldest first."""
        while self._entries:
            entry = self._entries.popleft()
            if isinstance(entry, int):
                yield self._read(entry)
            else:
                batch, size = entry
                self._memory_used -= size
                yield batch

        if self._file is not None:
            self._file.seek(0)
            self._file.truncate()

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
        self.temp.cleanup()

    @staticmethod
    def _encode(batch: Batch) -> bytes:
        return json.dumps(asdict(batch), ensure_ascii=False).encode("utf-8") + b"\n"

    def _spill(self) -> None:
        if self._file is None:
            self._file = self.temp.open("cache.jsonl", "w+b")
            log.debug(
                "Cache memory limit of %d bytes exceeded, spilling to %s",
                self.memory_limit,
                self.temp.path,
            )

        self._file.seek(0, 2)
        spilled = 0
        entries: deque[tuple[Batch, int] | int] = deque()
        for entry in self._entries:
            if not isinstance(entry, int):
                batch, _ = entry
                entry = self._file.tell()
                self._file.write(self._encode(batch))
                spilled += 1
            entries.append(entry)
        self._entries = entries
        self._file.flush()
        self._memory_used = 0
        log.debug("Spilled %d batches to scratch storage", spilled)

    def _read(self, offset: int) -> Batch:
        if self._file is None:
            raise RuntimeError(f"No scratch file holds the batch at offset {offset}")
        self._file.seek(offset)
        return Batch(**json.loads(self._file.readline()))
