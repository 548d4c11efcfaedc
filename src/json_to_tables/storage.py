"""Scratch storage for data that does not fit the in-memory buffer."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import IO

log = logging.getLogger(__name__)


class TempStorage:
    """A scratch directory, created on first use and removed by :meth:`cleanup`.

    Args:
        namespace: Prefix of the directory name.
        base_dir: Parent directory; the system temp dir when ``None``.
    """

    def __init__(self, namespace: str = "json-parser-data", base_dir: str | None = None):
        self.namespace = namespace
        self.base_dir = base_dir
        self._dir: tempfile.TemporaryDirectory[str] | None = None

    @property
    def path(self) -> Path:
        if self._dir is None:
            self._dir = tempfile.TemporaryDirectory(
                prefix=f"{self.namespace}-", dir=self.base_dir
            )
            log.debug("Created scratch directory %s", self._dir.name)
        return Path(self._dir.name)

    @property
    def is_active(self) -> bool:
        return self._dir is not None

    def open(self, name: str, mode: str = "w+b") -> IO:
        """Open *name* inside the scratch directory."""
        return open(self.path / name, mode)

    def cleanup(self) -> None:
        if self._dir is not None:
            log.debug("Removing scratch directory %s", self._dir.name)
            self._dir.cleanup()
            self._dir = None
