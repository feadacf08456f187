"""
Install record — append-only list of completed stage identifiers.

One identifier per line in ``<log_dir>/installed.list``. A line is only
ever appended after every side effect of its stage has succeeded.
The record is an audit trail: nothing reconciles it with what is
actually installed on the host.
"""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class InstallRecord:
    """Append-only stage record backed by a plain text file."""

    def __init__(self, path: Path):
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def append(self, stage_id: str) -> None:
        """Append a completed stage identifier."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as f:
            f.write(stage_id + "\n")
        logger.debug("Recorded stage %s in %s", stage_id, self._path)

    def read(self) -> list[str]:
        """Recorded identifiers, oldest first."""
        if not self._path.is_file():
            return []
        lines = self._path.read_text(encoding="utf-8").splitlines()
        return [line.strip() for line in lines if line.strip()]

    def clear(self) -> bool:
        """Delete the record file. Returns True if a file was removed."""
        if not self._path.is_file():
            return False
        self._path.unlink()
        logger.debug("Install record removed: %s", self._path)
        return True
