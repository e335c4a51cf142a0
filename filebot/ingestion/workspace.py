"""Per-run working areas for downloaded attachment bytes."""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkingArea:
    """A uniquely named scratch directory owned by one pipeline run."""

    path: Path

    def file_path(self, name: str) -> Path:
        """Path for a file stored in the working area."""
        return self.path / name


def delete_working_area(path: Path | str) -> None:
    """Delete a working area. A missing directory is not an error."""
    shutil.rmtree(path, ignore_errors=True)


@contextmanager
def working_area(base_path: Path | str) -> Iterator[WorkingArea]:
    """
    Allocate a working area and delete it when the block exits.

    Args:
        base_path: Directory under which working areas are created

    Yields:
        The allocated WorkingArea
    """
    base = Path(base_path).expanduser()
    base.mkdir(mode=0o770, parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix="run-", dir=base))
    logger.debug(f"Created working area {path}")

    try:
        yield WorkingArea(path=path)
    finally:
        delete_working_area(path)
        logger.debug(f"Deleted working area {path}")
