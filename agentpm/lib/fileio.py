"""Atomic file writes: sibling temp file, then rename over the target."""

import logging
import os
import tempfile
from pathlib import Path

from .errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)


def atomic_write(path: Path, content: bytes | str) -> None:
    """Write file atomically via temp + rename.

    Raises:
        StorageError: If the temp file cannot be written or renamed
    """
    data = content.encode("utf-8") if isinstance(content, str) else content
    path = Path(path)
    try:
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    except OSError as e:
        raise StorageError(f"Cannot write {path}: {e}") from e
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except OSError as e:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise StorageError(f"Cannot write {path}: {e}") from e
    logger.debug(f"[IO] wrote {len(data)} bytes to {path}")


def read_bytes(path: Path, what: str = "file") -> bytes:
    """Read a file, mapping a missing file to not_found and other failures to io."""
    path = Path(path)
    if not path.exists():
        raise NotFoundError(f"{what.capitalize()} not found: {path}", missing_file=True, path=str(path))
    try:
        return path.read_bytes()
    except OSError as e:
        raise StorageError(f"Cannot read {path}: {e}") from e
