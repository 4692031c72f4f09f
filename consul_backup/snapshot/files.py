"""
Local file helpers for snapshot and report files.

Invariants:
    - Writes replace the destination atomically (temp file + os.replace)
    - A failed write leaves any previous file at the destination untouched
    - An existing file keeps its permission bits; a new one gets 0666 & ~umask
    - OSError never escapes; it is wrapped in SnapshotReadError/SnapshotWriteError
"""

from __future__ import annotations

import hashlib
import logging
import os
import stat
import tempfile
from pathlib import Path

from ..errors import SnapshotReadError, SnapshotWriteError

logger = logging.getLogger(__name__)


def _target_mode(path: Path) -> int:
    """Permission bits for the file about to replace path."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        # mkstemp creates 0600, open() would give 0666 & ~umask
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


def atomic_write_text(destination: str | Path, content: str) -> tuple[int, str]:
    """Create or overwrite a file with the given content.

    Args:
        destination: Target path
        content: Full file content

    Returns:
        Tuple of (size_bytes, "sha256:<hex>")

    Raises:
        SnapshotWriteError: If the file cannot be created or written
    """
    path = Path(destination)
    data = content.encode("utf-8")
    tmp_path: Path | None = None

    try:
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
        )
        tmp_path = Path(tmp_name)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, _target_mode(path))
        os.replace(tmp_path, path)
        tmp_path = None
    except OSError as e:
        raise SnapshotWriteError(f"Cannot write {path}: {e}", path=str(path)) from e
    finally:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()

    checksum = f"sha256:{hashlib.sha256(data).hexdigest()}"
    logger.debug("Wrote file", extra={"path": str(path), "size_bytes": len(data)})
    return len(data), checksum


def read_text(source: str | Path) -> str:
    """Read a whole UTF-8 file.

    Raises:
        SnapshotReadError: If the file cannot be opened, read or decoded
    """
    path = Path(source)
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SnapshotReadError(f"Cannot read {path}: {e}", path=str(path)) from e
