"""
Snapshot writer: filter, order and encode a KV listing into a file.

File format:
    <key>:<base64(value)>\\n
    one line per retained entry, ascending create index

Invariants:
    - Output is a pure function of (entries, rules): same input, same bytes
    - The destination is replaced atomically, never appended to
    - Unsafe keys (a delimiter, or a "." or ".." path segment) are rejected
      before the file is touched, unless the writer was built with
      skip_unsafe_keys=True

How to change safely:
    - The reader splits on the FIRST ":" - keep keys delimiter-free
    - Test restore against snapshots written by older versions
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List

from ..errors import UnsafeKeyError
from .codec import FIELD_DELIMITER, LINE_DELIMITER, encode_value
from .files import atomic_write_text
from .filters import PrefixRules, passes
from .models import Entry, WriteReport
from .ordering import order_entries

logger = logging.getLogger(__name__)


def has_dot_segment(key: str) -> bool:
    """Whether a key has a "." or ".." path segment.

    HTTP clients normalize such paths, so a write to "a/../b" lands on "b".
    """
    return any(segment in (".", "..") for segment in key.split("/"))


def is_safe_key(key: str) -> bool:
    """Whether a key can be written and later restored unchanged."""
    if FIELD_DELIMITER in key or LINE_DELIMITER in key or "\r" in key:
        return False
    return not has_dot_segment(key)


def format_line(entry: Entry) -> str:
    """Serialize one entry as a snapshot line (newline included)."""
    return f"{entry.key}{FIELD_DELIMITER}{encode_value(entry.value)}{LINE_DELIMITER}"


class SnapshotWriter:
    """Writes KV listings as snapshot files.

    Example:
        >>> writer = SnapshotWriter()
        >>> report = writer.write(entries, PrefixRules(exclude=("tmp/",)), "kv.bkp")
        >>> print(f"{report.written} keys written")
    """

    def __init__(self, skip_unsafe_keys: bool = False) -> None:
        """Initialize the writer.

        Args:
            skip_unsafe_keys: Omit unsafe keys (with a warning)
                instead of failing the export
        """
        self.skip_unsafe_keys = skip_unsafe_keys

    def render(self, entries: Iterable[Entry], rules: PrefixRules) -> tuple[str, WriteReport]:
        """Build the snapshot content in memory.

        Args:
            entries: Full store listing, any order
            rules: Prefix rules to apply

        Returns:
            Tuple of (file content, report without path/size/checksum)

        Raises:
            UsageError: If rules populate both include and exclude
            UnsafeKeyError: If a retained key is unsafe (see is_safe_key)
        """
        rules.validate()
        ordered = order_entries(entries)

        kept: List[Entry] = []
        filtered = 0
        for entry in ordered:
            if passes(entry.key, rules):
                kept.append(entry)
            else:
                filtered += 1

        unsafe = [e.key for e in kept if not is_safe_key(e.key)]
        if unsafe:
            if not self.skip_unsafe_keys:
                raise UnsafeKeyError(unsafe)
            logger.warning(
                f"Skipping {len(unsafe)} unsafe key(s)",
                extra={"keys": unsafe},
            )
            kept = [e for e in kept if is_safe_key(e.key)]

        content = "".join(format_line(e) for e in kept)
        report = WriteReport(
            path="",
            total_entries=len(ordered),
            written=len(kept),
            filtered=filtered,
            skipped_keys=unsafe,
        )
        return content, report

    def write(
        self,
        entries: Iterable[Entry],
        rules: PrefixRules,
        destination: str | Path,
    ) -> WriteReport:
        """Write a snapshot file, replacing any existing file.

        Args:
            entries: Full store listing, any order
            rules: Prefix rules to apply
            destination: Snapshot file path

        Returns:
            WriteReport describing the written file

        Raises:
            UsageError: If rules populate both include and exclude
            UnsafeKeyError: If a retained key is unsafe (see is_safe_key)
            SnapshotWriteError: If the file cannot be created or written
        """
        content, report = self.render(entries, rules)
        size_bytes, checksum = atomic_write_text(destination, content)

        report.path = str(destination)
        report.size_bytes = size_bytes
        report.checksum = checksum

        logger.info(
            "Snapshot written",
            extra={
                "path": report.path,
                "written": report.written,
                "filtered": report.filtered,
                "skipped": len(report.skipped_keys),
                "size_bytes": size_bytes,
                "checksum": checksum,
            },
        )
        return report
