"""
Snapshot reader and replayer.

The replayer reads a snapshot file and re-issues every line as a KV write,
in file order, one write at a time.

Invariants:
    - Lines without a ":" (blank lines included) are skipped, not errors
    - Each line is split on its FIRST ":" only
    - A decode failure or a store failure aborts the replay; writes already
      issued are NOT rolled back (restore is not transactional)
    - Writes overwrite unconditionally (no check-and-set)

How to change safely:
    - Keep the default fail-fast behaviour; lenient modes must be opt-in
    - Never reorder lines: creation order is part of the snapshot contract
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, List

from ..errors import BackupError, MalformedEncodingError
from .codec import FIELD_DELIMITER, LINE_DELIMITER, decode_value
from .files import read_text
from .models import RestoreReport, SnapshotLine

if TYPE_CHECKING:
    from ..store.base import KvStore

logger = logging.getLogger(__name__)


def parse_lines(content: str) -> Iterator[SnapshotLine | None]:
    """Split snapshot content into lines.

    Yields a SnapshotLine per key/value line and None for every line that
    carries no delimiter. A trailing carriage return is dropped so files
    edited on Windows still parse.
    """
    for number, raw in enumerate(content.split(LINE_DELIMITER), start=1):
        line = raw[:-1] if raw.endswith("\r") else raw
        key, sep, encoded = line.partition(FIELD_DELIMITER)
        if not sep:
            yield None
            continue
        yield SnapshotLine(line_number=number, key=key, encoded_value=encoded)


class SnapshotReader:
    """Reads and parses a snapshot file.

    Example:
        >>> reader = SnapshotReader("kv.bkp")
        >>> for line in reader.read():
        ...     print(line.key)
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self.lines_read = 0
        self.lines_skipped = 0

    def read(self) -> List[SnapshotLine]:
        """Read the whole file and return its key/value lines.

        Raises:
            SnapshotReadError: If the file cannot be opened or read
        """
        content = read_text(self.path)

        lines: List[SnapshotLine] = []
        self.lines_read = 0
        self.lines_skipped = 0
        for parsed in parse_lines(content):
            self.lines_read += 1
            if parsed is None:
                self.lines_skipped += 1
            else:
                lines.append(parsed)

        # content.split() yields an empty tail after the final newline
        if content == "" or content.endswith(LINE_DELIMITER):
            self.lines_read -= 1
            self.lines_skipped -= 1

        return lines


class Replayer:
    """Replays snapshot files into a KV store.

    Attributes:
        store: Store receiving the writes
        skip_malformed: Continue past undecodable lines and report them
            instead of aborting

    Example:
        >>> replayer = Replayer(consul_client)
        >>> report = await replayer.restore("kv.bkp")
        >>> print(f"Restored {report.keys_written} keys")
    """

    def __init__(self, store: KvStore, skip_malformed: bool = False) -> None:
        self.store = store
        self.skip_malformed = skip_malformed

    async def restore(self, source: str | Path) -> RestoreReport:
        """Replay a snapshot file.

        Args:
            source: Snapshot file path

        Returns:
            RestoreReport with counts

        Raises:
            SnapshotReadError: If the file cannot be read
            MalformedEncodingError: If a value cannot be decoded (default mode)
            BackupError: Whatever the store raises for a failed write
        """
        start_time = time.time()
        reader = SnapshotReader(source)
        lines = reader.read()

        report = RestoreReport(
            path=str(source),
            lines_read=reader.lines_read,
            lines_skipped=reader.lines_skipped,
        )

        logger.info(f"Replaying {len(lines)} keys from {source}")

        for line in lines:
            try:
                value = decode_value(line.encoded_value)
            except MalformedEncodingError as e:
                if not self.skip_malformed:
                    logger.error(
                        f"Malformed value on line {line.line_number}, aborting restore "
                        f"after {report.keys_written} write(s)",
                        extra={"line_number": line.line_number, "key": line.key},
                    )
                    raise MalformedEncodingError(
                        f"Line {line.line_number} (key {line.key!r}): {e.message}",
                        line_number=line.line_number,
                        key=line.key,
                    ) from e
                logger.warning(
                    f"Skipping malformed value on line {line.line_number}",
                    extra={"line_number": line.line_number, "key": line.key},
                )
                report.malformed_lines.append(line.line_number)
                continue

            try:
                await self.store.put(line.key, value)
            except BackupError:
                logger.error(
                    f"Write failed on line {line.line_number}, aborting restore "
                    f"after {report.keys_written} write(s)",
                    extra={"line_number": line.line_number, "key": line.key},
                )
                raise
            report.keys_written += 1
            logger.debug("Restored key", extra={"key": line.key, "size_bytes": len(value)})

        report.duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Restore completed",
            extra={
                "path": report.path,
                "keys_written": report.keys_written,
                "lines_skipped": report.lines_skipped,
                "malformed": len(report.malformed_lines),
                "duration_ms": report.duration_ms,
            },
        )
        return report
