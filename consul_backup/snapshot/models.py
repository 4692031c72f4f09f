"""
Data types shared by the snapshot writer and reader.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class Entry:
    """One key/value record as listed from the store.

    Attributes:
        key: Non-empty key, unique within a listing
        value: Raw value bytes (any byte sequence)
        create_index: Store-assigned creation sequence, used only for ordering
    """

    key: str
    value: bytes
    create_index: int


@dataclass(frozen=True)
class SnapshotLine:
    """A parsed snapshot line, value still encoded.

    Attributes:
        line_number: 1-based position in the file
        key: Key text before the first delimiter
        encoded_value: Text after the first delimiter
    """

    line_number: int
    key: str
    encoded_value: str


@dataclass
class WriteReport:
    """Result of writing a snapshot file.

    Attributes:
        path: Destination file
        total_entries: Entries in the listing
        written: Lines written
        filtered: Entries dropped by the prefix rules
        skipped_keys: Unsafe keys omitted from the snapshot
        size_bytes: Size of the written file
        checksum: SHA-256 of the file content
    """

    path: str
    total_entries: int
    written: int
    filtered: int
    skipped_keys: List[str] = field(default_factory=list)
    size_bytes: int = 0
    checksum: str = ""


@dataclass
class RestoreReport:
    """Result of replaying a snapshot file.

    Attributes:
        path: Source file
        lines_read: Lines in the file, blank ones included
        keys_written: Successful store writes
        lines_skipped: Lines without a delimiter
        malformed_lines: Line numbers skipped for bad encoding (skip mode only)
        duration_ms: Wall time of the replay
    """

    path: str
    lines_read: int = 0
    keys_written: int = 0
    lines_skipped: int = 0
    malformed_lines: List[int] = field(default_factory=list)
    duration_ms: int = 0
