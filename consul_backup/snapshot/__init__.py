"""
Snapshot module for consul-backup.

This module turns KV listings into snapshot files and back:
- codec: binary-safe value encoding
- filters: include/exclude prefix rules
- ordering: creation-order sort
- writer: listing -> file
- reader: file -> store writes

Invariants:
    - decode_value(encode_value(v)) == v for every byte string v
    - Snapshots are written atomically and replayed in file order
"""

from .codec import FIELD_DELIMITER, decode_value, encode_value
from .filters import PrefixRules, passes
from .models import Entry, RestoreReport, SnapshotLine, WriteReport
from .ordering import order_entries
from .reader import Replayer, SnapshotReader
from .writer import SnapshotWriter

__all__ = [
    "FIELD_DELIMITER",
    "Entry",
    "PrefixRules",
    "Replayer",
    "RestoreReport",
    "SnapshotLine",
    "SnapshotReader",
    "SnapshotWriter",
    "WriteReport",
    "decode_value",
    "encode_value",
    "order_entries",
    "passes",
]
