"""
consul-backup - KV snapshot export and restore for Consul.

This package exports the full contents of a Consul key-value store into a
portable flat-file snapshot and replays such a snapshot into a (possibly
different) Consul cluster. ACL tokens can be dumped to a human-readable
report alongside the KV snapshot.

Architecture:
    ┌──────────────┐  list_all()  ┌────────────────┐  lines  ┌──────────┐
    │ Consul (KV)  │─────────────▶│ SnapshotWriter │────────▶│ snapshot │
    └──────────────┘              │ filter + order │         │   file   │
           ▲                      └────────────────┘         └────┬─────┘
           │ put(key, value)                                      │
           │                      ┌────────────────┐              │
           └──────────────────────│    Replayer    │◀─────────────┘
                                  └────────────────┘

Snapshot format:
    <key>:<base64(value)>\\n    (one line per key, ascending create index)

Invariants:
    - Export then restore is lossless for every included key
    - Exports of an unchanged store are byte-identical
    - Restore is NOT transactional: a failure leaves earlier writes applied

How to change safely:
    - Never change the line format without a new file extension/version
    - Keep the store protocols small so test doubles stay trivial
"""

from ._version import __version__

__all__ = ["__version__"]
