"""
Deterministic ordering of listed entries.

Consul returns KV listings sorted by key, which changes as keys are added
and removed. Snapshots are written in creation order instead, so two exports
of an unchanged store are byte-identical and a restore recreates keys in the
order they were originally created.
"""

from __future__ import annotations

from typing import Iterable, List

from .models import Entry


def order_entries(entries: Iterable[Entry]) -> List[Entry]:
    """Sort entries ascending by create index (stable for ties)."""
    return sorted(entries, key=lambda e: e.create_index)
