"""
Store access for consul-backup.

This module provides the store collaborators the backup engine uses:
- KvStore / AclSource: Protocols the engine depends on
- ConsulClient: Consul HTTP API implementation
- InMemoryKvStore: In-memory implementation for tests and dry runs

Invariants:
    - The engine depends only on the protocols
    - All implementations overwrite unconditionally on put()
"""

from .base import AclSource, ClusterStatus, KvStore
from .consul import ConsulClient
from .memory import InMemoryKvStore

__all__ = [
    "AclSource",
    "ClusterStatus",
    "ConsulClient",
    "InMemoryKvStore",
    "KvStore",
]
