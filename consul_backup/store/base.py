"""
Protocols for the stores the backup engine talks to.

The engine needs very little from a store: a full KV listing, an
unconditional write, and (for the ACL report) a token listing. Keeping the
protocols this small lets tests swap in InMemoryKvStore.

Invariants:
    - list_all() returns every key under the root, in any order
    - put() overwrites unconditionally; there is no check-and-set
    - Failures raise BackupError subclasses; nothing returns error codes

How to change safely:
    - Protocol changes require updating ConsulClient and InMemoryKvStore
    - Add new methods to a separate protocol rather than widening KvStore
"""

from __future__ import annotations

from typing import List, Protocol, Tuple, runtime_checkable

from ..acl.models import AclToken
from ..snapshot.models import Entry


@runtime_checkable
class KvStore(Protocol):
    """Protocol for KV stores that can be backed up and restored."""

    async def list_all(self) -> List[Entry]:
        """List every entry in the store.

        Returns:
            All entries, order irrelevant
        """
        ...

    async def put(self, key: str, value: bytes) -> None:
        """Write one key, overwriting any existing value.

        Args:
            key: Key to write
            value: Raw value bytes
        """
        ...


@runtime_checkable
class AclSource(Protocol):
    """Protocol for stores that can list ACL tokens."""

    async def list_tokens(self) -> List[AclToken]:
        """List every ACL token visible to the configured credential."""
        ...


@runtime_checkable
class ClusterStatus(Protocol):
    """Protocol for stores that can report reachability and leadership."""

    async def ping(self) -> str:
        """Raise ConnectivityError unless the store answers; returns the leader."""
        ...

    async def is_leader(self) -> Tuple[bool, str]:
        """Return (is_leader, leader_address) for the agent we talk to."""
        ...
