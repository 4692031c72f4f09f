"""
In-memory KV store implementation for testing.

This module provides a simple in-memory store for:
- Unit tests
- Integration tests of the backup tool
- Dry runs of a restore without a Consul cluster

Invariants:
    - All data is lost on process exit
    - Create indexes grow monotonically and survive overwrites, like Consul's
    - list_all() returns entries sorted by key, like Consul's recurse listing

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with the KvStore and AclSource protocols
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from ..acl.models import AclToken
from ..errors import StoreError
from ..snapshot.models import Entry

logger = logging.getLogger(__name__)


class InMemoryKvStore:
    """In-memory implementation of KvStore, AclSource and ClusterStatus.

    Attributes:
        writes: Every successful put, in call order
        leader: What is_leader() reports
        fail_after_writes: If set, put() raises StoreError once this many
            writes have succeeded

    Example:
        >>> store = InMemoryKvStore()
        >>> await store.put("app/config", b"{}")
        >>> entries = await store.list_all()
    """

    def __init__(
        self,
        tokens: Optional[List[AclToken]] = None,
        fail_after_writes: Optional[int] = None,
    ) -> None:
        """Initialize the store.

        Args:
            tokens: ACL tokens returned by list_tokens()
            fail_after_writes: Make put() fail after this many writes
        """
        self._entries: Dict[str, Entry] = {}
        self._next_index = 1
        self._tokens: List[AclToken] = list(tokens or [])
        self._lock = asyncio.Lock()
        self.fail_after_writes = fail_after_writes
        self.writes: List[Tuple[str, bytes]] = []
        self.list_calls = 0
        self.leader = True
        self.leader_address = "127.0.0.1:8300"

    def seed(self, key: str, value: bytes, create_index: Optional[int] = None) -> Entry:
        """Insert an entry directly, optionally with an explicit create index."""
        if create_index is None:
            create_index = self._next_index
        self._next_index = max(self._next_index, create_index) + 1
        entry = Entry(key=key, value=value, create_index=create_index)
        self._entries[key] = entry
        return entry

    def get(self, key: str) -> Optional[bytes]:
        """Current value of a key, or None if absent."""
        entry = self._entries.get(key)
        return entry.value if entry else None

    def keys(self) -> List[str]:
        return sorted(self._entries)

    async def list_all(self) -> List[Entry]:
        """List every entry, sorted by key."""
        self.list_calls += 1
        async with self._lock:
            return [self._entries[k] for k in sorted(self._entries)]

    async def put(self, key: str, value: bytes) -> None:
        """Write a key, keeping its create index if it already exists."""
        async with self._lock:
            if self.fail_after_writes is not None and len(self.writes) >= self.fail_after_writes:
                raise StoreError(f"Injected write failure for key {key!r}", path=f"/v1/kv/{key}")

            existing = self._entries.get(key)
            if existing is not None:
                self._entries[key] = Entry(
                    key=key, value=value, create_index=existing.create_index
                )
            else:
                self._entries[key] = Entry(key=key, value=value, create_index=self._next_index)
                self._next_index += 1

            self.writes.append((key, value))

        logger.debug("Key written to in-memory store", extra={"key": key})

    async def list_tokens(self) -> List[AclToken]:
        return list(self._tokens)

    async def ping(self) -> str:
        return self.leader_address

    async def is_leader(self) -> Tuple[bool, str]:
        return self.leader, self.leader_address
