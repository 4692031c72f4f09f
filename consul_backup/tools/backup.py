"""
Backup and restore orchestration for consul-backup.

Backup:
1. Validate options (before any request reaches Consul)
2. Check the agent is reachable (and the leader, if requested)
3. List the whole KV store once
4. Filter, order, encode and write the snapshot file
5. Optionally dump ACL tokens to a report

Restore:
1. Validate options
2. Check the agent is reachable
3. Replay the snapshot file, one write per line, in file order

Invariants:
    - Every failure is terminal: no retries, no checkpoints
    - Restore is NOT transactional; a failure leaves earlier writes applied
    - The tool never exits the process; callers decide what a failure means
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

from ..acl import AclDumpWriter
from ..config import BackupConfig, Mode
from ..errors import BackupError, NotLeaderError, UsageError
from ..snapshot import PrefixRules, Replayer, RestoreReport, SnapshotWriter, WriteReport
from ..store import AclSource, ClusterStatus, ConsulClient, KvStore

logger = logging.getLogger(__name__)


@dataclass
class BackupResult:
    """Result of a backup or restore run.

    Attributes:
        success: Whether the run succeeded
        mode: Backup or restore
        write_report: Snapshot write details (backup)
        restore_report: Replay details (restore)
        acl_tokens: Number of ACL tokens exported, if requested
        duration_ms: Total run duration
        error: The error that stopped the run
    """

    success: bool
    mode: Mode
    write_report: Optional[WriteReport] = None
    restore_report: Optional[RestoreReport] = None
    acl_tokens: Optional[int] = None
    duration_ms: int = 0
    error: Optional[BackupError] = None


class BackupTool:
    """Tool for exporting and restoring a Consul KV store.

    Example:
        >>> tool = BackupTool(BackupConfig(filename="kv.bkp"))
        >>> result = await tool.run()
        >>> print(f"Wrote {result.write_report.written} keys")
    """

    def __init__(self, config: BackupConfig, store: Optional[KvStore] = None) -> None:
        """Initialize the tool.

        Args:
            config: Run configuration
            store: Store to use; a ConsulClient built from config.consul if omitted
        """
        self.config = config
        self._owns_store = store is None
        self.store: KvStore = store if store is not None else ConsulClient(config.consul)

    async def run(self) -> BackupResult:
        """Execute the configured operation, capturing any backup error."""
        start_time = time.time()
        result = BackupResult(success=False, mode=self.config.mode)

        try:
            if self.config.mode == Mode.RESTORE:
                result.restore_report = await self.restore()
            else:
                result.write_report, result.acl_tokens = await self.backup()
            result.success = True
        except BackupError as e:
            logger.error(f"{self.config.mode.value.capitalize()} failed: {e.message}")
            result.error = e

        result.duration_ms = int((time.time() - start_time) * 1000)
        return result

    async def backup(self) -> tuple[WriteReport, Optional[int]]:
        """Export the KV store (and optionally ACLs).

        Returns:
            Tuple of (snapshot write report, exported ACL token count or None)
        """
        self.config.validate()
        rules = PrefixRules.from_lists(
            exclude=self.config.exclude_prefixes,
            include=self.config.include_prefixes,
        )

        if rules.exclude:
            logger.info(f"Excluding keys with prefix(es): {list(rules.exclude)}")
        if rules.include:
            logger.info(f"Including only keys with prefix(es): {list(rules.include)}")

        await self._open()
        try:
            await self._check_reachable()
            if self.config.leader_only:
                await self._check_leader()

            logger.info(f"KV store will be backed up to file: {self.config.filename}")
            entries = await self.store.list_all()
            writer = SnapshotWriter(skip_unsafe_keys=self.config.skip_unsafe_keys)
            report = writer.write(entries, rules, self.config.filename)

            acl_tokens = None
            if self.config.acl_backup:
                acl_tokens = await self._backup_acls()

            return report, acl_tokens
        finally:
            await self._close()

    async def restore(self) -> RestoreReport:
        """Replay the snapshot file into the store."""
        self.config.validate()

        await self._open()
        try:
            await self._check_reachable()
            logger.info(f"Restoring KV from file: {self.config.filename}")
            replayer = Replayer(self.store, skip_malformed=self.config.skip_malformed)
            return await replayer.restore(self.config.filename)
        finally:
            await self._close()

    async def _backup_acls(self) -> int:
        if not isinstance(self.store, AclSource):
            raise UsageError("The configured store cannot list ACL tokens")

        logger.info(f"ACL tokens will be backed up to file: {self.config.acl_backup_file}")
        tokens = await self.store.list_tokens()
        return AclDumpWriter().dump(tokens, self.config.acl_backup_file)

    async def _check_reachable(self) -> None:
        if isinstance(self.store, ClusterStatus):
            await self.store.ping()

    async def _check_leader(self) -> None:
        if not isinstance(self.store, ClusterStatus):
            raise UsageError("The configured store cannot report leadership")

        is_leader, leader = await self.store.is_leader()
        if not is_leader:
            raise NotLeaderError(f"Not a consul leader (leader is {leader or 'unknown'})", leader)
        logger.info("Agent is the cluster leader")

    async def _open(self) -> None:
        if self._owns_store and isinstance(self.store, ConsulClient):
            await self.store.connect()

    async def _close(self) -> None:
        if self._owns_store and isinstance(self.store, ConsulClient):
            await self.store.close()
