"""
Integration tests for BackupTool.

Runs full backup and restore cycles against InMemoryKvStore and against
ConsulClient talking to a fake agent over httpx.MockTransport.

Tests cover:
- Backup then restore reproduces every retained key and value
- Creation ordering and prefix filtering in the written file
- Option conflicts are rejected before the store is listed
- Leader-only backups
- ACL reports
- Aborted restores leave earlier writes applied
"""

import base64
import json
import os
import tempfile
from typing import Dict, List, Tuple

import httpx
import pytest

from consul_backup.acl import AclToken
from consul_backup.config import BackupConfig, ConsulConfig, Mode
from consul_backup.errors import (
    MalformedEncodingError,
    NotLeaderError,
    SnapshotReadError,
    StoreError,
    UnsafeKeyError,
    UsageError,
)
from consul_backup.snapshot import Entry
from consul_backup.store import ConsulClient, InMemoryKvStore
from consul_backup.tools import BackupTool


@pytest.fixture
def data_dir():
    """Create a temporary directory for snapshot files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


def read_file(path: str) -> str:
    with open(path, encoding="utf-8") as f:
        return f.read()


class KvOnlyStore:
    """Store without ACL or cluster status support."""

    def __init__(self) -> None:
        self.data: Dict[str, bytes] = {}

    async def list_all(self) -> List[Entry]:
        return [Entry(key=k, value=v, create_index=i) for i, (k, v) in enumerate(self.data.items())]

    async def put(self, key: str, value: bytes) -> None:
        self.data[key] = value


class FakeConsulAgent:
    """Minimal Consul HTTP agent for httpx.MockTransport."""

    def __init__(self, leader: str = "10.0.0.1:8300", addr: str = "10.0.0.1") -> None:
        self.kv: Dict[str, Tuple[bytes, int]] = {}
        self.index = 0
        self.leader = leader
        self.addr = addr
        self.requests: List[Tuple[str, str]] = []

    def seed(self, key: str, value: bytes) -> None:
        self.index += 1
        self.kv[key] = (value, self.index)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))

        if path == "/v1/status/leader":
            return httpx.Response(200, json=self.leader)
        if path == "/v1/agent/self":
            return httpx.Response(200, json={"Member": {"Addr": self.addr}})
        if path == "/v1/kv/" and request.method == "GET":
            if not self.kv:
                return httpx.Response(404)
            return httpx.Response(
                200,
                json=[
                    {
                        "Key": key,
                        "CreateIndex": index,
                        "ModifyIndex": index,
                        "Flags": 0,
                        "Value": base64.b64encode(value).decode() if value else None,
                    }
                    for key, (value, index) in sorted(self.kv.items())
                ],
            )
        if path.startswith("/v1/kv/") and request.method == "PUT":
            key = path[len("/v1/kv/"):]
            if key in self.kv:
                self.kv[key] = (request.content, self.kv[key][1])
            else:
                self.seed(key, request.content)
            return httpx.Response(200, content=json.dumps(True))
        if path == "/v1/acl/list":
            return httpx.Response(
                200, json=[{"ID": "root", "Name": "Master Token", "Type": "management", "Rules": ""}]
            )
        return httpx.Response(404)


class TestBackup:
    """Backup runs against InMemoryKvStore."""

    @pytest.fixture
    def store(self):
        """Create a store with keys out of creation order."""
        store = InMemoryKvStore()
        store.seed("b/1", b"v3", create_index=5)
        store.seed("a/1", b"v1", create_index=1)
        store.seed("a/2", b"v2", create_index=3)
        return store

    @pytest.mark.asyncio
    async def test_file_in_creation_order(self, store, data_dir):
        path = os.path.join(data_dir, "kv.bkp")
        result = await BackupTool(BackupConfig(filename=path), store=store).run()

        assert result.success
        assert read_file(path) == "a/1:djE=\na/2:djI=\nb/1:djM=\n"
        assert result.write_report.written == 3
        assert result.acl_tokens is None

    @pytest.mark.asyncio
    async def test_exclude_prefix(self, store, data_dir):
        path = os.path.join(data_dir, "kv.bkp")
        config = BackupConfig(filename=path, exclude_prefixes=("a/",))
        result = await BackupTool(config, store=store).run()

        assert read_file(path) == "b/1:djM=\n"
        assert result.write_report.filtered == 2

    @pytest.mark.asyncio
    async def test_include_prefix(self, store, data_dir):
        path = os.path.join(data_dir, "kv.bkp")
        config = BackupConfig(filename=path, include_prefixes=("a/",))
        await BackupTool(config, store=store).run()

        assert read_file(path) == "a/1:djE=\na/2:djI=\n"

    @pytest.mark.asyncio
    async def test_conflicting_prefixes_rejected_before_listing(self, store, data_dir):
        """No request reaches the store and no file is created."""
        path = os.path.join(data_dir, "kv.bkp")
        config = BackupConfig(filename=path, include_prefixes=("a/",), exclude_prefixes=("b/",))
        result = await BackupTool(config, store=store).run()

        assert not result.success
        assert isinstance(result.error, UsageError)
        assert store.list_calls == 0
        assert not os.path.exists(path)

    @pytest.mark.asyncio
    async def test_deterministic(self, store, data_dir):
        first = os.path.join(data_dir, "one.bkp")
        second = os.path.join(data_dir, "two.bkp")
        r1 = await BackupTool(BackupConfig(filename=first), store=store).run()
        r2 = await BackupTool(BackupConfig(filename=second), store=store).run()

        assert read_file(first) == read_file(second)
        assert r1.write_report.checksum == r2.write_report.checksum

    @pytest.mark.asyncio
    async def test_empty_store(self, data_dir):
        path = os.path.join(data_dir, "kv.bkp")
        result = await BackupTool(BackupConfig(filename=path), store=InMemoryKvStore()).run()

        assert result.success
        assert read_file(path) == ""

    @pytest.mark.asyncio
    async def test_unsafe_key_fails(self, store, data_dir):
        store.seed("svc:8080", b"x")
        path = os.path.join(data_dir, "kv.bkp")
        result = await BackupTool(BackupConfig(filename=path), store=store).run()

        assert isinstance(result.error, UnsafeKeyError)
        assert not os.path.exists(path)

    @pytest.mark.asyncio
    async def test_unsafe_key_skipped(self, store, data_dir):
        store.seed("svc:8080", b"x")
        path = os.path.join(data_dir, "kv.bkp")
        config = BackupConfig(filename=path, skip_unsafe_keys=True)
        result = await BackupTool(config, store=store).run()

        assert result.success
        assert result.write_report.skipped_keys == ["svc:8080"]
        assert "svc" not in read_file(path)

    @pytest.mark.asyncio
    async def test_dot_segment_key_fails(self, store, data_dir):
        """Keys the restore could not write back unchanged fail the export."""
        store.seed("a/../b/1", b"x")
        path = os.path.join(data_dir, "kv.bkp")
        result = await BackupTool(BackupConfig(filename=path), store=store).run()

        assert isinstance(result.error, UnsafeKeyError)
        assert result.error.keys == ["a/../b/1"]
        assert not os.path.exists(path)

    @pytest.mark.asyncio
    async def test_leader_only_on_leader(self, store, data_dir):
        path = os.path.join(data_dir, "kv.bkp")
        result = await BackupTool(BackupConfig(filename=path, leader_only=True), store=store).run()
        assert result.success

    @pytest.mark.asyncio
    async def test_leader_only_on_follower(self, store, data_dir):
        store.leader = False
        path = os.path.join(data_dir, "kv.bkp")
        result = await BackupTool(BackupConfig(filename=path, leader_only=True), store=store).run()

        assert isinstance(result.error, NotLeaderError)
        assert "Not a consul leader" in result.error.message
        assert store.list_calls == 0
        assert not os.path.exists(path)

    @pytest.mark.asyncio
    async def test_leader_only_needs_cluster_status(self, data_dir):
        path = os.path.join(data_dir, "kv.bkp")
        config = BackupConfig(filename=path, leader_only=True)
        result = await BackupTool(config, store=KvOnlyStore()).run()
        assert isinstance(result.error, UsageError)

    @pytest.mark.asyncio
    async def test_acl_backup(self, data_dir):
        store = InMemoryKvStore(tokens=[AclToken(id="t1", name="ops", type="client", rules="r")])
        path = os.path.join(data_dir, "kv.bkp")
        acl_path = os.path.join(data_dir, "acl.bkp")
        config = BackupConfig(filename=path, acl_backup=True, acl_backup_file=acl_path)
        result = await BackupTool(config, store=store).run()

        assert result.success
        assert result.acl_tokens == 1
        assert read_file(acl_path) == "====\nID: t1\nName: ops\nType: client\nRules:\nr\n"

    @pytest.mark.asyncio
    async def test_acl_backup_needs_acl_source(self, data_dir):
        path = os.path.join(data_dir, "kv.bkp")
        config = BackupConfig(
            filename=path, acl_backup=True, acl_backup_file=os.path.join(data_dir, "acl.bkp")
        )
        result = await BackupTool(config, store=KvOnlyStore()).run()
        assert isinstance(result.error, UsageError)


class TestRestore:
    """Restore runs against InMemoryKvStore."""

    @pytest.mark.asyncio
    async def test_round_trip(self, data_dir):
        """Every key and value survives backup then restore."""
        source = InMemoryKvStore()
        values = {
            "app/empty": b"",
            "app/binary": bytes(range(256)),
            "app/colon": b"host:port",
            "app/newline": b"a\nb\r\n",
            "app/text": "héllo".encode("utf-8"),
        }
        for key, value in values.items():
            source.seed(key, value)

        path = os.path.join(data_dir, "kv.bkp")
        backup = await BackupTool(BackupConfig(filename=path), store=source).run()
        assert backup.success

        target = InMemoryKvStore()
        config = BackupConfig(filename=path, mode=Mode.RESTORE)
        restore = await BackupTool(config, store=target).run()

        assert restore.success
        assert restore.restore_report.keys_written == len(values)
        assert {k: target.get(k) for k in target.keys()} == values

    @pytest.mark.asyncio
    async def test_restore_follows_creation_order(self, data_dir):
        source = InMemoryKvStore()
        source.seed("z", b"1", create_index=1)
        source.seed("a", b"2", create_index=2)
        path = os.path.join(data_dir, "kv.bkp")
        await BackupTool(BackupConfig(filename=path), store=source).run()

        target = InMemoryKvStore()
        await BackupTool(BackupConfig(filename=path, mode=Mode.RESTORE), store=target).run()

        assert [k for k, _ in target.writes] == ["z", "a"]

    @pytest.mark.asyncio
    async def test_prefixes_rejected_on_restore(self, data_dir):
        path = os.path.join(data_dir, "kv.bkp")
        with open(path, "w") as f:
            f.write("a:djE=\n")

        store = InMemoryKvStore()
        config = BackupConfig(filename=path, mode=Mode.RESTORE, exclude_prefixes=("a",))
        result = await BackupTool(config, store=store).run()

        assert isinstance(result.error, UsageError)
        assert store.writes == []

    @pytest.mark.asyncio
    async def test_malformed_line_aborts(self, data_dir):
        path = os.path.join(data_dir, "kv.bkp")
        with open(path, "w") as f:
            f.write("a:djE=\nb:%%%\nc:djM=\n")

        store = InMemoryKvStore()
        result = await BackupTool(BackupConfig(filename=path, mode=Mode.RESTORE), store=store).run()

        assert isinstance(result.error, MalformedEncodingError)
        assert result.restore_report is None
        assert store.keys() == ["a"]

    @pytest.mark.asyncio
    async def test_malformed_line_skipped(self, data_dir):
        path = os.path.join(data_dir, "kv.bkp")
        with open(path, "w") as f:
            f.write("a:djE=\nb:%%%\nc:djM=\n")

        store = InMemoryKvStore()
        config = BackupConfig(filename=path, mode=Mode.RESTORE, skip_malformed=True)
        result = await BackupTool(config, store=store).run()

        assert result.success
        assert result.restore_report.malformed_lines == [2]
        assert store.keys() == ["a", "c"]

    @pytest.mark.asyncio
    async def test_write_failure_not_rolled_back(self, data_dir):
        path = os.path.join(data_dir, "kv.bkp")
        with open(path, "w") as f:
            f.write("a:djE=\nb:djI=\nc:djM=\n")

        store = InMemoryKvStore(fail_after_writes=2)
        result = await BackupTool(BackupConfig(filename=path, mode=Mode.RESTORE), store=store).run()

        assert isinstance(result.error, StoreError)
        assert store.keys() == ["a", "b"]

    @pytest.mark.asyncio
    async def test_missing_file(self, data_dir):
        config = BackupConfig(filename=os.path.join(data_dir, "missing.bkp"), mode=Mode.RESTORE)
        result = await BackupTool(config, store=InMemoryKvStore()).run()
        assert isinstance(result.error, SnapshotReadError)

    @pytest.mark.asyncio
    async def test_acl_flag_ignored(self, data_dir):
        path = os.path.join(data_dir, "kv.bkp")
        with open(path, "w") as f:
            f.write("a:djE=\n")

        config = BackupConfig(filename=path, mode=Mode.RESTORE, acl_backup=True)
        result = await BackupTool(config, store=InMemoryKvStore()).run()

        assert result.success
        assert result.acl_tokens is None


class TestAgainstConsulApi:
    """Full cycles through ConsulClient and a fake agent."""

    def make_client(self, agent: FakeConsulAgent) -> ConsulClient:
        return ConsulClient(
            ConsulConfig(address="consul.test:8500"),
            transport=httpx.MockTransport(agent),
        )

    @pytest.mark.asyncio
    async def test_backup_and_restore(self, data_dir):
        source = FakeConsulAgent()
        source.seed("svc/web", b'{"port": 80}')
        source.seed("svc/db", b"")
        source.seed("flags/x", b"\x01\x02")

        path = os.path.join(data_dir, "kv.bkp")
        async with self.make_client(source) as client:
            result = await BackupTool(BackupConfig(filename=path), store=client).run()
        assert result.success
        assert read_file(path).splitlines()[0].startswith("svc/web:")

        target = FakeConsulAgent()
        async with self.make_client(target) as client:
            config = BackupConfig(filename=path, mode=Mode.RESTORE)
            result = await BackupTool(config, store=client).run()

        assert result.success
        assert {k: v for k, (v, _) in target.kv.items()} == {
            "svc/web": b'{"port": 80}',
            "svc/db": b"",
            "flags/x": b"\x01\x02",
        }

    @pytest.mark.asyncio
    async def test_empty_store_writes_empty_file(self, data_dir):
        path = os.path.join(data_dir, "kv.bkp")
        async with self.make_client(FakeConsulAgent()) as client:
            result = await BackupTool(BackupConfig(filename=path), store=client).run()

        assert result.success
        assert read_file(path) == ""

    @pytest.mark.asyncio
    async def test_follower_refuses_leader_only_backup(self, data_dir):
        agent = FakeConsulAgent(leader="10.0.0.1:8300", addr="10.0.0.9")
        agent.seed("k", b"v")
        path = os.path.join(data_dir, "kv.bkp")
        async with self.make_client(agent) as client:
            config = BackupConfig(filename=path, leader_only=True)
            result = await BackupTool(config, store=client).run()

        assert isinstance(result.error, NotLeaderError)
        assert ("GET", "/v1/kv/") not in agent.requests

    @pytest.mark.asyncio
    async def test_acl_report(self, data_dir):
        path = os.path.join(data_dir, "kv.bkp")
        acl_path = os.path.join(data_dir, "acl.bkp")
        async with self.make_client(FakeConsulAgent()) as client:
            config = BackupConfig(filename=path, acl_backup=True, acl_backup_file=acl_path)
            result = await BackupTool(config, store=client).run()

        assert result.acl_tokens == 1
        assert "ID: root" in read_file(acl_path)

    def test_default_store_is_consul_client(self):
        tool = BackupTool(BackupConfig(filename="kv.bkp"))
        assert isinstance(tool.store, ConsulClient)
