"""
Error types for consul-backup.

This module defines all exception types raised by the backup engine:
- BackupError: Base exception
- ConnectivityError: Consul agent unreachable
- AuthorizationError: ACL token rejected
- StoreError: Consul answered, but the request failed
- SnapshotReadError / SnapshotWriteError: Local file I/O failures
- MalformedEncodingError: Corrupt snapshot line
- UnsafeKeyError: Key cannot be represented in the snapshot format
- UsageError: Conflicting or missing options
- NotLeaderError: Leader-only backup requested on a follower

Invariants:
    - All errors inherit from BackupError
    - Errors include context for debugging
    - The ACL token never appears in an error message or its details
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class BackupError(Exception):
    """Base exception for all consul-backup errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "BACKUP_ERROR"
        self.details = details or {}


class ConnectivityError(BackupError):
    """Failed to reach the Consul HTTP endpoint.

    Raised when:
    - Nothing listens at the configured address
    - Connection or read times out
    """

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONNECTIVITY_ERROR",
            details={"address": address},
        )
        self.address = address


class AuthorizationError(BackupError):
    """Consul rejected the ACL token (HTTP 401/403)."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            code="AUTHORIZATION_ERROR",
            details={"path": path, "status_code": status_code},
        )
        self.path = path
        self.status_code = status_code


class StoreError(BackupError):
    """Consul answered but the operation did not succeed.

    Raised when:
    - The HTTP API returns an unexpected status code
    - A KV write is answered with ``false``
    - A response body cannot be parsed
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            code="STORE_ERROR",
            details={"path": path, "status_code": status_code},
        )
        self.path = path
        self.status_code = status_code


class SnapshotReadError(BackupError):
    """Snapshot file could not be opened or read."""

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message, code="READ_ERROR", details={"path": path})
        self.path = path


class SnapshotWriteError(BackupError):
    """Snapshot (or ACL report) file could not be created or written."""

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message, code="WRITE_ERROR", details={"path": path})
        self.path = path


class MalformedEncodingError(BackupError):
    """Encoded value is not a valid product of the snapshot encoder.

    Attributes:
        line_number: 1-based line in the snapshot file, when known
        key: Key of the offending line, when known
    """

    def __init__(
        self,
        message: str,
        line_number: Optional[int] = None,
        key: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="MALFORMED_ENCODING",
            details={"line_number": line_number, "key": key},
        )
        self.line_number = line_number
        self.key = key


class UnsafeKeyError(BackupError):
    """Keys cannot be written to a snapshot and restored unchanged.

    A key is unsafe when it contains a snapshot delimiter (':', '\\n' or
    '\\r') or a '.' or '..' path segment, which HTTP clients collapse.

    Attributes:
        keys: The offending keys
    """

    def __init__(self, keys: List[str]) -> None:
        shown = ", ".join(repr(k) for k in keys[:5])
        if len(keys) > 5:
            shown += f" (+{len(keys) - 5} more)"
        super().__init__(
            f"{len(keys)} key(s) contain a snapshot delimiter (':', '\\n' or '\\r') "
            f"or a '.'/'..' path segment: {shown}",
            code="UNSAFE_KEY",
            details={"keys": list(keys)},
        )
        self.keys = list(keys)


class UsageError(BackupError):
    """Conflicting or missing options."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="USAGE_ERROR")


class NotLeaderError(BackupError):
    """Leader-only backup requested, but the agent is not the leader."""

    def __init__(self, message: str, leader: Optional[str] = None) -> None:
        super().__init__(message, code="NOT_LEADER", details={"leader": leader})
        self.leader = leader
