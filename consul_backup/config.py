"""
Configuration management for consul-backup.

Connection settings come from the same environment variables the Consul CLI
reads (CONSUL_HTTP_ADDR, CONSUL_HTTP_TOKEN, ...); command-line flags override
them. Every engine operation receives its configuration explicitly - nothing
is read from module-level state.

Invariants:
    - All settings have sensible defaults for a local agent
    - The ACL token is never logged or exposed in error messages
    - BackupConfig.validate() runs before any request reaches Consul

How to change safely:
    - Add new settings with defaults that keep existing invocations working
    - Keep environment variable names aligned with the Consul CLI
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

from .errors import UsageError

logger = logging.getLogger(__name__)


class Mode(Enum):
    """What a run does with the snapshot file."""

    BACKUP = "backup"
    RESTORE = "restore"


def _parse_timeout(raw: str) -> float:
    try:
        timeout = float(raw)
    except ValueError:
        raise UsageError(
            f"CONSUL_TIMEOUT_SECONDS must be a number of seconds, got {raw!r}"
        ) from None
    if not timeout > 0:
        raise UsageError(f"CONSUL_TIMEOUT_SECONDS must be positive, got {raw!r}")
    return timeout


@dataclass(frozen=True)
class ConsulConfig:
    """Consul HTTP API connection configuration.

    Attributes:
        address: host:port of the agent HTTP endpoint
        token: ACL token sent with every request (empty for none)
        scheme: http or https
        verify_tls: Whether to verify the server certificate
        timeout_seconds: Per-request timeout
    """

    address: str = "127.0.0.1:8500"
    token: str = ""
    scheme: str = "http"
    verify_tls: bool = True
    timeout_seconds: float = 10.0

    @property
    def base_url(self) -> str:
        """Full base URL of the agent HTTP API."""
        return f"{self.scheme}://{self.address}"

    @classmethod
    def from_env(cls) -> ConsulConfig:
        """Load configuration from environment variables.

        Raises:
            UsageError: If CONSUL_TIMEOUT_SECONDS is not a positive number
        """
        address = os.getenv("CONSUL_HTTP_ADDR", "127.0.0.1:8500")
        scheme = "https" if os.getenv("CONSUL_HTTP_SSL", "false").lower() == "true" else "http"

        # CONSUL_HTTP_ADDR may carry its own scheme
        for prefix in ("http://", "https://"):
            if address.startswith(prefix):
                scheme = prefix[:-3]
                address = address[len(prefix):]

        return cls(
            address=address.rstrip("/"),
            token=os.getenv("CONSUL_HTTP_TOKEN", ""),
            scheme=scheme,
            verify_tls=os.getenv("CONSUL_HTTP_SSL_VERIFY", "true").lower() == "true",
            timeout_seconds=_parse_timeout(os.getenv("CONSUL_TIMEOUT_SECONDS", "10")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@dataclass(frozen=True)
class BackupConfig:
    """Complete configuration of one backup or restore run.

    Attributes:
        filename: Snapshot file to write (backup) or read (restore)
        mode: Backup or restore
        include_prefixes: Keep only keys starting with one of these
        exclude_prefixes: Drop keys starting with one of these
        acl_backup: Also dump ACL tokens (backup mode only)
        acl_backup_file: Destination of the ACL report
        leader_only: Refuse to back up unless the agent is the leader
        assume_yes: Skip the interactive restore confirmation
        skip_unsafe_keys: Omit unsafe keys instead of failing
        skip_malformed: Continue a restore past undecodable lines
        consul: Connection configuration
        observability: Logging configuration
    """

    filename: str
    mode: Mode = Mode.BACKUP
    include_prefixes: tuple[str, ...] = ()
    exclude_prefixes: tuple[str, ...] = ()
    acl_backup: bool = False
    acl_backup_file: str = "acl.bkp"
    leader_only: bool = False
    assume_yes: bool = False
    skip_unsafe_keys: bool = False
    skip_malformed: bool = False
    consul: ConsulConfig = field(default_factory=ConsulConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def validate(self) -> None:
        """Validate option consistency.

        Raises:
            UsageError: If options conflict or are missing.
        """
        if not self.filename:
            raise UsageError("A snapshot filename is required")

        if self.mode == Mode.RESTORE:
            if self.include_prefixes or self.exclude_prefixes:
                raise UsageError(
                    "--exclude-prefix, -x and --include-prefix, -n can be used only for backups"
                )
        elif self.include_prefixes and self.exclude_prefixes:
            raise UsageError("--exclude-prefix and --include-prefix cannot be used together")

        if self.acl_backup and not self.acl_backup_file:
            raise UsageError("--aclbackupfile must not be empty when --aclbackup is set")

        if self.mode == Mode.RESTORE and self.acl_backup:
            logger.warning("ACL restore is not supported; --aclbackup is ignored in restore mode")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Backup configuration loaded",
            extra={
                "mode": self.mode.value,
                "snapshot_file": self.filename,
                "consul_url": self.consul.base_url,
                "token_set": bool(self.consul.token),
                "include_prefixes": list(self.include_prefixes),
                "exclude_prefixes": list(self.exclude_prefixes),
                "acl_backup": self.acl_backup,
                "leader_only": self.leader_only,
            },
        )
