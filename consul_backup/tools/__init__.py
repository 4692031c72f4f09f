"""
CLI tools for consul-backup.

This module provides:
- backup: BackupTool, orchestrating export and restore runs
- cli: the consul-backup command

Invariants:
    - Tools validate options before contacting Consul
    - Only the CLI decides the process exit code
"""

from .backup import BackupResult, BackupTool

__all__ = ["BackupResult", "BackupTool"]
