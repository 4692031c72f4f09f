"""
consul-backup Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Backup and restore cycles (in-memory store, mocked Consul HTTP API)
"""
