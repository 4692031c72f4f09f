"""
Command-line entry point for consul-backup.

Usage:
    consul-backup [-i IP] [--http-port PORT] [-l] [-t TOKEN] [-a] [-b ACLFILE]
                  [-n INPREFIX]... [-x EXPREFIX]... [-r] [-y] <filename>

Exit codes:
    0  success
    1  usage error or operational failure

Invariants:
    - Conflicting options are rejected before Consul is contacted
    - Restore asks for confirmation unless --yes is given
    - This is the only place that turns errors into an exit code

How to change safely:
    - Keep the short flags stable; operators script against them
    - Add new flags with defaults that preserve current behaviour
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import List, NoReturn, Optional

import json_log_formatter

from .._version import __version__
from ..config import BackupConfig, ConsulConfig, Mode, ObservabilityConfig
from ..errors import UsageError
from ..store import KvStore
from .backup import BackupResult, BackupTool

logger = logging.getLogger(__name__)

DEFAULT_HTTP_PORT = 8500
CONFIRM_PROMPT = "Warning! This will overwrite existing kv. Press [enter] to continue; CTL-C to exit"


class _Parser(argparse.ArgumentParser):
    """ArgumentParser that raises UsageError instead of exiting with status 2."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        raise UsageError(message)


def setup_logging(config: ObservabilityConfig, verbose: bool = False) -> None:
    """Configure logging based on configuration.

    Args:
        config: Observability configuration
        verbose: Force DEBUG level
    """
    level = logging.DEBUG if verbose else getattr(logging, config.log_level.upper(), logging.INFO)

    if config.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = _Parser(
        prog="consul-backup",
        description="Consul KV and ACL Backup with KV Restore tool.",
    )
    parser.add_argument("filename", help="Snapshot file to write (backup) or read (restore)")
    parser.add_argument(
        "-i", "--address", help="The HTTP endpoint of Consul (default: 127.0.0.1)"
    )
    parser.add_argument(
        "--http-port", type=int, help=f"HTTP endpoint port (default: {DEFAULT_HTTP_PORT})"
    )
    parser.add_argument(
        "-t", "--token", help="An ACL Token with proper permissions in Consul"
    )
    parser.add_argument(
        "-l", "--leader-only", action="store_true", help="Create backup only on consul leader"
    )
    parser.add_argument(
        "-a",
        "--aclbackup",
        action="store_true",
        help="Backup ACLs, does nothing in restore mode. ACL restore not available at this time.",
    )
    parser.add_argument(
        "-b", "--aclbackupfile", default="acl.bkp", help="ACL Backup Filename (default: acl.bkp)"
    )
    parser.add_argument(
        "-x",
        "--exclude-prefix",
        action="append",
        default=[],
        metavar="EXPREFIX",
        help="Repeatable option for keys starting with prefix to exclude from the backup",
    )
    parser.add_argument(
        "-n",
        "--include-prefix",
        action="append",
        default=[],
        metavar="INPREFIX",
        help="Repeatable option for keys starting with prefix to include in the backup",
    )
    parser.add_argument("-r", "--restore", action="store_true", help="Activate restore mode")
    parser.add_argument(
        "-y", "--yes", action="store_true", help="Do not ask for confirmation before a restore"
    )
    parser.add_argument(
        "--skip-unsafe-keys",
        action="store_true",
        help="Leave out keys containing ':' or a '.'/'..' segment instead of failing",
    )
    parser.add_argument(
        "--skip-malformed",
        action="store_true",
        help="Continue a restore past undecodable lines and report them",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--version", action="version", version=f"consul-backup {__version__}")
    return parser


def _resolve_consul(args: argparse.Namespace, env: ConsulConfig) -> ConsulConfig:
    """Merge command-line connection flags over the environment."""
    host, _, port = env.address.rpartition(":")
    if not host:
        host, port = port, str(DEFAULT_HTTP_PORT)

    if args.address is not None:
        host = args.address
        port = str(DEFAULT_HTTP_PORT)
    if args.http_port is not None:
        port = str(args.http_port)

    return ConsulConfig(
        address=f"{host}:{port}",
        token=args.token if args.token is not None else env.token,
        scheme=env.scheme,
        verify_tls=env.verify_tls,
        timeout_seconds=env.timeout_seconds,
    )


def config_from_args(argv: Optional[List[str]] = None) -> tuple[BackupConfig, bool]:
    """Parse arguments into a validated BackupConfig.

    Returns:
        Tuple of (config, verbose)

    Raises:
        UsageError: If arguments are missing or conflicting
    """
    args = build_parser().parse_args(argv)

    config = BackupConfig(
        filename=args.filename,
        mode=Mode.RESTORE if args.restore else Mode.BACKUP,
        include_prefixes=tuple(args.include_prefix),
        exclude_prefixes=tuple(args.exclude_prefix),
        acl_backup=args.aclbackup,
        acl_backup_file=args.aclbackupfile,
        leader_only=args.leader_only,
        assume_yes=args.yes,
        skip_unsafe_keys=args.skip_unsafe_keys,
        skip_malformed=args.skip_malformed,
        consul=_resolve_consul(args, ConsulConfig.from_env()),
        observability=ObservabilityConfig.from_env(),
    )
    config.validate()
    return config, args.verbose


def confirm_restore() -> bool:
    """Ask the operator to confirm an overwriting restore."""
    try:
        input(CONFIRM_PROMPT)
    except (EOFError, KeyboardInterrupt):
        print()
        return False
    return True


def print_result(result: BackupResult) -> None:
    """Print a human-readable summary of a run."""
    if not result.success:
        print(f"{result.mode.value.capitalize()} failed: {result.error}")
        if result.mode == Mode.RESTORE:
            print("  Restore is not transactional; keys written before the failure remain.")
        return

    if result.write_report:
        report = result.write_report
        print("Backup completed successfully")
        print(f"  File: {report.path}")
        print(f"  Keys written: {report.written} of {report.total_entries}")
        print(f"  Filtered: {report.filtered}")
        if report.skipped_keys:
            print(f"  Skipped (unsafe keys): {len(report.skipped_keys)}")
        print(f"  Checksum: {report.checksum}")
        if result.acl_tokens is not None:
            print(f"  ACL tokens: {result.acl_tokens}")
    if result.restore_report:
        report = result.restore_report
        print("Restore completed successfully")
        print(f"  File: {report.path}")
        print(f"  Keys written: {report.keys_written}")
        if report.malformed_lines:
            print(f"  Malformed lines skipped: {report.malformed_lines}")
    print(f"  Duration: {result.duration_ms}ms")


def run(argv: Optional[List[str]] = None, store: Optional[KvStore] = None) -> int:
    """Run the CLI and return the process exit code.

    Args:
        argv: Arguments (defaults to sys.argv[1:])
        store: Store to use instead of a ConsulClient
    """
    try:
        config, verbose = config_from_args(argv)
    except UsageError as e:
        print(f"\n{e.message}\n", file=sys.stderr)
        return 1

    setup_logging(config.observability, verbose=verbose)
    config.log_config()

    if config.mode == Mode.RESTORE:
        print("Restore mode:")
        if not config.assume_yes and not confirm_restore():
            print("Restore aborted")
            return 1
    else:
        print("Backup mode:")

    tool = BackupTool(config, store=store)
    result = asyncio.run(tool.run())

    print_result(result)
    return 0 if result.success else 1


def main() -> None:
    """CLI entry point."""
    sys.exit(run())


if __name__ == "__main__":
    main()
