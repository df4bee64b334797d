"""CLI entry point for gemserver-sync.

Usage:
    python -m gemserver_sync sync [--sync-dir PATH] [--store gcs|local] [--bucket NAME]
    python -m gemserver_sync restore [...]
    python -m gemserver_sync status [--json] [...]
    python -m gemserver_sync watch --interval SECONDS [--iterations N] [...]

Commands:
    sync      Run one upload-then-download pass
    restore   Download everything missing locally (run before starting the server)
    status    Show how the local tree and the bucket differ
    watch     Schedule a pass every INTERVAL seconds until interrupted
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from gemserver_sync import __version__, SyncConfig, SyncStats, create_storage_sync
from gemserver_sync.utils.logging import configure_root_logger

logger = logging.getLogger(__name__)


def setup_logging(args: argparse.Namespace) -> None:
    """Configure logging for CLI output."""
    configure_root_logger(
        level=logging.DEBUG if args.verbose else logging.INFO,
        json_output=args.json_logs,
        log_file=Path(args.log_file) if args.log_file else None,
    )


def build_config(args: argparse.Namespace) -> SyncConfig:
    """Build a SyncConfig from the environment, overridden by CLI flags."""
    return SyncConfig.from_env(
        sync_dir=args.sync_dir,
        store_type=args.store,
        bucket_name=args.bucket,
        project_id=args.project,
        local_store_dir=args.local_store_dir,
        cache_marker=args.cache_marker,
    )


def print_stats(title: str, stats: SyncStats) -> None:
    print(f"{title}:")
    print(f"  Uploaded: {stats.files_uploaded} ({stats.bytes_uploaded:,} bytes)")
    print(f"  Downloaded: {stats.files_downloaded} ({stats.bytes_downloaded:,} bytes)")
    print(f"  Unchanged: {stats.files_unchanged}")
    print(f"  Failed: {stats.files_failed}")
    print(f"  Duration: {stats.duration_ms:.1f} ms")
    for error in stats.errors:
        print(f"  Error: {error}")


def cmd_sync(args: argparse.Namespace) -> int:
    """Handle the 'sync' command - run one full pass.

    Args:
        args: Parsed CLI arguments

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    try:
        with create_storage_sync(build_config(args)) as sync:
            stats = sync.sync()
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print_stats("Sync complete", stats)
    return 0 if stats.success else 1


def cmd_restore(args: argparse.Namespace) -> int:
    """Handle the 'restore' command - download-only pass."""
    try:
        with create_storage_sync(build_config(args)) as sync:
            stats = sync.restore()
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print_stats("Restore complete", stats)
    return 0 if stats.success else 1


def cmd_status(args: argparse.Namespace) -> int:
    """Handle the 'status' command - compare the local tree and the bucket.

    Args:
        args: Parsed CLI arguments

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    try:
        with create_storage_sync(build_config(args)) as sync:
            status = sync.get_sync_status()
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(status, indent=2, default=str))
        return 0

    print(f"Sync dir: {status['sync_dir']}")
    print(f"Store: {status['store']}")
    print(f"In sync: {status['in_sync']}")
    print()
    for state, count in status["counts"].items():
        print(f"  {state}: {count}")
        if state != "matching":
            for path in status["paths"][state]:
                print(f"    {path}")
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    """Handle the 'watch' command - schedule passes on a fixed interval."""
    if args.interval <= 0:
        print("Error: --interval must be positive", file=sys.stderr)
        return 1

    try:
        sync = create_storage_sync(build_config(args))
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    logger.info(f"Scheduling a sync pass every {args.interval}s")
    count = 0
    try:
        while args.iterations is None or count < args.iterations:
            sync.run()
            count += 1
            if args.iterations is None or count < args.iterations:
                time.sleep(args.interval)
    except KeyboardInterrupt:
        logger.info("Interrupted, waiting for running passes")
    finally:
        sync.shutdown(wait=True)

    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="gemserver-sync",
        description="Keep a private gem server's data directory in sync with cloud storage",
    )
    parser.add_argument(
        "--version", action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable verbose output"
    )
    parser.add_argument("--json-logs", action="store_true", help="Log as JSON lines")
    parser.add_argument("--log-file", help="Also write logs to this file")

    # Options shared by every command; unset values fall back to the environment
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--sync-dir", help="Local data directory (default: from APP_ENV)")
    common.add_argument("--store", choices=["gcs", "local"], help="Object store backend")
    common.add_argument("--bucket", help="Bucket name (default: project id)")
    common.add_argument("--project", help="Google Cloud project id")
    common.add_argument("--local-store-dir", help="Root directory of the local store")
    common.add_argument("--cache-marker", help="Never upload paths containing this")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("sync", parents=[common], help="Run one full sync pass")
    subparsers.add_parser("restore", parents=[common], help="Download-only pass")

    status_parser = subparsers.add_parser("status", parents=[common], help="Show sync status")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")

    watch_parser = subparsers.add_parser("watch", parents=[common], help="Sync periodically")
    watch_parser.add_argument(
        "--interval", type=float, default=60.0,
        help="Seconds between passes (default: 60)"
    )
    watch_parser.add_argument(
        "--iterations", type=int, default=None,
        help="Stop after this many passes (default: run until interrupted)"
    )

    return parser


def main(argv=None) -> int:
    """Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    setup_logging(args)

    commands = {
        "sync": cmd_sync,
        "restore": cmd_restore,
        "status": cmd_status,
        "watch": cmd_watch,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
