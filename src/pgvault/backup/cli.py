"""Command-line interface for pgvault.

Usage:
    pgvault --config pgvault.yaml list --type manual
    pgvault --config pgvault.yaml create --format custom --schema public
    pgvault --config pgvault.yaml restore manual-backup-...sql --backup-first
    pgvault --config pgvault.yaml clean --keep 7
    pgvault --config pgvault.yaml schedule --interval-hours 24
"""

import argparse
import sys
import threading
from datetime import date
from pathlib import Path

from pgvault.backup.catalog import ArtifactFilter
from pgvault.backup.config_manager import ConfigManager
from pgvault.backup.creator import DumpOptions
from pgvault.backup.exceptions import BackupError
from pgvault.backup.manager import BackupManager
from pgvault.backup.naming import ArtifactFormat, ArtifactType
from pgvault.backup.restore_engine import RestoreOptions
from pgvault.exceptions import LockAlreadyTakenError
from pgvault.logging import LoggingConfig, configure_logging
from pgvault.utils import format_bytes

DUMP_FORMAT_CHOICES = ["plain", "custom", "directory", "tar"]


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        description="Create, restore and manage PostgreSQL backups.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to the YAML configuration file.",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (overrides the configuration file)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List backups, newest first")
    list_parser.add_argument("--type", choices=[t.value for t in ArtifactType])
    list_parser.add_argument("--format", choices=[f.value for f in ArtifactFormat])
    list_parser.add_argument("--from", dest="from_date", type=date.fromisoformat)
    list_parser.add_argument("--to", dest="to_date", type=date.fromisoformat)

    create_parser = subparsers.add_parser("create", help="Create a manual backup")
    create_parser.add_argument("--format", choices=DUMP_FORMAT_CHOICES, default=None)
    create_parser.add_argument("--prefix", default=None, help="Custom name prefix")
    scope = create_parser.add_mutually_exclusive_group()
    scope.add_argument("--schema-only", action="store_true")
    scope.add_argument("--data-only", action="store_true")
    create_parser.add_argument("--schema", action="append", default=[])
    create_parser.add_argument("--table", action="append", default=[])

    restore_parser = subparsers.add_parser(
        "restore",
        help="Restore the database (terminates other connections)",
    )
    restore_parser.add_argument("name")
    restore_parser.add_argument("--backup-first", action="store_true")
    restore_parser.add_argument("--schema-only", action="store_true")
    restore_parser.add_argument("--data-only", action="store_true")
    restore_parser.add_argument("--schema", action="append", default=[])
    restore_parser.add_argument("--table", action="append", default=[])
    restore_parser.add_argument("--yes", action="store_true", help="Skip confirmation")

    delete_parser = subparsers.add_parser("delete", help="Delete a backup")
    delete_parser.add_argument("name")

    clean_parser = subparsers.add_parser("clean", help="Keep only the newest backups")
    clean_parser.add_argument("--keep", type=int, default=5)

    import_parser = subparsers.add_parser("import", help="Import a backup file")
    import_parser.add_argument("file", type=Path)
    import_parser.add_argument("--name", default=None)
    import_parser.add_argument(
        "--prefix",
        default=ArtifactType.IMPORTED.value,
        choices=[t.value for t in ArtifactType if t is not ArtifactType.UNKNOWN],
    )

    metadata_parser = subparsers.add_parser("metadata", help="Show backup metadata")
    metadata_parser.add_argument("name")

    schedule_parser = subparsers.add_parser(
        "schedule",
        help="Run automatic backups in the foreground",
    )
    schedule_parser.add_argument("--interval-hours", type=float, default=None)
    schedule_parser.add_argument("--keep", type=int, default=None)

    return parser


def _confirm_restore(args: argparse.Namespace) -> bool:
    print(f"WARNING: restoring from {args.name} terminates all other connections")
    print("to the database and replaces its contents.")
    response = input("Continue? [y/N] ")
    return response.lower() in ("y", "yes")


def run_command(manager: BackupManager, args: argparse.Namespace) -> int:  # noqa: C901, PLR0911
    """Execute the parsed subcommand and return the exit code."""
    if args.command == "list":
        artifact_filter = ArtifactFilter(
            type=ArtifactType(args.type) if args.type else None,
            format=ArtifactFormat(args.format) if args.format else None,
            from_date=args.from_date,
            to_date=args.to_date,
        )
        for artifact in manager.list_backups(artifact_filter):
            print(
                f"{artifact.name}\t{artifact.type.value}\t{artifact.format.value}\t"
                f"{format_bytes(artifact.size)}\t{artifact.modified_at:%Y-%m-%d %H:%M:%S}",
            )
        return 0

    if args.command == "create":
        options = DumpOptions(
            only_schema=args.schema_only,
            only_data=args.data_only,
            schemas=args.schema,
            tables=args.table,
            format=ArtifactFormat(args.format or manager.config.default_format.value),
        )
        name = manager.create_backup(manual=True, custom_prefix=args.prefix, options=options)
        print(f"Backup created successfully: {name}")
        return 0

    if args.command == "restore":
        if not args.yes and not _confirm_restore(args):
            print("Cancelled.")
            return 0
        options = RestoreOptions(
            create_backup_first=args.backup_first,
            only_schema=args.schema_only,
            only_data=args.data_only,
            schemas=args.schema,
            tables=args.table,
        )
        manager.restore_backup(args.name, options)
        print(f"Database restored successfully from backup: {args.name}")
        return 0

    if args.command == "delete":
        manager.delete_backup(args.name)
        print(f"Backup deleted successfully: {args.name}")
        return 0

    if args.command == "clean":
        deleted = manager.clean_old_backups(args.keep)
        print(f"Cleaned up old backups, deleted {len(deleted)} files")
        for name in deleted:
            print(f"  {name}")
        return 0

    if args.command == "import":
        name = manager.import_backup(args.file, args.name, args.prefix)
        print(f"Backup imported successfully: {name}")
        return 0

    if args.command == "metadata":
        metadata = manager.get_metadata(args.name)
        print(f"Name:     {metadata.name}")
        print(f"Type:     {metadata.type.value}")
        print(f"Format:   {metadata.format.value}")
        print(f"Size:     {format_bytes(metadata.size)}")
        print(f"Created:  {metadata.created:%Y-%m-%d %H:%M:%S}")
        print(f"Modified: {metadata.modified:%Y-%m-%d %H:%M:%S}")
        if metadata.comment:
            print(f"Comment:  {metadata.comment}")
        if metadata.schemas:
            print(f"Schemas:  {', '.join(metadata.schemas)}")
        if metadata.tables:
            print(f"Tables:   {', '.join(metadata.tables)}")
        return 0

    if args.command == "schedule":
        if args.keep is not None:
            manager.scheduler.keep_count = args.keep
        manager.start_schedule(args.interval_hours)
        print(manager.schedule_status().next_check_description)
        try:
            threading.Event().wait()
        except KeyboardInterrupt:
            manager.stop_schedule()
        return 0

    return 1


def main(argv: list[str] | None = None) -> None:
    """Execute the main entry point for the pgvault command."""
    args = build_parser().parse_args(argv)

    try:
        config = ConfigManager.load_config(args.config)
    except BackupError as e:
        print(f"Failed to load configuration file {args.config}: {e}", file=sys.stderr)
        sys.exit(1)

    logger = configure_logging(
        LoggingConfig(log_name="pgvault_cli", log_level=args.log_level or config.log_level),
    )

    try:
        manager = BackupManager(config, logger=logger)
        sys.exit(run_command(manager, args))
    except LockAlreadyTakenError:
        logger.exception("Lock error")
        sys.exit(1)
    except BackupError as e:
        logger.critical(f"{args.command} failed: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
