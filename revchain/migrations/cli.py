"""CLI for revision-chain migrations.

Usage:
    python -m revchain.migrations --schema inventory upgrade
    python -m revchain.migrations --schema inventory upgrade --dry-run
    python -m revchain.migrations --schema inventory downgrade --steps 1
    python -m revchain.migrations --schema inventory status
    python -m revchain.migrations --schema inventory history --limit 20
    python -m revchain.migrations --schema inventory create -m "add sku index"
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from textwrap import dedent
from typing import Optional

from ..config import MigrationConfig
from ..db.config import DatabaseRequiredError, is_surrealdb_enabled, require_db
from ..db.connection import close_all_pools
from .base import MigrationError, StoreError, UnitExecutionError
from .registry import discover_migrations
from .resolver import RevisionResolver
from .runner import MigrationRunner
from .template import create_migration_file

logger = logging.getLogger(__name__)


def non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {value}")
    return number


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_config(args: argparse.Namespace) -> MigrationConfig:
    """Environment defaults overridden by command line options."""
    config = MigrationConfig()
    if args.schema:
        config.schema_name = args.schema
    if args.source_dir:
        config.migration_source_path = Path(args.source_dir)
    if args.artifact_dir:
        config.migration_artifact_path = Path(args.artifact_dir)
    if args.database:
        config.database = args.database
    if args.allow_conflicts:
        config.fail_on_conflict = False
    if args.verbose:
        config.verbose = True
    return config


def _describe_failure(error: MigrationError) -> str:
    if isinstance(error, (UnitExecutionError, StoreError)) and error.phase is not None:
        revision = error.revision or "-"
        return f"Failed at revision {revision} during {error.phase.value}: {error}"
    return f"Error: {error}"


async def cmd_upgrade(args: argparse.Namespace, config: MigrationConfig) -> int:
    """Apply pending migrations."""
    runner = MigrationRunner(config)

    pending = await runner.get_pending()
    if not pending:
        print(f"No pending migrations for {config.schema_name}")
        return 0

    print(f"Pending migrations: {len(pending)}")
    for revision in pending:
        print(f"  - {revision}")
    print()

    result = await runner.upgrade(target=args.target, dry_run=args.dry_run)
    prefix = "[DRY-RUN] Would apply" if result.dry_run else "Applied"
    print(f"{prefix} {len(result.revisions)} migration(s):")
    for revision in result.revisions:
        print(f"  + {revision}")
    print(f"Head: {result.head}")
    return 0


async def cmd_downgrade(args: argparse.Namespace, config: MigrationConfig) -> int:
    """Revert applied migrations."""
    runner = MigrationRunner(config)
    result = await runner.downgrade(count=args.steps, dry_run=args.dry_run)

    if not result.revisions:
        print("No migrations to downgrade")
        return 0

    prefix = "[DRY-RUN] Would revert" if result.dry_run else "Reverted"
    print(f"{prefix} {len(result.revisions)} migration(s):")
    for revision in result.revisions:
        print(f"  - {revision}")
    print(f"Head: {result.head or '<none>'}")
    return 0


async def cmd_status(args: argparse.Namespace, config: MigrationConfig) -> int:
    """Show applied and resolved heads."""
    runner = MigrationRunner(config)
    report = await runner.get_status()

    print(f"Migration status for schema: {report.schema_name}")
    print("-" * 60)
    print(f"Applied head:  {report.applied_head or '<none>'}")
    print(f"Resolved head: {report.resolved_head or '<none>'}")
    print(f"Pending:       {len(report.pending)}")
    for revision in report.pending:
        print(f"  [ ] {revision}")
    if report.conflicts:
        print(f"Conflicts at:  {', '.join(sorted(report.conflicts))}")
    print("-" * 60)
    return 0 if not report.conflicts else 1


async def cmd_history(args: argparse.Namespace, config: MigrationConfig) -> int:
    """Show the operation history of the schema."""
    runner = MigrationRunner(config)
    entries = await runner.get_history(limit=args.limit)

    if not entries:
        print("No history recorded")
        return 0

    for entry in entries:
        print(
            f"{entry.operation_id:>6}  {entry.timestamp.strftime('%Y-%m-%d %H:%M:%S')}  "
            f"{entry.operation.value:<4}  {entry.migration_name}"
        )
    return 0


async def cmd_pending(args: argparse.Namespace, config: MigrationConfig) -> int:
    """List pending revisions."""
    pending = await MigrationRunner(config).get_pending()
    for revision in pending:
        print(revision)
    return 0


def cmd_tree(args: argparse.Namespace, config: MigrationConfig) -> int:
    """Print the revision chain, base first."""
    registry = discover_migrations(config.artifact_dir)
    resolver = RevisionResolver(registry, fail_on_conflict=config.fail_on_conflict)
    tree = resolver.get_revision_tree(config.schema_name)

    if not tree:
        print(f"No migrations found for {config.schema_name}")
        return 0

    for info in tree:
        line = f"{info.previous_revision or '<base>'} -> {info.revision}"
        if info.message:
            line += f"  {info.message}"
        print(line)
    return 0


def cmd_conflicts(args: argparse.Namespace, config: MigrationConfig) -> int:
    """Report revisions with more than one successor."""
    registry = discover_migrations(config.artifact_dir)
    conflicts = RevisionResolver(registry).detect_conflicts(config.schema_name)

    if not conflicts:
        print("No conflicts detected")
        return 0

    for revision in sorted(conflicts):
        successors = [u.revision for u in registry.successors_of(revision, config.schema_name)]
        print(f"{revision} -> {', '.join(successors)}")
    return 1


def cmd_create(args: argparse.Namespace, config: MigrationConfig) -> int:
    """Create a new migration file."""
    filepath = create_migration_file(config, message=args.message)
    print(f"Created migration: {filepath}")
    print()
    print("Edit the file to add your migration logic.")
    return 0


ASYNC_COMMANDS = {
    "upgrade": cmd_upgrade,
    "downgrade": cmd_downgrade,
    "status": cmd_status,
    "history": cmd_history,
    "pending": cmd_pending,
}

SYNC_COMMANDS = {
    "tree": cmd_tree,
    "conflicts": cmd_conflicts,
    "create": cmd_create,
}


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="revchain",
        description="Linear revision-chain migrations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=dedent("""
            Examples:
              # Apply all pending migrations
              revchain --schema inventory upgrade

              # Preview without executing
              revchain --schema inventory upgrade --dry-run

              # Revert the last 2 migrations
              revchain --schema inventory downgrade --steps 2

              # Create a migration on top of the current head
              revchain --schema inventory create -m "add sku index"
        """),
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("--schema", "-s", help="Schema name (default: $REVCHAIN_SCHEMA)")
    parser.add_argument("--source-dir", help="Directory new migration files are written to")
    parser.add_argument("--artifact-dir", help="Directory migration modules are loaded from")
    parser.add_argument("--database", help="SurrealDB database holding migration state")
    parser.add_argument(
        "--allow-conflicts",
        action="store_true",
        help="Follow the first successor instead of failing on conflicts",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    upgrade_parser = subparsers.add_parser("upgrade", help="Apply pending migrations")
    upgrade_parser.add_argument("--target", help="Stop after this revision")
    upgrade_parser.add_argument(
        "--dry-run", action="store_true", help="Preview changes without applying"
    )

    downgrade_parser = subparsers.add_parser("downgrade", help="Revert applied migrations")
    downgrade_parser.add_argument(
        "--steps",
        type=non_negative_int,
        default=1,
        help="Number of migrations to revert (default: 1)",
    )
    downgrade_parser.add_argument(
        "--dry-run", action="store_true", help="Preview changes without applying"
    )

    subparsers.add_parser("status", help="Show applied and resolved heads")

    history_parser = subparsers.add_parser("history", help="Show operation history")
    history_parser.add_argument("--limit", type=int, help="Show only the last N entries")

    subparsers.add_parser("pending", help="List pending revisions")
    subparsers.add_parser("tree", help="Print the revision chain")
    subparsers.add_parser("conflicts", help="Report conflicting revisions")

    create_parser_cmd = subparsers.add_parser("create", help="Create a new migration file")
    create_parser_cmd.add_argument(
        "--message", "-m", default="migration", help="Summary of the migration"
    )

    return parser


async def async_main(
    args: argparse.Namespace, config: Optional[MigrationConfig] = None
) -> int:
    """Async main entry point."""
    if config is None:
        config = build_config(args)
    errors = config.validate()
    if errors:
        for error in errors:
            print(f"Error: {error}")
        return 1

    try:
        if args.command in SYNC_COMMANDS:
            return SYNC_COMMANDS[args.command](args, config)

        if not is_surrealdb_enabled():
            print("Error: SurrealDB is disabled (SURREAL_DISABLED=true)")
            return 1
        require_db()

        try:
            return await ASYNC_COMMANDS[args.command](args, config)
        finally:
            await close_all_pools()

    except DatabaseRequiredError as e:
        print(f"Error: {e}")
        return 1
    except MigrationError as e:
        print(_describe_failure(e))
        return 1


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    config = build_config(args)
    setup_logging(config.verbose)

    exit_code = asyncio.run(async_main(args, config))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
