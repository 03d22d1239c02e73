"""Revision-chain migration engine.

Provides a linear migration framework with:
- Units linked by previous/current revision ids
- Chain, head, pending and conflict resolution
- Upgrade/downgrade with a persisted head and append-only history
- Migration file generation and a CLI

Usage:
    from revchain import MigrationConfig
    from revchain.migrations import MigrationRunner, InMemoryStateStore

    config = MigrationConfig(schema_name="inventory", migration_artifact_path=Path("migrations"))
    runner = MigrationRunner(config)

    # Apply all pending
    result = await runner.upgrade()

    # Revert the last migration
    result = await runner.downgrade(count=1)

CLI Usage:
    python -m revchain.migrations --schema inventory upgrade
    python -m revchain.migrations --schema inventory downgrade --steps 1
    python -m revchain.migrations --schema inventory status
    python -m revchain.migrations --schema inventory create -m "add sku index"
"""

from .base import (
    AmbiguousBaseError,
    BaseMigration,
    ConflictError,
    DiscoveryError,
    HeadRecord,
    HistoryEntry,
    MigrationContext,
    MigrationError,
    MigrationPhase,
    Operation,
    StoreError,
    UnitExecutionError,
)
from .registry import (
    MigrationRegistry,
    discover_migrations,
    is_migration_unit,
    load_migration_file,
)
from .resolver import RevisionInfo, RevisionResolver
from .runner import (
    MigrationResult,
    MigrationRunner,
    MigrationStatusReport,
    downgrade,
    get_migration_status,
    get_pending_migrations,
    upgrade,
)
from .store import InMemoryStateStore, StateStore, SurrealStateStore
from .template import create_migration_file, new_revision_id

__all__ = [
    # Base types and errors
    "BaseMigration",
    "MigrationContext",
    "HeadRecord",
    "HistoryEntry",
    "Operation",
    "MigrationPhase",
    "MigrationError",
    "DiscoveryError",
    "ConflictError",
    "AmbiguousBaseError",
    "StoreError",
    "UnitExecutionError",
    # Registry
    "MigrationRegistry",
    "discover_migrations",
    "is_migration_unit",
    "load_migration_file",
    # Resolver
    "RevisionResolver",
    "RevisionInfo",
    # Store
    "StateStore",
    "InMemoryStateStore",
    "SurrealStateStore",
    # Runner
    "MigrationRunner",
    "MigrationResult",
    "MigrationStatusReport",
    "upgrade",
    "downgrade",
    "get_pending_migrations",
    "get_migration_status",
    # Generation
    "create_migration_file",
    "new_revision_id",
]
