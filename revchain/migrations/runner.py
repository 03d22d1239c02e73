"""Apply engine for upgrading and downgrading a schema's revision chain.

Provides:
- Upgrade through every pending revision (optionally up to a target)
- Downgrade of the N most recently applied revisions
- Status, pending and history reporting
- Dry-run support

Pending revisions are always recomputed from the persisted head, so a run
that stopped part-way resumes by invoking it again. A failing unit stops
the run immediately: history rows written for earlier units stay, the head
is not moved, and nothing is compensated.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from ..config import MigrationConfig
from .base import (
    DiscoveryError,
    HistoryEntry,
    MigrationContext,
    MigrationError,
    MigrationPhase,
    Operation,
    StoreError,
    UnitExecutionError,
)
from .registry import MigrationRegistry, discover_migrations
from .resolver import RevisionResolver
from .store import StateStore, SurrealStateStore

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    """Outcome of an upgrade or downgrade.

    ``revisions`` lists the revisions run, in execution order: base-first for
    upgrades, most-recent-first for downgrades.
    """

    success: bool
    head: Optional[str]
    revisions: list[str] = field(default_factory=list)
    dry_run: bool = False


@dataclass
class MigrationStatusReport:
    """Snapshot of a schema's applied and resolved state."""

    schema_name: str
    applied_head: Optional[str]
    resolved_head: Optional[str]
    pending: list[str]
    conflicts: set[str]

    @property
    def up_to_date(self) -> bool:
        return not self.pending


def _call_step(step: Callable[..., Any], ctx: MigrationContext) -> Any:
    """Call a unit's up/down, passing the context when it accepts one."""
    try:
        accepts_ctx = bool(inspect.signature(step).parameters)
    except (TypeError, ValueError):
        accepts_ctx = True
    return step(ctx) if accepts_ctx else step()


class MigrationRunner:
    """Runner executing a schema's migration chain against a state store.

    Args:
        config: Configuration bundle naming the schema and directories
        registry: Migration units (discovered from the artifact directory
            if not provided)
        store: State store (SurrealDB store on ``config.database`` if not
            provided)
    """

    def __init__(
        self,
        config: MigrationConfig,
        registry: Optional[MigrationRegistry] = None,
        store: Optional[StateStore] = None,
    ):
        if not config.schema_name:
            raise MigrationError("A schema name is required")

        self.config = config
        self.schema_name = config.schema_name
        self.registry = registry if registry is not None else discover_migrations(config.artifact_dir)
        self.store = store if store is not None else SurrealStateStore(config.database)
        self.resolver = RevisionResolver(self.registry, fail_on_conflict=config.fail_on_conflict)

    def _context(self) -> MigrationContext:
        return MigrationContext(schema_name=self.schema_name, config=self.config)

    def _unit(self, revision: str) -> Any:
        unit = self.registry.require(revision)
        if self.schema_name not in self.registry.schema_names(revision):
            raise DiscoveryError(
                f"Revision {revision} does not belong to schema {self.schema_name}"
            )
        return unit

    async def _execute(self, unit: Any, operation: Operation, ctx: MigrationContext) -> None:
        step = unit.up if operation is Operation.UP else unit.down
        try:
            result = _call_step(step, ctx)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Failed to run {operation.value}() of {unit.revision}: {e}")
            raise UnitExecutionError(unit.revision, operation, e) from e

    async def _record(self, revision: str, operation: Operation) -> HistoryEntry:
        try:
            return await self.store.append_history(self.schema_name, revision, operation)
        except StoreError as e:
            raise StoreError(
                f"Ran {operation.value}() of {revision} but failed to record it in history: {e}",
                revision=revision,
                phase=MigrationPhase.HISTORY,
            ) from e

    async def _set_head(self, revision: Optional[str]) -> None:
        try:
            await self.store.set_head(self.schema_name, revision)
        except StoreError as e:
            raise StoreError(
                f"Recorded all steps but failed to move head of {self.schema_name} "
                f"to {revision}: {e}",
                revision=revision,
                phase=MigrationPhase.HEAD,
            ) from e

    async def get_applied_head(self) -> Optional[str]:
        """Persisted head of the schema."""
        await self.store.ensure_schema()
        return await self.store.get_head(self.schema_name)

    async def get_pending(self) -> list[str]:
        """Revisions an upgrade would apply, in order."""
        applied_head = await self.get_applied_head()
        return self.resolver.resolve_pending(self.schema_name, applied_head)

    async def get_history(self, limit: Optional[int] = None) -> list[HistoryEntry]:
        """History of the schema, oldest first."""
        await self.store.ensure_schema()
        return await self.store.get_history(self.schema_name, limit)

    async def get_status(self) -> MigrationStatusReport:
        """Applied head, resolved head, pending revisions and conflicts.

        Reporting never fails on a conflict; the first registered successor
        is followed instead.
        """
        applied_head = await self.get_applied_head()
        lenient = RevisionResolver(self.registry, fail_on_conflict=False)
        return MigrationStatusReport(
            schema_name=self.schema_name,
            applied_head=applied_head,
            resolved_head=lenient.resolve_head(self.schema_name),
            pending=lenient.resolve_pending(self.schema_name, applied_head),
            conflicts=lenient.detect_conflicts(self.schema_name),
        )

    async def upgrade(
        self,
        target: Optional[str] = None,
        dry_run: bool = False,
    ) -> MigrationResult:
        """Apply pending revisions in chain order.

        Args:
            target: Stop after this pending revision instead of the head
            dry_run: Report what would run without executing or recording

        Returns:
            Result with the new head and the applied revisions

        Raises:
            UnitExecutionError: A unit's up() failed; head left unchanged
            StoreError: Recording history or the head failed
            ConflictError: The chain is conflicting and fail_on_conflict is set
        """
        applied_head = await self.get_applied_head()
        if applied_head is not None and applied_head not in self.registry:
            logger.warning(
                f"Applied head {applied_head} of {self.schema_name} matches no known revision"
            )

        pending = self.resolver.resolve_pending(self.schema_name, applied_head)
        if target is not None:
            if target not in pending:
                raise MigrationError(
                    f"Target revision {target} is not pending for schema {self.schema_name}"
                )
            pending = pending[: pending.index(target) + 1]

        if not pending:
            logger.info(f"No pending revision found for {self.schema_name}")
            return MigrationResult(success=True, head=applied_head, revisions=[], dry_run=dry_run)

        if dry_run:
            logger.info(f"[DRY-RUN] Would apply {len(pending)} revision(s): {pending}")
            return MigrationResult(success=True, head=pending[-1], revisions=pending, dry_run=True)

        ctx = self._context()
        for revision in pending:
            unit = self._unit(revision)
            logger.info(f"Running upgrade {unit.previous_revision} -> {revision}")
            await self._execute(unit, Operation.UP, ctx)
            await self._record(revision, Operation.UP)

        new_head = pending[-1]
        await self._set_head(new_head)
        logger.info(f"All upgrades applied to {self.schema_name}, head is now {new_head}")
        return MigrationResult(success=True, head=new_head, revisions=pending)

    async def downgrade(self, count: int = 1, dry_run: bool = False) -> MigrationResult:
        """Revert the ``count`` most recently applied revisions.

        Stops early once nothing is applied; a count beyond the chain length
        is not an error.

        Args:
            count: Number of revisions to revert
            dry_run: Report what would run without executing or recording

        Returns:
            Result with the new head and the reverted revisions,
            most recent first

        Raises:
            ValueError: If count is negative
            DiscoveryError: The applied head matches no unit of the schema
            UnitExecutionError: A unit's down() failed; head left unchanged
            StoreError: Recording history or the head failed
        """
        if count < 0:
            raise ValueError(f"Downgrade count must not be negative, got {count}")

        head = await self.get_applied_head()
        reverted: list[str] = []
        ctx = self._context()

        while count > 0 and head is not None:
            unit = self._unit(head)
            if dry_run:
                logger.info(f"[DRY-RUN] Would downgrade {head} -> {unit.previous_revision}")
            else:
                logger.info(f"Running downgrade {head} -> {unit.previous_revision}")
                await self._execute(unit, Operation.DOWN, ctx)
                await self._record(head, Operation.DOWN)
            reverted.append(head)
            head = unit.previous_revision
            count -= 1

        if dry_run:
            return MigrationResult(success=True, head=head, revisions=reverted, dry_run=True)

        await self._set_head(head)
        logger.info(f"All downgrades applied to {self.schema_name}, head is now {head}")
        return MigrationResult(success=True, head=head, revisions=reverted)


# Convenience functions


async def upgrade(
    config: MigrationConfig,
    target: Optional[str] = None,
    dry_run: bool = False,
) -> MigrationResult:
    """Apply pending migrations for the configured schema."""
    return await MigrationRunner(config).upgrade(target=target, dry_run=dry_run)


async def downgrade(
    config: MigrationConfig,
    count: int = 1,
    dry_run: bool = False,
) -> MigrationResult:
    """Revert the last ``count`` migrations of the configured schema."""
    return await MigrationRunner(config).downgrade(count=count, dry_run=dry_run)


async def get_pending_migrations(config: MigrationConfig) -> list[str]:
    """Pending revisions of the configured schema."""
    return await MigrationRunner(config).get_pending()


async def get_migration_status(config: MigrationConfig) -> MigrationStatusReport:
    """Status report of the configured schema."""
    return await MigrationRunner(config).get_status()
