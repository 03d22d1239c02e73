"""Base types for the revision-chain migration system.

Defines:
- BaseMigration: a migration unit linked to its predecessor by revision id
- MigrationContext: context passed to unit up/down methods
- HeadRecord / HistoryEntry: persisted bookkeeping records
- The error taxonomy raised by the registry, resolver, store and runner
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from ..db.connection import Connection, get_connection

if TYPE_CHECKING:
    from ..config import MigrationConfig

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Direction of a recorded migration step."""

    UP = "up"
    DOWN = "down"


class MigrationPhase(str, Enum):
    """Step of an upgrade/downgrade at which a failure occurred."""

    EXECUTE = "execute"
    HISTORY = "history"
    HEAD = "head"


class MigrationError(Exception):
    """Base exception for migration errors."""

    pass


class DiscoveryError(MigrationError):
    """A candidate could not be enumerated, loaded or is not a migration unit."""

    pass


class ConflictError(MigrationError):
    """More than one unit declares the same previous revision.

    Attributes:
        schema_name: Schema whose chain is conflicting
        conflicts: Revision id -> revisions of every competing successor
    """

    def __init__(self, schema_name: str, conflicts: dict[Optional[str], list[str]]):
        self.schema_name = schema_name
        self.conflicts = conflicts
        details = "; ".join(
            f"{rev or 'base'} -> {', '.join(successors)}"
            for rev, successors in conflicts.items()
        )
        super().__init__(f"Revision conflict in schema {schema_name!r}: {details}")


class AmbiguousBaseError(ConflictError):
    """More than one unit of a schema has no previous revision."""

    def __init__(self, schema_name: str, revisions: list[str]):
        super().__init__(schema_name, {None: revisions})


class StoreError(MigrationError):
    """A state store operation failed.

    Attributes:
        revision: Revision being recorded when the failure happened, if any
        phase: Phase of the apply engine that failed, if known
    """

    def __init__(
        self,
        message: str,
        revision: Optional[str] = None,
        phase: Optional[MigrationPhase] = None,
    ):
        super().__init__(message)
        self.revision = revision
        self.phase = phase


class UnitExecutionError(MigrationError):
    """A unit's up() or down() raised."""

    def __init__(self, revision: str, operation: Operation, cause: BaseException):
        self.revision = revision
        self.operation = operation
        self.phase = MigrationPhase.EXECUTE
        self.cause = cause
        super().__init__(f"{operation.value}() of revision {revision} failed: {cause}")


@dataclass
class HeadRecord:
    """Applied head of one schema. ``current_head`` None means nothing applied."""

    schema_name: str
    current_head: Optional[str] = None


@dataclass
class HistoryEntry:
    """One append-only history row."""

    operation_id: int
    migration_name: str
    schema_name: str
    operation: Operation
    timestamp: datetime


@dataclass
class MigrationContext:
    """Context passed to migration up/down methods.

    Units that change a SurrealDB schema use ``execute``; units that change
    something else can ignore it and use ``schema_name`` and ``config``.
    Without an explicit ``conn`` each statement borrows a pooled connection
    to the configured database.
    """

    schema_name: str
    config: Optional["MigrationConfig"] = None
    conn: Optional[Connection] = None
    _executed_statements: list[str] = field(default_factory=list)

    async def execute(self, sql: str, params: Optional[dict[str, Any]] = None) -> Any:
        """Execute a SurrealQL statement.

        Args:
            sql: SurrealQL statement
            params: Optional parameters

        Returns:
            Query result records
        """
        self._executed_statements.append(sql)
        logger.debug(f"[{self.schema_name}] Executing: {sql[:200]}")

        if self.conn is not None:
            return await self.conn.query(sql, params)

        database = self.config.database if self.config else None
        async with get_connection(database) as conn:
            return await conn.query(sql, params)

    @property
    def executed_statements(self) -> list[str]:
        """Get list of executed statements."""
        return self._executed_statements.copy()


class BaseMigration(ABC):
    """Abstract base class for migration units.

    Attributes:
        revision: Unique revision identifier of this unit
        previous_revision: Revision this unit follows, None for the base
        schema_names: Schemas this unit applies to
        message: Human-readable summary
    """

    revision: str
    previous_revision: Optional[str] = None
    schema_names: frozenset[str] = frozenset()
    message: str = ""

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)

        if not getattr(cls, "revision", None):
            raise TypeError(f"Migration {cls.__name__} must define 'revision'")
        if cls.previous_revision == cls.revision:
            raise TypeError(f"Migration {cls.__name__} cannot follow itself")
        # Accept a bare string or any iterable of names.
        if isinstance(cls.schema_names, str):
            cls.schema_names = frozenset({cls.schema_names})
        else:
            cls.schema_names = frozenset(cls.schema_names)

    @abstractmethod
    async def up(self, ctx: MigrationContext) -> None:
        """Apply the migration."""
        pass

    async def down(self, ctx: MigrationContext) -> None:
        """Revert the migration.

        Raises:
            NotImplementedError: If the unit cannot be reverted
        """
        raise NotImplementedError(f"Migration {self.revision} does not support downgrade")

    def __repr__(self) -> str:
        return f"<Migration {self.previous_revision or 'base'} -> {self.revision}>"
